"""Unit tests for the DocuSeal client over a mocked httpx transport."""

from __future__ import annotations

import json

import httpx
import pytest

from modules.contracts.esign import DocuSealClient
from modules.contracts.exceptions import SigningSessionError

pytestmark = pytest.mark.unit


def _client(handler) -> DocuSealClient:
    return DocuSealClient(
        api_base="https://docuseal.test/api/",
        api_key="ds-key",
        transport=httpx.MockTransport(handler),
    )


class TestCreateSubmission:
    def test_sends_readonly_prefill_and_parses_submitter_list(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["request"] = request
            return httpx.Response(
                200,
                json=[{"id": 77, "submission_id": 42, "embed_src": "https://docuseal.test/s/abc"}],
            )

        session = _client(handler).create_submission(
            template_id="1001",
            prefill={"buyer_full_name": "Avery Jordan", "price_total": "$96,156.25", "empty": None},
            submitters=[{"role": "buyer", "email": "avery@example.com", "name": "Avery Jordan"}],
            metadata={"build_id": "b-1", "pack": "agreement"},
        )

        assert session.submission_id == "42"
        assert session.signing_url == "https://docuseal.test/s/abc"

        request = seen["request"]
        assert request.method == "POST"
        assert request.url == "https://docuseal.test/api/submissions"
        assert request.headers["X-Auth-Token"] == "ds-key"
        body = json.loads(request.content)
        assert body["template_id"] == "1001"
        assert body["send_email"] is False
        submitter = body["submitters"][0]
        assert submitter["role"] == "buyer"
        assert submitter["metadata"] == {"build_id": "b-1", "pack": "agreement"}
        assert {"name": "empty", "default_value": "", "readonly": True} in submitter["fields"]
        assert {
            "name": "price_total",
            "default_value": "$96,156.25",
            "readonly": True,
        } in submitter["fields"]

    def test_parses_submission_object(self):
        def handler(request):
            return httpx.Response(
                200, json={"id": 9, "submitters": [{"url": "https://docuseal.test/s/x"}]}
            )

        session = _client(handler).create_submission("1001", {}, [{"role": "buyer"}])
        assert session.submission_id == "9"
        assert session.signing_url == "https://docuseal.test/s/x"

    def test_completed_redirect_is_filled_from_metadata(self):
        seen = {}

        def handler(request):
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json=[{"submission_id": 5, "embed_src": "https://docuseal.test/s/r"}])

        client = DocuSealClient(
            api_base="https://docuseal.test/api",
            api_key="ds-key",
            completed_redirect_url="https://shop.test/checkout/{build_id}/agreement",
            transport=httpx.MockTransport(handler),
        )
        client.create_submission("1001", {}, [{"role": "buyer"}], metadata={"build_id": "b-9", "pack": "final"})

        submitter = seen["body"]["submitters"][0]
        assert submitter["completed_redirect_url"] == "https://shop.test/checkout/b-9/agreement"

    def test_missing_signing_url(self):
        client = _client(lambda request: httpx.Response(200, json=[{"submission_id": 1}]))
        with pytest.raises(SigningSessionError):
            client.create_submission("1001", {}, [{"role": "buyer"}])

    def test_http_error_carries_status(self):
        client = _client(lambda request: httpx.Response(422, json={"error": "bad template"}))
        with pytest.raises(SigningSessionError) as exc_info:
            client.create_submission("1001", {}, [{"role": "buyer"}])
        assert exc_info.value.status_code == 422

    def test_transport_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(SigningSessionError) as exc_info:
            _client(handler).create_submission("1001", {}, [{"role": "buyer"}])
        assert exc_info.value.status_code is None


class TestGetSubmission:
    def test_completed_submission(self):
        def handler(request):
            assert request.url.path == "/api/submissions/42"
            return httpx.Response(
                200,
                json={
                    "id": 42,
                    "status": "completed",
                    "documents": [{"name": "agreement", "url": "https://docuseal.test/d/42.pdf"}],
                    "audit_log_url": "https://docuseal.test/a/42.pdf",
                },
            )

        state = _client(handler).get_submission("42")
        assert state.completed is True
        assert state.failed is False
        assert state.document_url == "https://docuseal.test/d/42.pdf"
        assert state.audit_trail_url == "https://docuseal.test/a/42.pdf"

    def test_pending_submission_without_documents(self):
        state = _client(lambda request: httpx.Response(200, json={"id": 42})).get_submission("42")
        assert state.status == "pending"
        assert state.completed is False
        assert state.document_url is None

    def test_declined_submission(self):
        client = _client(lambda request: httpx.Response(200, json={"id": 42, "status": "declined"}))
        assert client.get_submission("42").failed is True

    def test_not_found(self):
        client = _client(lambda request: httpx.Response(404, json={"error": "Not found"}))
        with pytest.raises(SigningSessionError) as exc_info:
            client.get_submission("42")
        assert exc_info.value.status_code == 404
