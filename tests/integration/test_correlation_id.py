import logging
import uuid

import pytest

pytestmark = pytest.mark.integration


def _messages(caplog):
    return [record.getMessage() for record in caplog.records]


class TestCorrelationIdMiddleware:
    def test_returns_provided_request_id(self, client):
        response = client.get("/api/settings", HTTP_X_REQUEST_ID="checkout-req-123")
        assert response["X-Request-ID"] == "checkout-req-123"

    def test_generates_uuid_when_no_request_id(self, client):
        request_id = client.get("/api/settings")["X-Request-ID"]
        assert str(uuid.UUID(request_id, version=4)) == request_id

    def test_overlong_request_id_is_truncated(self, client):
        response = client.get("/api/settings", HTTP_X_REQUEST_ID="x" * 500)
        assert response["X-Request-ID"] == "x" * 128

    def test_correlation_id_in_logs(self, client, caplog):
        with caplog.at_level(logging.INFO):
            client.get("/api/settings", HTTP_X_REQUEST_ID="log-test-correlation-456")
        assert any("log-test-correlation-456" in message for message in _messages(caplog))

    def test_build_id_from_query_is_bound(self, auth_client, build, patched_esign, caplog):
        with caplog.at_level(logging.INFO):
            auth_client.get(f"/api/contracts/status?buildId={build.id}", HTTP_X_REQUEST_ID="poll-1")
        finished = [m for m in _messages(caplog) if "http.request_finished" in m]
        assert finished
        assert str(build.id) in finished[-1]

    def test_health_check_is_not_logged(self, client, caplog):
        with caplog.at_level(logging.INFO):
            response = client.get("/health")
        assert response["X-Request-ID"]
        assert not any("http.request_started" in message for message in _messages(caplog))
