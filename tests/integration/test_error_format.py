"""Integration tests for standardized error responses."""

import pytest

pytestmark = pytest.mark.integration


def _assert_standard_shape(data):
    assert set(data) >= {"type", "errors", "notification"}
    assert isinstance(data["errors"], list)
    assert data["errors"]
    assert {"code", "detail", "attr"} <= set(data["errors"][0])
    assert {"type", "title", "message"} == set(data["notification"])


class TestStandardizedErrors:
    def test_auth_error_has_standard_format(self, api_client):
        response = api_client.get("/api/builds")
        assert response.status_code == 401
        data = response.json()
        _assert_standard_shape(data)
        assert data["type"] == "client_error"
        assert data["errors"][0]["code"] == "not_authenticated"

    def test_malformed_json_has_standard_format(self, auth_client):
        response = auth_client.post("/api/builds", data="{", content_type="application/json")
        assert response.status_code == 400
        data = response.json()
        _assert_standard_shape(data)
        assert data["errors"][0]["code"] == "parse_error"

    def test_validation_error_lists_every_field(self, auth_client):
        response = auth_client.post("/api/builds", {}, format="json")
        assert response.status_code == 400
        data = response.json()
        _assert_standard_shape(data)
        assert data["type"] == "validation_error"
        assert data["notification"]["title"] == "Check your details"
        assert "model_slug" in {error["attr"] for error in data["errors"]}

    def test_domain_error_has_standard_format(self, auth_client):
        response = auth_client.get(
            "/api/payments/session?buildId=0190f1e4-0000-7000-8000-0000000000ff"
        )
        assert response.status_code == 404
        _assert_standard_shape(response.json())

    def test_notification_never_echoes_exception_text(self, auth_client, build, monkeypatch, fake_processor):
        monkeypatch.setattr("modules.payments.views.get_payment_processor", lambda: fake_processor)
        fake_processor.fail("create_setup_intent", times=3)
        auth_client.post(
            "/api/payments/select",
            {"build_id": str(build.id), "method": "ach_debit", "plan_type": "full"},
            format="json",
        )

        response = auth_client.post(
            "/api/payments/setup-ach", {"build_id": str(build.id)}, format="json"
        )

        text = response.content.decode()
        assert "create_setup_intent failed" not in text
        _assert_standard_shape(response.json())
