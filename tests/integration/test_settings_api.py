"""Integration tests for the public and admin settings endpoints."""

from decimal import Decimal

import pytest
from django.contrib.auth import get_user_model
from rest_framework.test import APIClient

from modules.storefront_settings.models import OrgSettings

pytestmark = pytest.mark.integration


@pytest.fixture()
def admin_user():
    return get_user_model().objects.create_user(
        username="admin", password="admin-pass-123", is_staff=True
    )


@pytest.fixture()
def admin_client(admin_user):
    client = APIClient()
    client.force_authenticate(user=admin_user)
    return client


class TestPublicSettings:
    def test_anonymous_gets_public_subset(self, api_client):
        response = api_client.get("/api/settings")

        assert response.status_code == 200
        data = response.json()
        assert set(data) == {"factory", "pricing", "payments"}
        assert Decimal(str(data["pricing"]["tax_rate_percent"])) == Decimal("6.25")
        assert data["payments"]["enable_card_option"] is True
        assert "storage_fee_per_day_cents" not in data["pricing"]

    def test_reflects_admin_update(self, api_client, admin_client):
        admin_client.put("/api/admin/settings", {"deposit_percent": 30}, format="json")

        data = api_client.get("/api/settings").json()
        assert Decimal(str(data["pricing"]["deposit_percent"])) == Decimal("30")


class TestAdminSettings:
    def test_anonymous_is_401(self, api_client):
        assert api_client.get("/api/admin/settings").status_code == 401

    def test_non_admin_is_403(self, auth_client):
        response = auth_client.get("/api/admin/settings")
        assert response.status_code == 403
        assert response.json()["type"] == "client_error"

    def test_admin_reads_every_field(self, admin_client):
        data = admin_client.get("/api/admin/settings").json()
        assert "storage_fee_per_day_cents" in data
        assert data["factory_name"]

    def test_update_grouped_payload(self, admin_client, admin_user):
        response = admin_client.put(
            "/api/admin/settings",
            {"pricing": {"tax_rate_percent": "7"}, "payments": {"enable_card_option": False}},
            format="json",
        )

        assert response.status_code == 200
        data = response.json()
        assert Decimal(str(data["tax_rate_percent"])) == Decimal("7")
        assert data["enable_card_option"] is False
        row = OrgSettings.objects.get()
        assert row.updated_by == str(admin_user.pk)

    def test_out_of_range_percent_is_400(self, admin_client):
        response = admin_client.put(
            "/api/admin/settings", {"deposit_percent": 150}, format="json"
        )

        assert response.status_code == 400
        error = response.json()["errors"][0]
        assert error["code"] == "invalid_settings"
        assert "deposit_percent" in error["detail"]

    def test_non_object_payload_is_400(self, admin_client):
        response = admin_client.put("/api/admin/settings", [1, 2], format="json")
        assert response.status_code == 400
