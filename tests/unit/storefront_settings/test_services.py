"""Unit tests for SettingsProvider.

Covers:
- Defaults are created on first read and cached.
- Only numeric, finite values are applied; blanks and junk are ignored.
- Negative amounts and percentages above 100 are rejected.
- Grouped payloads are flattened; updates invalidate the cache.
"""

from __future__ import annotations

from decimal import Decimal

import pytest
from django.core.cache import cache

from modules.storefront_settings.constants import SETTINGS_CACHE_KEY
from modules.storefront_settings.exceptions import InvalidSettings
from modules.storefront_settings.models import OrgSettings

pytestmark = pytest.mark.unit


class TestGetSettings:
    def test_defaults_created_on_first_read(self, settings_provider):
        settings = settings_provider.get_settings()

        assert settings.deposit_percent == Decimal("25")
        assert settings.tax_rate_percent == Decimal("6.25")
        assert settings.enable_card_option is True
        assert OrgSettings.objects.count() == 1

    def test_reads_are_cached(self, settings_provider, django_assert_num_queries):
        settings_provider.get_settings()
        assert cache.get(SETTINGS_CACHE_KEY) is not None
        with django_assert_num_queries(0):
            assert settings_provider.get_settings().setup_fee_default == Decimal("3000")

    def test_public_subset_hides_storage_fee(self, settings_provider):
        subset = settings_provider.get_settings().public_subset()
        assert set(subset) == {"factory", "pricing", "payments"}
        assert "storage_fee_per_day_cents" not in subset["pricing"]


class TestUpdateSettings:
    def test_applies_numeric_values(self, settings_provider):
        updated = settings_provider.update_settings(
            {"deposit_percent": "30", "title_fee_default": 750}, updated_by="admin-1"
        )

        assert updated.deposit_percent == Decimal("30")
        assert updated.title_fee_default == Decimal("750")
        assert OrgSettings.objects.get().updated_by == "admin-1"

    @pytest.mark.parametrize("value", ["", None, "abc", "NaN", "Infinity", True])
    def test_ignores_non_numeric_values(self, settings_provider, value):
        updated = settings_provider.update_settings({"tax_rate_percent": value}, "admin-1")
        assert updated.tax_rate_percent == Decimal("6.25")

    def test_missing_fields_are_untouched(self, settings_provider):
        settings_provider.update_settings({"setup_fee_default": 4000}, "admin-1")
        updated = settings_provider.update_settings({"title_fee_default": 600}, "admin-1")

        assert updated.setup_fee_default == Decimal("4000")
        assert updated.title_fee_default == Decimal("600")

    def test_rejects_negative_amounts(self, settings_provider):
        with pytest.raises(InvalidSettings):
            settings_provider.update_settings({"delivery_minimum": -1}, "admin-1")

    def test_rejects_percent_over_100(self, settings_provider):
        with pytest.raises(InvalidSettings):
            settings_provider.update_settings({"deposit_percent": 101}, "admin-1")

    def test_grouped_payload(self, settings_provider):
        updated = settings_provider.update_settings(
            {
                "factory": {"name": "Acme Homes", "address": "1 Factory Way"},
                "pricing": {"deposit_percent": 20},
                "payments": {"enable_card_option": False},
            },
            "admin-1",
        )

        assert updated.factory_name == "Acme Homes"
        assert updated.factory_address == "1 Factory Way"
        assert updated.deposit_percent == Decimal("20")
        assert updated.enable_card_option is False

    def test_card_toggle_must_be_boolean(self, settings_provider):
        updated = settings_provider.update_settings({"enable_card_option": "no"}, "admin-1")
        assert updated.enable_card_option is True

    def test_blank_factory_name_is_ignored(self, settings_provider):
        updated = settings_provider.update_settings({"factory_name": "   "}, "admin-1")
        assert updated.factory_name == settings_provider.get_settings().factory_name
        assert updated.factory_name.strip()

    def test_empty_update_writes_nothing(self, settings_provider):
        settings_provider.get_settings()
        settings_provider.update_settings({"unknown": 1}, "admin-1")
        assert OrgSettings.objects.get().updated_by == ""

    def test_update_invalidates_cache(self, settings_provider):
        settings_provider.get_settings()
        settings_provider.update_settings({"deposit_percent": 40}, "admin-1")

        assert cache.get(SETTINGS_CACHE_KEY) is None
        assert settings_provider.get_settings().deposit_percent == Decimal("40")
