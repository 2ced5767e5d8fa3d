from decimal import Decimal

import pytest

from modules.contracts.prefill import build_prefill, format_dollars
from modules.storefront_settings.dtos import PricingSettings

pytestmark = pytest.mark.unit


@pytest.mark.parametrize(
    ("cents", "expected"),
    [
        (9615625, "$96,156.25"),
        (Decimal("96156.25"), "$961.56"),
        (Decimal("5656.25"), "$56.56"),
        (0, "$0.00"),
        (50, "$0.50"),
    ],
)
def test_format_dollars(cents, expected):
    assert format_dollars(cents) == expected


class TestBuildPrefill:
    def test_amounts_match_the_order_summary(self, build):
        data = build_prefill(build, PricingSettings(), "agreement")

        assert data["price_base"] == "$800.00"
        assert data["price_options"] == "$50.00"
        assert data["price_freight_est"] == "$20.00"
        assert data["price_other"] == "$5.00"
        assert data["price_setup"] == "$30.00"
        assert data["price_tax"] == "$56.56"
        assert data["price_total"] == "$961.56"
        assert data["deposit_due"] == "$240.39"
        assert data["final_payment"] == "$721.17"

    def test_buyer_fields(self, build):
        data = build_prefill(build, PricingSettings(factory_name="Acme Homes"), "agreement")

        assert data["buyer_full_name"] == "Avery Jordan"
        assert data["buyer_address"] == "1200 Main St, Austin, TX, 78701"
        assert data["model_brand"] == "Acme Homes"
        assert data["model_code"] == "magnolia"
        assert "delivery_address" not in data

    def test_delivery_pack_adds_addresses(self, make_build):
        build = make_build(
            buyer_info={
                "first_name": "Avery",
                "last_name": "Jordan",
                "email": "avery@example.com",
                "address": "1200 Main St",
                "delivery_address": "88 Ranch Rd, Marfa, TX",
            }
        )
        settings = PricingSettings(factory_address="1 Factory Way, Waco, TX")

        data = build_prefill(build, settings, "delivery")

        assert data["delivery_address"] == "88 Ranch Rd, Marfa, TX"
        assert data["factory_address"] == "1 Factory Way, Waco, TX"
