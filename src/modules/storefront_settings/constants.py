"""Organisation settings defaults.

Money values share the unit of ``Build.base_price_cents``.  Percentages
are plain percent values (``6.25`` means 6.25 %).
"""

from decimal import Decimal

SETTINGS_KEY = "org"

SETTINGS_CACHE_KEY = "storefront:org_settings"
SETTINGS_CACHE_TTL_SECONDS = 60

DEFAULT_FACTORY_NAME = "Champion Homes of Mansfield, TX"
DEFAULT_FACTORY_ADDRESS = "606 S 2nd Ave, Mansfield, TX 76063"

DEFAULT_PRICING: dict[str, Decimal] = {
    "deposit_percent": Decimal("25"),
    "tax_rate_percent": Decimal("6.25"),
    "delivery_rate_per_mile": Decimal("12.5"),
    "delivery_minimum": Decimal("1500"),
    "title_fee_default": Decimal("500"),
    "setup_fee_default": Decimal("3000"),
}

NUMERIC_FIELDS: tuple[str, ...] = (
    *DEFAULT_PRICING.keys(),
    "storage_fee_per_day_cents",
)
