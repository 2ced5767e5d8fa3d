"""Organisation settings (single row, key ``org``)."""

from __future__ import annotations

from decimal import Decimal

from django.db import models

from modules.core.models import BaseModel
from modules.storefront_settings.constants import (
    DEFAULT_FACTORY_ADDRESS,
    DEFAULT_FACTORY_NAME,
    DEFAULT_PRICING,
    SETTINGS_KEY,
)


class OrgSettings(BaseModel):
    """Pricing and payment settings read by checkout.

    Only one row exists in practice; it is created with defaults the first
    time it is read.
    """

    key: models.CharField = models.CharField(
        max_length=20, unique=True, default=SETTINGS_KEY
    )
    factory_name: models.CharField = models.CharField(
        max_length=200, default=DEFAULT_FACTORY_NAME
    )
    factory_address: models.CharField = models.CharField(
        max_length=500, default=DEFAULT_FACTORY_ADDRESS
    )
    deposit_percent: models.DecimalField = models.DecimalField(
        max_digits=5, decimal_places=2, default=DEFAULT_PRICING["deposit_percent"]
    )
    tax_rate_percent: models.DecimalField = models.DecimalField(
        max_digits=6, decimal_places=4, default=DEFAULT_PRICING["tax_rate_percent"]
    )
    delivery_rate_per_mile: models.DecimalField = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        default=DEFAULT_PRICING["delivery_rate_per_mile"],
    )
    delivery_minimum: models.DecimalField = models.DecimalField(
        max_digits=12, decimal_places=2, default=DEFAULT_PRICING["delivery_minimum"]
    )
    title_fee_default: models.DecimalField = models.DecimalField(
        max_digits=12, decimal_places=2, default=DEFAULT_PRICING["title_fee_default"]
    )
    setup_fee_default: models.DecimalField = models.DecimalField(
        max_digits=12, decimal_places=2, default=DEFAULT_PRICING["setup_fee_default"]
    )
    storage_fee_per_day_cents: models.DecimalField = models.DecimalField(
        max_digits=12, decimal_places=2, default=Decimal("0")
    )
    enable_card_option: models.BooleanField = models.BooleanField(default=True)
    updated_by: models.CharField = models.CharField(
        max_length=255, blank=True, default=""
    )

    class Meta:
        db_table = "org_settings"

    def __str__(self) -> str:
        return f"OrgSettings({self.key})"
