"""Settings DTOs.

``PricingSettings`` is the immutable view of the organisation settings that
the pricing calculator, the payment services and the contract prefill
consume.  It never touches the ORM.
"""

from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING, Self

from pydantic import BaseModel, ConfigDict, Field

from modules.storefront_settings.constants import (
    DEFAULT_FACTORY_ADDRESS,
    DEFAULT_FACTORY_NAME,
    DEFAULT_PRICING,
)

if TYPE_CHECKING:
    from modules.storefront_settings.models import OrgSettings


class PricingSettings(BaseModel):
    model_config = ConfigDict(frozen=True)

    deposit_percent: Decimal = DEFAULT_PRICING["deposit_percent"]
    tax_rate_percent: Decimal = DEFAULT_PRICING["tax_rate_percent"]
    delivery_rate_per_mile: Decimal = DEFAULT_PRICING["delivery_rate_per_mile"]
    delivery_minimum: Decimal = DEFAULT_PRICING["delivery_minimum"]
    title_fee_default: Decimal = DEFAULT_PRICING["title_fee_default"]
    setup_fee_default: Decimal = DEFAULT_PRICING["setup_fee_default"]
    storage_fee_per_day_cents: Decimal = Field(default=Decimal("0"))
    enable_card_option: bool = True
    factory_name: str = DEFAULT_FACTORY_NAME
    factory_address: str = DEFAULT_FACTORY_ADDRESS

    @classmethod
    def from_entity(cls, entity: OrgSettings) -> Self:
        return cls(
            deposit_percent=entity.deposit_percent,
            tax_rate_percent=entity.tax_rate_percent,
            delivery_rate_per_mile=entity.delivery_rate_per_mile,
            delivery_minimum=entity.delivery_minimum,
            title_fee_default=entity.title_fee_default,
            setup_fee_default=entity.setup_fee_default,
            storage_fee_per_day_cents=entity.storage_fee_per_day_cents,
            enable_card_option=entity.enable_card_option,
            factory_name=entity.factory_name,
            factory_address=entity.factory_address,
        )

    def public_subset(self) -> dict:
        """Fields safe to expose to signed-out visitors."""
        return {
            "factory": {"name": self.factory_name, "address": self.factory_address},
            "pricing": {
                "title_fee_default": self.title_fee_default,
                "setup_fee_default": self.setup_fee_default,
                "tax_rate_percent": self.tax_rate_percent,
                "delivery_rate_per_mile": self.delivery_rate_per_mile,
                "delivery_minimum": self.delivery_minimum,
                "deposit_percent": self.deposit_percent,
            },
            "payments": {"enable_card_option": self.enable_card_option},
        }
