"""Pricing DTOs.

``PricingInput`` mirrors the build fields the calculator reads, so the
calculator can be fed either a ``Build`` model or a plain DTO.
``PriceBreakdown`` is the order-summary view of one calculation.
"""

from __future__ import annotations

from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, field_validator


class OptionLine(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = ""
    name: str = ""
    price: Decimal = Decimal("0")
    quantity: Optional[int] = None

    @field_validator("quantity")
    @classmethod
    def quantity_must_be_positive(cls, v: Optional[int]) -> Optional[int]:
        if v is not None and v < 0:
            raise ValueError("Quantity must not be negative.")
        return v


class PricingInput(BaseModel):
    model_config = ConfigDict(frozen=True)

    base_price_cents: Decimal = Decimal("0")
    options: List[OptionLine] = []
    delivery_fee_cents: Decimal = Decimal("0")


class PriceBreakdown(BaseModel):
    """All amounts in cents, unrounded."""

    model_config = ConfigDict(frozen=True)

    base_price: Decimal
    options_subtotal: Decimal
    delivery_fee: Decimal
    title_fee: Decimal
    setup_fee: Decimal
    fees_subtotal: Decimal
    subtotal_before_tax: Decimal
    tax_rate_percent: Decimal
    sales_tax: Decimal
    total: Decimal
    deposit_percent: Decimal
    deposit_due: int
    final_payment: int
    total_chargeable: int
