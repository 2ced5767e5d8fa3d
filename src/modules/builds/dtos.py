"""Build DTOs for the Service Layer.

Immutable Pydantic v2 contracts between the DRF serializers and
``BuildService``.
"""

from __future__ import annotations

from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, field_validator

from modules.pricing.dtos import OptionLine


class BuyerInfoDTO(BaseModel):
    model_config = ConfigDict(frozen=True)

    first_name: str = ""
    last_name: str = ""
    email: str = ""
    phone: str = ""
    address: str = ""
    city: str = ""
    state: str = ""
    zip: str = ""
    delivery_address: str = ""


class CreateBuildDTO(BaseModel):
    model_config = ConfigDict(frozen=True)

    owner_id: str
    model_slug: str
    model_name: str = ""
    name: str = ""
    base_price_cents: Decimal = Decimal("0")
    options: List[OptionLine] = []
    delivery_fee_cents: Decimal = Decimal("0")
    buyer_info: Optional[BuyerInfoDTO] = None

    @field_validator("base_price_cents", "delivery_fee_cents")
    @classmethod
    def amount_must_not_be_negative(cls, v: Decimal) -> Decimal:
        if v < 0:
            raise ValueError("Amounts must not be negative.")
        return v


class UpdateBuildDTO(BaseModel):
    """Partial update; unset or ``None`` fields are left unchanged.

    Buyer info is merged key by key, so only the keys actually passed in
    ``buyer_info`` overwrite stored values.
    """

    model_config = ConfigDict(frozen=True)

    model_slug: Optional[str] = None
    model_name: Optional[str] = None
    name: Optional[str] = None
    base_price_cents: Optional[Decimal] = None
    options: Optional[List[OptionLine]] = None
    delivery_fee_cents: Optional[Decimal] = None
    buyer_info: Optional[BuyerInfoDTO] = None

    def changes(self) -> dict:
        data = self.model_dump(exclude_unset=True, exclude_none=True, mode="json")
        if self.base_price_cents is not None:
            data["base_price_cents"] = self.base_price_cents
        if self.delivery_fee_cents is not None:
            data["delivery_fee_cents"] = self.delivery_fee_cents
        return data
