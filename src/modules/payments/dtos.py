"""Payment DTOs.

Two groups:

- processor results (``SetupSession``, ``CardVerification``, ...) returned
  by ``IPaymentProcessor`` implementations;
- request contracts handed from the API layer to ``PaymentService``.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

from modules.payments.constants import PaymentMethod, PlanType

# ---------------------------------------------------------------------------
# Processor results
# ---------------------------------------------------------------------------


class SetupSession(BaseModel):
    """Client-side handshake data for one setup attempt."""

    model_config = ConfigDict(frozen=True)

    setup_intent_id: str
    client_secret: str
    customer_id: str


class CardVerification(BaseModel):
    model_config = ConfigDict(frozen=True)

    status: str
    setup_intent_id: str
    client_secret: str = ""
    payment_method_id: str
    brand: str = ""
    last4: str = ""
    exp_month: Optional[int] = None
    exp_year: Optional[int] = None

    @property
    def succeeded(self) -> bool:
        return self.status == "succeeded"

    @property
    def requires_action(self) -> bool:
        return self.status == "requires_action"

    def card_details(self) -> Dict[str, object]:
        return {
            "brand": self.brand,
            "last4": self.last4,
            "exp_month": self.exp_month,
            "exp_year": self.exp_year,
        }


class VirtualAccount(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    account_id: str = ""
    routing_number: str = "N/A"
    account_number: str = "N/A"


class ChargeResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    status: str
    client_secret: str = ""


class SetupIntentState(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    status: str
    payment_method_id: str = ""

    @property
    def usable(self) -> bool:
        return self.status == "succeeded"


# ---------------------------------------------------------------------------
# Request contracts
# ---------------------------------------------------------------------------


class SelectPlanDTO(BaseModel):
    model_config = ConfigDict(frozen=True)

    method: PaymentMethod
    plan_type: PlanType
    plan_percent: Optional[Decimal] = None


class BillingAddressDTO(BaseModel):
    model_config = ConfigDict(frozen=True)

    street: str = ""
    city: str = ""
    state: str = ""
    zip: str = ""


class PayerInfoDTO(BaseModel):
    model_config = ConfigDict(frozen=True)

    full_legal_name: str = ""
    email: str = ""
    phone: str = ""
    preferred_transfer_type: str = ""
    planned_send_date: Optional[str] = None
    billing_address: BillingAddressDTO = Field(default_factory=BillingAddressDTO)


class BankTransferDetailsDTO(BaseModel):
    model_config = ConfigDict(frozen=True)

    payer_info: PayerInfoDTO
    commitments: Dict[str, bool] = {}
    plan_type: Optional[PlanType] = None
    plan_percent: Optional[Decimal] = None


class VerifyCardDTO(BaseModel):
    model_config = ConfigDict(frozen=True)

    payment_method_id: str
    cardholder_name: str = ""
    billing_address: BillingAddressDTO = Field(default_factory=BillingAddressDTO)


class SaveCardDTO(BaseModel):
    model_config = ConfigDict(frozen=True)

    payment_method_id: str
    authorizations: Dict[str, bool] = {}


class SaveAchDTO(BaseModel):
    model_config = ConfigDict(frozen=True)

    payment_method_id: str
    mandate_accepted: bool = False
    account_id: Optional[str] = None
    balance_cents: Optional[int] = None
