"""Payment domain constants.

``PaymentStep`` is the server-side checkout wizard position
(``choose -> details -> review``).  ``SESSION_TRANSITIONS`` lists the
forward moves; moving back to an earlier step is always allowed.
"""

from django.db import models


class PaymentMethod(models.TextChoices):
    ACH_DEBIT = "ach_debit", "ACH debit"
    BANK_TRANSFER = "bank_transfer", "Bank transfer"
    CARD = "card", "Credit card"


class PlanType(models.TextChoices):
    DEPOSIT = "deposit", "Deposit"
    FULL = "full", "Pay in full"


class PaymentStep(models.TextChoices):
    CHOOSE = "choose", "Choose amount and method"
    DETAILS = "details", "Method details"
    REVIEW = "review", "Review"


class PaymentStatus(models.TextChoices):
    PENDING = "pending", "Pending"
    READY = "ready", "Ready"
    PENDING_CONTRACT = "pending_contract", "Pending contract"
    SUCCEEDED = "succeeded", "Succeeded"
    FULLY_PAID = "fully_paid", "Fully paid"
    FAILED = "failed", "Failed"


class Milestone(models.TextChoices):
    DEPOSIT = "deposit", "Deposit"
    FINAL = "final", "Final payment"
    FULL = "full", "Full payment"


class TransferIntentStatus(models.TextChoices):
    PENDING_CONTRACT = "pending_contract", "Pending contract"
    AWAITING_FUNDS = "awaiting_funds", "Awaiting funds"
    PAID = "paid", "Paid"
    FAILED = "failed", "Failed"


SESSION_TRANSITIONS: dict[str, set[str]] = {
    PaymentStep.CHOOSE: {PaymentStep.DETAILS},
    PaymentStep.DETAILS: {PaymentStep.REVIEW},
    PaymentStep.REVIEW: set(),
}

SESSION_ORDER: tuple[str, ...] = (
    PaymentStep.CHOOSE,
    PaymentStep.DETAILS,
    PaymentStep.REVIEW,
)

BANK_TRANSFER_COMMITMENTS: tuple[str, ...] = ("customer_initiated", "funds_clearing")
DEPOSIT_COMMITMENT = "storage_fees_acknowledged"

CARD_AUTHORIZATIONS: tuple[str, ...] = (
    "charge_authorization",
    "non_refundable",
    "high_value_transaction",
)

BILLING_ADDRESS_FIELDS: tuple[str, ...] = ("street", "city", "state", "zip")

PAYER_REQUIRED_FIELDS: tuple[str, ...] = (
    "full_legal_name",
    "email",
    "phone",
    "preferred_transfer_type",
)

ZIP_PATTERN = r"^\d{5}(-\d{4})?$"
EMAIL_PATTERN = r"^[^\s@]+@[^\s@]+\.[^\s@]+$"

TRANSFER_BENEFICIARY = "Firefly Tiny Homes"
REFERENCE_PREFIX = "FF"

CURRENCY = "usd"

PAYMENT_TOPIC = "payments"
