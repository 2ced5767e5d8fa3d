"""Payment persistence.

``BuildPayment`` is the payment sub-document of a build (reverse accessor
``build.payment``).  It is the single source the payment wizard is rebuilt
from after a reload, so every partial step is written here as it happens.

Invariant: ``ready`` is only ever set through ``PaymentSession.mark_ready``,
which checks the method-specific preconditions first.
"""

from __future__ import annotations

from django.db import models

from modules.core.models import BaseModel
from modules.payments.constants import (
    Milestone,
    PaymentMethod,
    PaymentStatus,
    PaymentStep,
    PlanType,
    TransferIntentStatus,
)
from shared.domain.events import DomainEventMixin


class BuildPayment(DomainEventMixin, BaseModel):
    build = models.OneToOneField(
        "builds.Build",
        on_delete=models.CASCADE,
        related_name="payment",
    )

    # Plan and method
    plan_type = models.CharField(max_length=10, choices=PlanType.choices, blank=True, default="")
    plan_percent = models.DecimalField(max_digits=5, decimal_places=2, null=True, blank=True)
    plan_amount_cents = models.PositiveBigIntegerField(null=True, blank=True)
    method = models.CharField(
        max_length=20, choices=PaymentMethod.choices, blank=True, default=""
    )
    session_step = models.CharField(
        max_length=10, choices=PaymentStep.choices, default=PaymentStep.CHOOSE
    )
    ready = models.BooleanField(default=False)
    status = models.CharField(
        max_length=20, choices=PaymentStatus.choices, default=PaymentStatus.PENDING
    )

    # Processor handshake
    processor_customer_id = models.CharField(max_length=255, blank=True, default="")
    setup_intent_id = models.CharField(max_length=255, blank=True, default="")
    client_secret = models.CharField(max_length=255, blank=True, default="")
    saved_payment_method_id = models.CharField(max_length=255, blank=True, default="")
    needs_refresh = models.BooleanField(default=False)
    retry_count = models.PositiveSmallIntegerField(default=0)
    last_error_kind = models.CharField(max_length=40, blank=True, default="")

    # ACH debit
    mandate_accepted = models.BooleanField(default=False)
    mandate_accepted_at = models.DateTimeField(null=True, blank=True)
    financial_connections = models.JSONField(default=dict, blank=True)

    # Bank transfer
    virtual_account_id = models.CharField(max_length=255, blank=True, default="")
    transfer_reference = models.CharField(max_length=64, blank=True, default="")
    transfer_instructions = models.JSONField(default=dict, blank=True)
    transfer_confirmed = models.BooleanField(default=False)
    payer_info = models.JSONField(default=dict, blank=True)
    commitments = models.JSONField(default=dict, blank=True)

    # Card
    cardholder_name = models.CharField(max_length=200, blank=True, default="")
    billing_address = models.JSONField(default=dict, blank=True)
    card_details = models.JSONField(default=dict, blank=True)
    card_verified_at = models.DateTimeField(null=True, blank=True)
    authorizations = models.JSONField(default=dict, blank=True)

    # Amounts (integer cents, rounded once from the calculator total)
    total_cents = models.PositiveBigIntegerField(null=True, blank=True)
    deposit_cents = models.PositiveBigIntegerField(null=True, blank=True)
    final_cents = models.PositiveBigIntegerField(null=True, blank=True)

    deposit_paid_at = models.DateTimeField(null=True, blank=True)
    final_paid_at = models.DateTimeField(null=True, blank=True)
    full_paid_at = models.DateTimeField(null=True, blank=True)
    last_payment_intent_id = models.CharField(max_length=255, blank=True, default="")
    last_error = models.CharField(max_length=255, blank=True, default="")

    class Meta:
        db_table = "build_payments"
        indexes = [
            models.Index(fields=["ready", "method"], name="build_payments_ready_idx"),
            models.Index(fields=["virtual_account_id"], name="build_payments_va_idx"),
        ]

    # ------------------------------------------------------------------
    # Milestones
    # ------------------------------------------------------------------

    def is_milestone_paid(self, milestone: str) -> bool:
        return getattr(self, f"{milestone}_paid_at", None) is not None

    def amount_for(self, milestone: str) -> int:
        if milestone == Milestone.DEPOSIT:
            return int(self.deposit_cents or 0)
        if milestone == Milestone.FINAL:
            return int(self.final_cents or 0)
        return int(self.total_cents or 0)

    @property
    def all_paid(self) -> bool:
        if self.plan_type == PlanType.DEPOSIT:
            return self.deposit_paid_at is not None and self.final_paid_at is not None
        return self.full_paid_at is not None

    @property
    def card_pending_authorization(self) -> bool:
        """A card was verified but its charge authorizations were never saved."""
        return (
            self.method == PaymentMethod.CARD
            and self.card_verified_at is not None
            and not self.saved_payment_method_id
        )

    def __str__(self) -> str:
        return f"Payment({self.build_id}, {self.method or 'unset'}, ready={self.ready})"


class BankTransferIntent(BaseModel):
    """Expected incoming transfer for one milestone of a bank-transfer plan."""

    payment = models.ForeignKey(
        BuildPayment,
        on_delete=models.CASCADE,
        related_name="transfer_intents",
    )
    milestone = models.CharField(max_length=10, choices=Milestone.choices)
    expected_amount_cents = models.PositiveBigIntegerField()
    status = models.CharField(
        max_length=20,
        choices=TransferIntentStatus.choices,
        default=TransferIntentStatus.PENDING_CONTRACT,
    )
    paid_amount_cents = models.PositiveBigIntegerField(null=True, blank=True)
    paid_at = models.DateTimeField(null=True, blank=True)
    processor_reference = models.CharField(max_length=255, blank=True, default="")
    created_by = models.CharField(max_length=255, blank=True, default="")

    class Meta:
        db_table = "bank_transfer_intents"
        ordering = ["created_at"]
        constraints = [
            models.UniqueConstraint(
                fields=["payment", "milestone"],
                name="bank_transfer_intent_unique_milestone",
            )
        ]

    def __str__(self) -> str:
        return f"{self.milestone} {self.expected_amount_cents} [{self.status}]"
