"""Processor webhook reconciliation.

Some payment state only arrives asynchronously.  ``StripeWebhookHandler``
applies a verified event to the matching payment record; events it does
not know are acknowledged and ignored.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Callable, Dict, Mapping, Optional

import structlog
from django.db import transaction
from django.utils import timezone

from modules.payments.constants import (
    Milestone,
    PaymentStatus,
    TransferIntentStatus,
)
from modules.payments.models import BankTransferIntent

if TYPE_CHECKING:
    from modules.payments.models import BuildPayment
    from modules.payments.repositories.interfaces import IPaymentRepository
    from modules.payments.services import PaymentService

logger = structlog.get_logger(__name__)


class StripeWebhookHandler:
    def __init__(
        self,
        payment_repository: IPaymentRepository,
        payment_service: PaymentService,
    ) -> None:
        self._repo = payment_repository
        self._service = payment_service
        self._handlers: Dict[str, Callable[[Mapping[str, Any]], bool]] = {
            "payment_intent.succeeded": self._payment_intent_succeeded,
            "payment_intent.payment_failed": self._payment_intent_failed,
            "setup_intent.succeeded": self._setup_intent_succeeded,
            "setup_intent.setup_failed": self._setup_intent_failed,
            "treasury.inbound_transfer.succeeded": self._inbound_transfer_succeeded,
            "treasury.inbound_transfer.failed": self._inbound_transfer_failed,
        }

    @transaction.atomic
    def apply(self, event: Mapping[str, Any]) -> bool:
        """Returns whether the event changed a payment record."""
        event_type = event.get("type", "")
        handler = self._handlers.get(event_type)
        if handler is None:
            logger.info("payment.webhook_ignored", event_type=event_type)
            return False
        obj = (event.get("data") or {}).get("object") or {}
        applied = handler(obj)
        logger.info(
            "payment.webhook_applied",
            event_type=event_type,
            event_id=event.get("id"),
            applied=applied,
        )
        return applied

    # ------------------------------------------------------------------
    # Payment intents (card charges)
    # ------------------------------------------------------------------

    def _payment_for_metadata(self, obj: Mapping[str, Any]) -> Optional[BuildPayment]:
        build_id = (obj.get("metadata") or {}).get("build_id")
        if not build_id:
            return None
        return self._repo.get_for_build(build_id)

    def _payment_intent_succeeded(self, obj: Mapping[str, Any]) -> bool:
        payment = self._payment_for_metadata(obj)
        if payment is None:
            return False
        milestone = (obj.get("metadata") or {}).get("milestone")
        if milestone in Milestone.values and not payment.is_milestone_paid(milestone):
            setattr(payment, f"{milestone}_paid_at", timezone.now())
        payment.last_payment_intent_id = obj.get("id", "")
        payment.status = PaymentStatus.FULLY_PAID if payment.all_paid else PaymentStatus.SUCCEEDED
        self._repo.save(payment)
        return True

    def _payment_intent_failed(self, obj: Mapping[str, Any]) -> bool:
        payment = self._payment_for_metadata(obj)
        if payment is None:
            return False
        error = obj.get("last_payment_error") or {}
        payment.status = PaymentStatus.FAILED
        payment.last_payment_intent_id = obj.get("id", "")
        payment.last_error = str(error.get("code") or "payment_failed")[:255]
        self._repo.save(payment)
        return True

    # ------------------------------------------------------------------
    # Setup intents (ACH / card instruments)
    # ------------------------------------------------------------------

    def _setup_intent_succeeded(self, obj: Mapping[str, Any]) -> bool:
        payment = self._repo.get_by_setup_intent(obj.get("id", ""))
        if payment is None:
            return False
        if payment.needs_refresh:
            payment.needs_refresh = False
            self._repo.save(payment)
        return True

    def _setup_intent_failed(self, obj: Mapping[str, Any]) -> bool:
        payment = self._repo.get_by_setup_intent(obj.get("id", ""))
        if payment is None:
            return False
        if payment.ready:
            self._service.revoke_readiness(payment, "setup_intent_failed")
        else:
            payment.needs_refresh = True
            self._repo.save(payment)
        return True

    # ------------------------------------------------------------------
    # Inbound bank transfers
    # ------------------------------------------------------------------

    def _inbound_transfer_succeeded(self, obj: Mapping[str, Any]) -> bool:
        payment = self._repo.get_by_virtual_account(obj.get("financial_account", ""))
        if payment is None:
            return False
        amount = int(obj.get("amount") or 0)
        intent = _match_transfer_intent(payment, amount)
        if intent is not None:
            intent.status = TransferIntentStatus.PAID
            intent.paid_amount_cents = amount
            intent.paid_at = timezone.now()
            intent.processor_reference = obj.get("id", "")
            intent.save()
            setattr(payment, f"{intent.milestone}_paid_at", intent.paid_at)
        payment.status = PaymentStatus.FULLY_PAID if payment.all_paid else PaymentStatus.SUCCEEDED
        self._repo.save(payment)
        return True

    def _inbound_transfer_failed(self, obj: Mapping[str, Any]) -> bool:
        payment = self._repo.get_by_virtual_account(obj.get("financial_account", ""))
        if payment is None:
            return False
        payment.status = PaymentStatus.FAILED
        payment.last_error = "Bank transfer failed"
        self._repo.save(payment)
        return True


def _match_transfer_intent(payment: BuildPayment, amount: int) -> Optional[BankTransferIntent]:
    """First unpaid intent expecting ``amount``, else the first unpaid one."""
    unpaid = list(
        BankTransferIntent.objects.filter(payment=payment)
        .exclude(status=TransferIntentStatus.PAID)
        .order_by("created_at")
    )
    for intent in unpaid:
        if intent.expected_amount_cents == amount:
            return intent
    return unpaid[0] if unpaid else None
