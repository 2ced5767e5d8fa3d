"""Payment Session State Machine.

The wizard runs ``choose -> details -> review``.  Its position and every
piece of progress live on the ``BuildPayment`` record, so a session is
rebuilt from that record on each request; re-entering after a reload
resumes where the buyer left off.

Guards:

- ``choose -> details``: a method and a plan are selected (and the card
  option is enabled when the method is card).
- ``details -> review``: ACH has a linked account and an accepted
  mandate; bank transfer has payer info and commitments recorded; card
  is verified and saved.
- ``mark_ready``: the same method preconditions.  ``ready`` is never set
  otherwise.
- ``continue_to_contract``: ``review`` with ``ready``; for cards, not
  while a verified card is still missing its charge authorizations.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Dict, Optional

import structlog

from modules.payments.constants import (
    SESSION_ORDER,
    SESSION_TRANSITIONS,
    PaymentMethod,
    PaymentStatus,
    PaymentStep,
)
from modules.payments.events import PaymentMarkedReady
from modules.payments.exceptions import InvalidSessionTransition, PaymentNotReady

if TYPE_CHECKING:
    from modules.payments.models import BuildPayment

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class Blocker:
    code: str
    message: str


class PaymentSession:
    def __init__(self, payment: BuildPayment, card_option_enabled: bool = True) -> None:
        self.payment = payment
        self.card_option_enabled = card_option_enabled

    @property
    def step(self) -> str:
        return self.payment.session_step or PaymentStep.CHOOSE

    # ------------------------------------------------------------------
    # Guards
    # ------------------------------------------------------------------

    def selection_blocker(self) -> Optional[Blocker]:
        payment = self.payment
        if not payment.method:
            return Blocker("missing_method", "Select a payment method.")
        if not payment.plan_type:
            return Blocker("missing_plan", "Select a payment plan.")
        if payment.method == PaymentMethod.CARD and not self.card_option_enabled:
            return Blocker("card_disabled", "Card payments are not available.")
        return None

    def details_blocker(self) -> Optional[Blocker]:
        payment = self.payment
        if payment.method == PaymentMethod.ACH_DEBIT:
            if not payment.saved_payment_method_id:
                return Blocker("missing_bank_account", "Link a bank account first.")
            if not payment.mandate_accepted:
                return Blocker("mandate_not_accepted", "Accept the ACH debit mandate first.")
        elif payment.method == PaymentMethod.BANK_TRANSFER:
            if not payment.transfer_confirmed or not payment.payer_info:
                return Blocker(
                    "transfer_not_confirmed",
                    "Submit payer information and acknowledge the transfer commitments.",
                )
        elif payment.method == PaymentMethod.CARD:
            if payment.card_verified_at is None:
                return Blocker("card_not_verified", "Verify your card first.")
            if not payment.saved_payment_method_id:
                return Blocker("card_not_saved", "Authorize and save your card first.")
        else:
            return Blocker("missing_method", "Select a payment method.")
        return None

    def readiness_blocker(self) -> Optional[Blocker]:
        return self.selection_blocker() or self.details_blocker()

    def blocker_for(self, target: str) -> Optional[Blocker]:
        """Reason the session cannot enter ``target``, or ``None``."""
        if target not in SESSION_ORDER:
            return Blocker("invalid_step", f"Unknown payment step {target!r}.")
        if SESSION_ORDER.index(target) <= SESSION_ORDER.index(self.step):
            return None
        if target == PaymentStep.DETAILS:
            return self.selection_blocker()
        # review: everything before it must hold too
        return self.readiness_blocker()

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def go_to(self, target: str) -> str:
        blocker = self.blocker_for(target)
        if blocker is not None:
            raise InvalidSessionTransition(blocker.code, blocker.message)
        if target != self.step and target not in SESSION_TRANSITIONS[self.step]:
            # Moving back, or skipping ahead with every guard satisfied.
            logger.info("payment.session_jump", from_step=self.step, to_step=target)
        self.payment.session_step = target
        return target

    def advance(self) -> str:
        """Move to the next step if its guard holds."""
        following = SESSION_TRANSITIONS[self.step]
        if not following:
            return self.step
        return self.go_to(next(iter(following)))

    def mark_ready(self) -> None:
        """Set ``ready`` once the method preconditions hold.

        Raises:
            PaymentNotReady: a precondition is missing; ``ready`` is untouched.
        """
        blocker = self.readiness_blocker()
        if blocker is not None:
            logger.info(
                "payment.mark_ready_rejected",
                build_id=str(self.payment.build_id),
                code=blocker.code,
            )
            raise PaymentNotReady(blocker.code, blocker.message)
        payment = self.payment
        already_ready = payment.ready
        payment.ready = True
        payment.session_step = PaymentStep.REVIEW
        if payment.status in (PaymentStatus.PENDING, PaymentStatus.FAILED, ""):
            payment.status = PaymentStatus.READY
        if not already_ready:
            payment.add_domain_event(
                PaymentMarkedReady(aggregate_id=payment.build_id, method=payment.method)
            )

    def reset_readiness(self) -> None:
        self.payment.ready = False
        if self.payment.status == PaymentStatus.READY:
            self.payment.status = PaymentStatus.PENDING

    def contract_blocker(self) -> Optional[Blocker]:
        payment = self.payment
        if payment.card_pending_authorization:
            return Blocker(
                "card_not_authorized",
                "Authorize your card before continuing to the contract.",
            )
        if self.step != PaymentStep.REVIEW:
            return Blocker("session_not_reviewed", "Review your payment details first.")
        if not payment.ready:
            return Blocker("payment_not_ready", "Finish setting up your payment method first.")
        return None

    @property
    def can_continue_to_contract(self) -> bool:
        return self.contract_blocker() is None

    def snapshot(self) -> Dict[str, Any]:
        payment = self.payment
        blocker = self.contract_blocker()
        return {
            "build_id": str(payment.build_id),
            "step": self.step,
            "method": payment.method,
            "plan": {
                "type": payment.plan_type,
                "percent": payment.plan_percent,
                "amount_cents": payment.plan_amount_cents,
            },
            "ready": payment.ready,
            "status": payment.status,
            "mandate_accepted": payment.mandate_accepted,
            "transfer_confirmed": payment.transfer_confirmed,
            "transfer_reference": payment.transfer_reference,
            "transfer_instructions": payment.transfer_instructions or None,
            "card": payment.card_details or None,
            "card_verified": payment.card_verified_at is not None,
            "has_saved_method": bool(payment.saved_payment_method_id),
            "needs_refresh": payment.needs_refresh,
            "retry_count": payment.retry_count,
            "amounts": {
                "total": payment.total_cents,
                "deposit": payment.deposit_cents,
                "final": payment.final_cents,
            },
            "can_continue_to_contract": blocker is None,
            "blocked_reason": blocker.message if blocker else None,
        }
