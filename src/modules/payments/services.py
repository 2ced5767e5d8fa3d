"""Payment service layer (Use Cases).

Drives the payment wizard for one build: method/plan selection, the
method connectors, readiness, the hand-off to the contract step and the
post-signature card charges.

No funds are captured before the contract is signed.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, List, Optional

import structlog
from django.db import transaction
from django.utils import timezone

from modules.builds.constants import CheckoutStep
from modules.builds.exceptions import BuildNotFound
from modules.payments.connectors import (
    AchDebitConnector,
    BankTransferConnector,
    CardConnector,
    PaymentConnector,
)
from modules.payments.constants import (
    Milestone,
    PaymentMethod,
    PaymentStatus,
    PaymentStep,
    PlanType,
)
from modules.payments.events import MilestoneCharged, PaymentMethodSelected, PaymentReadinessRevoked
from modules.payments.exceptions import (
    ContractNotSigned,
    InvalidSessionTransition,
    MilestoneAlreadyPaid,
    PaymentValidationError,
    ProcessorError,
    SetupRetriesExhausted,
)
from modules.payments.retry import SetupRetryPolicy
from modules.payments.session import PaymentSession
from modules.pricing.calculator import calculate_total, deposit_cents, to_chargeable_cents
from shared.domain.notifications import ErrorKind

if TYPE_CHECKING:
    from modules.builds.models import Build
    from modules.builds.repositories.interfaces import IBuildRepository
    from modules.builds.services import BuildService
    from modules.payments.dtos import (
        BankTransferDetailsDTO,
        SaveAchDTO,
        SaveCardDTO,
        SelectPlanDTO,
        VerifyCardDTO,
    )
    from modules.payments.models import BankTransferIntent, BuildPayment
    from modules.payments.processors import IPaymentProcessor
    from modules.payments.repositories.interfaces import IPaymentRepository
    from modules.storefront_settings.services import SettingsProvider

logger = structlog.get_logger(__name__)

RECONCILED_METHODS = (PaymentMethod.ACH_DEBIT, PaymentMethod.CARD)

PLAN_MILESTONES: Dict[str, tuple[str, ...]] = {
    PlanType.DEPOSIT: (Milestone.DEPOSIT, Milestone.FINAL),
    PlanType.FULL: (Milestone.FULL,),
}


class PaymentService:
    """Application service for the payment wizard.

    Receives repositories, the processor client and the settings provider
    via constructor injection.  ``build_service`` is used to move the
    build's checkout step once the payment is ready.
    """

    def __init__(
        self,
        build_repository: IBuildRepository,
        payment_repository: IPaymentRepository,
        processor: IPaymentProcessor,
        settings_provider: SettingsProvider,
        build_service: BuildService,
        retry_policy: Optional[SetupRetryPolicy] = None,
    ) -> None:
        self._build_repo = build_repository
        self._payment_repo = payment_repository
        self._processor = processor
        self._settings = settings_provider
        self._build_service = build_service
        retry = retry_policy or SetupRetryPolicy.from_settings()
        self._connectors: Dict[str, PaymentConnector] = {
            PaymentMethod.ACH_DEBIT: AchDebitConnector(processor, retry),
            PaymentMethod.BANK_TRANSFER: BankTransferConnector(processor, retry),
            PaymentMethod.CARD: CardConnector(processor, retry),
        }

    def connector(self, method: str) -> PaymentConnector:
        return self._connectors[method]

    # ------------------------------------------------------------------
    # Session
    # ------------------------------------------------------------------

    @transaction.atomic
    def get_session(self, build_id: str, owner_id: str) -> Dict[str, Any]:
        _, payment = self._load(build_id, owner_id)
        return self._session(payment).snapshot()

    @transaction.atomic
    def select(self, build_id: str, owner_id: str, dto: SelectPlanDTO) -> Dict[str, Any]:
        """Choose method and plan, then move the wizard to ``details``."""
        build, payment = self._load(build_id, owner_id)
        settings = self._settings.get_settings()
        if dto.method == PaymentMethod.CARD and not settings.enable_card_option:
            raise InvalidSessionTransition("card_disabled", "Card payments are not available.")

        session = self._session(payment)
        if payment.method and payment.method != dto.method:
            self._clear_method_state(payment)
            session.reset_readiness()
        if payment.plan_type and payment.plan_type != dto.plan_type:
            session.reset_readiness()

        payment.method = dto.method
        payment.plan_type = dto.plan_type
        payment.plan_percent = (
            dto.plan_percent if dto.plan_type == PlanType.DEPOSIT else None
        )
        self._apply_amounts(build, payment)
        if session.step == PaymentStep.CHOOSE:
            session.go_to(PaymentStep.DETAILS)
        payment.add_domain_event(
            PaymentMethodSelected(
                aggregate_id=build.id, method=dto.method, plan_type=dto.plan_type
            )
        )
        self._payment_repo.save(payment)
        logger.info(
            "payment.method_selected",
            build_id=build_id,
            method=str(dto.method),
            plan_type=str(dto.plan_type),
        )
        return session.snapshot()

    @transaction.atomic
    def go_to_step(self, build_id: str, owner_id: str, step: str) -> Dict[str, Any]:
        _, payment = self._load(build_id, owner_id)
        session = self._session(payment)
        session.go_to(step)
        self._payment_repo.save(payment)
        return session.snapshot()

    # ------------------------------------------------------------------
    # Setup handshakes (retried)
    # ------------------------------------------------------------------

    def setup_ach(self, build_id: str, owner_id: str) -> Dict[str, Any]:
        return self._begin_setup(build_id, owner_id, PaymentMethod.ACH_DEBIT)

    def setup_card(self, build_id: str, owner_id: str) -> Dict[str, Any]:
        return self._begin_setup(build_id, owner_id, PaymentMethod.CARD)

    def provision_bank_transfer(self, build_id: str, owner_id: str) -> Dict[str, Any]:
        return self._begin_setup(build_id, owner_id, PaymentMethod.BANK_TRANSFER)

    def _begin_setup(self, build_id: str, owner_id: str, method: str) -> Dict[str, Any]:
        """Run a connector's ``begin_setup`` under the retry policy.

        On failure ``needs_refresh`` is written in its own transaction so the
        session still shows it after a reload.
        """
        log = logger.bind(build_id=build_id, method=method)
        try:
            with transaction.atomic():
                build, payment = self._load(build_id, owner_id)
                self._require_method(payment, method)
                data = self.connector(method).begin_setup(build, payment)
                self._payment_repo.save(payment)
                return data
        except SetupRetriesExhausted as exc:
            self._flag_needs_refresh(build_id, str(exc.last_error.kind))
            log.warning("payment.setup_needs_refresh", attempts=exc.attempts)
            raise
        except ProcessorError as exc:
            self._flag_needs_refresh(build_id, str(exc.kind))
            log.warning("payment.setup_failed", kind=str(exc.kind))
            raise

    @transaction.atomic
    def _flag_needs_refresh(self, build_id: str, kind: str) -> None:
        payment = self._payment_repo.get_for_build(build_id)
        if payment is None:
            return
        payment.needs_refresh = True
        payment.last_error_kind = kind
        self._payment_repo.save(payment)

    # ------------------------------------------------------------------
    # Method details
    # ------------------------------------------------------------------

    @transaction.atomic
    def save_ach_method(self, build_id: str, owner_id: str, dto: SaveAchDTO) -> Dict[str, Any]:
        build, payment = self._load(build_id, owner_id)
        self._require_method(payment, PaymentMethod.ACH_DEBIT)
        connector = self.connector(PaymentMethod.ACH_DEBIT)
        instrument_id = connector.confirm(build, payment, dto)
        connector.save(
            build,
            payment,
            instrument_id,
            {
                "account_id": dto.account_id,
                "balance_cents": dto.balance_cents,
                "mandate_accepted": dto.mandate_accepted,
            },
        )
        self._payment_repo.save(payment)
        return self._session(payment).snapshot()

    @transaction.atomic
    def submit_bank_transfer_details(
        self, build_id: str, owner_id: str, dto: BankTransferDetailsDTO
    ) -> List[BankTransferIntent]:
        """Record payer info and commitments and create the expected transfers."""
        build, payment = self._load(build_id, owner_id)
        self._require_method(payment, PaymentMethod.BANK_TRANSFER)
        if dto.plan_type is not None:
            payment.plan_type = dto.plan_type
            payment.plan_percent = dto.plan_percent if dto.plan_type == PlanType.DEPOSIT else None
        if not payment.plan_type:
            raise PaymentValidationError("Select a payment plan.", field="plan_type")

        connector = self.connector(PaymentMethod.BANK_TRANSFER)
        reference = connector.confirm(build, payment, dto)
        connector.save(
            build,
            payment,
            reference,
            {
                "payer_info": dto.payer_info.model_dump(mode="json"),
                "commitments": dict(dto.commitments),
            },
        )
        self._apply_amounts(build, payment)
        self._payment_repo.save(payment)
        return self._payment_repo.replace_transfer_intents(
            payment, BankTransferConnector.planned_intents(payment), created_by=owner_id
        )

    @transaction.atomic
    def verify_card(self, build_id: str, owner_id: str, dto: VerifyCardDTO) -> Dict[str, Any]:
        """Verify a card with a zero-amount setup.

        A card that needs extra authentication is not an error for the
        caller: the result carries ``requires_action`` and a client secret.
        """
        build, payment = self._load(build_id, owner_id)
        self._require_method(payment, PaymentMethod.CARD)
        try:
            payment_method_id = self.connector(PaymentMethod.CARD).confirm(build, payment, dto)
        except ProcessorError as exc:
            if exc.code != "requires_action":
                raise
            self._payment_repo.save(payment)
            return {
                "success": False,
                "requires_action": True,
                "client_secret": payment.client_secret,
            }
        self._payment_repo.save(payment)
        return {
            "success": True,
            "requires_action": False,
            "payment_method": {"id": payment_method_id, **(payment.card_details or {})},
            "setup_intent_id": payment.setup_intent_id,
        }

    @transaction.atomic
    def save_card_method(self, build_id: str, owner_id: str, dto: SaveCardDTO) -> Dict[str, Any]:
        build, payment = self._load(build_id, owner_id)
        self._require_method(payment, PaymentMethod.CARD)
        self.connector(PaymentMethod.CARD).save(
            build, payment, dto.payment_method_id, {"authorizations": dto.authorizations}
        )
        self._apply_amounts(build, payment)
        self._payment_repo.save(payment)
        return self._session(payment).snapshot()

    # ------------------------------------------------------------------
    # Readiness and hand-off
    # ------------------------------------------------------------------

    @transaction.atomic
    def mark_ready(
        self,
        build_id: str,
        owner_id: str,
        mandate_accepted: Optional[bool] = None,
    ) -> Dict[str, Any]:
        """Raises ``PaymentNotReady`` (with ``ready`` left false) when preconditions fail."""
        build, payment = self._load(build_id, owner_id)
        if mandate_accepted and payment.method == PaymentMethod.ACH_DEBIT and not payment.mandate_accepted:
            payment.mandate_accepted = True
            payment.mandate_accepted_at = timezone.now()
        self._apply_amounts(build, payment)
        self._session(payment).mark_ready()
        self._payment_repo.save(payment)
        logger.info("payment.marked_ready", build_id=build_id, method=payment.method)
        return self._session(payment).snapshot()

    @transaction.atomic
    def continue_to_contract(self, build_id: str, owner_id: str) -> Build:
        _, payment = self._load(build_id, owner_id)
        blocker = self._session(payment).contract_blocker()
        if blocker is not None:
            raise InvalidSessionTransition(blocker.code, blocker.message)
        build = self._build_service.advance_step(
            build_id, CheckoutStep.CONTRACT, owner_id=owner_id
        )
        logger.info("payment.continued_to_contract", build_id=build_id)
        return build

    # ------------------------------------------------------------------
    # Post-signature charges
    # ------------------------------------------------------------------

    @transaction.atomic
    def process_card_payment(
        self, build_id: str, owner_id: str, milestone: str
    ) -> Dict[str, Any]:
        build, payment = self._load(build_id, owner_id)
        if milestone not in Milestone.values:
            raise PaymentValidationError("Invalid milestone.", field="milestone")
        if not build.contract_signed:
            raise ContractNotSigned("Contract must be signed before processing payment.")
        if payment.method != PaymentMethod.CARD or not payment.saved_payment_method_id:
            raise PaymentValidationError("Credit card payment method not found.")
        if milestone not in PLAN_MILESTONES.get(payment.plan_type, ()):
            raise PaymentValidationError(
                f"Milestone {milestone} does not apply to this payment plan.", field="milestone"
            )
        if payment.is_milestone_paid(milestone):
            raise MilestoneAlreadyPaid(f"{milestone} payment has already been processed.")
        amount = payment.amount_for(milestone)
        if amount <= 0:
            raise PaymentValidationError("Invalid payment amount.", field="milestone")

        result = self._processor.charge(
            amount,
            payment.processor_customer_id,
            payment.saved_payment_method_id,
            {
                "build_id": str(build.id),
                "owner_id": owner_id,
                "milestone": milestone,
                "plan_type": payment.plan_type,
            },
        )
        payment.last_payment_intent_id = result.id
        if result.status == "requires_action":
            self._payment_repo.save(payment)
            return {
                "success": False,
                "status": result.status,
                "payment_intent_id": result.id,
                "client_secret": result.client_secret,
            }
        if result.status != "succeeded":
            logger.warning(
                "payment.charge_failed", build_id=build_id, milestone=milestone, status=result.status
            )
            raise ProcessorError(
                ErrorKind.DECLINED, f"Payment failed with status {result.status}", code=result.status
            )

        setattr(payment, f"{milestone}_paid_at", timezone.now())
        payment.status = PaymentStatus.FULLY_PAID if payment.all_paid else PaymentStatus.SUCCEEDED
        payment.add_domain_event(
            MilestoneCharged(aggregate_id=build.id, milestone=milestone, amount_cents=amount)
        )
        self._payment_repo.save(payment)
        logger.info(
            "payment.milestone_charged",
            build_id=build_id,
            milestone=milestone,
            amount_cents=amount,
        )
        return {
            "success": True,
            "status": result.status,
            "payment_intent_id": result.id,
            "milestone": milestone,
            "amount": amount,
            "all_paid": payment.all_paid,
        }

    # ------------------------------------------------------------------
    # Reconciliation
    # ------------------------------------------------------------------

    def revoke_readiness(self, payment: BuildPayment, reason: str) -> None:
        """``payment`` must be row-locked by the caller."""
        self._session(payment).reset_readiness()
        payment.session_step = PaymentStep.DETAILS
        payment.add_domain_event(PaymentReadinessRevoked(aggregate_id=payment.build_id, reason=reason))
        self._payment_repo.save(payment)
        logger.warning("payment.readiness_revoked", build_id=str(payment.build_id), reason=reason)

    def reconcile_readiness(self) -> Dict[str, int]:
        """Clear ``ready`` where the processor no longer reports the setup usable."""
        checked = revoked = errors = 0
        for payment in self._payment_repo.list_ready(RECONCILED_METHODS):
            if not payment.setup_intent_id:
                continue
            checked += 1
            try:
                state = self._processor.retrieve_setup_intent(payment.setup_intent_id)
            except ProcessorError as exc:
                errors += 1
                logger.warning(
                    "payment.reconcile_lookup_failed",
                    build_id=str(payment.build_id),
                    kind=str(exc.kind),
                )
                continue
            if state.usable:
                continue
            if self._revoke_if_unchanged(payment, f"setup_intent_{state.status}"):
                revoked += 1
        logger.info("payment.reconcile_completed", checked=checked, revoked=revoked, errors=errors)
        return {"checked": checked, "revoked": revoked, "errors": errors}

    @transaction.atomic
    def _revoke_if_unchanged(self, stale: BuildPayment, reason: str) -> bool:
        # the row may have moved on while the processor was queried
        payment = self._payment_repo.get_for_build(stale.build_id)
        if payment is None or not payment.ready or payment.setup_intent_id != stale.setup_intent_id:
            logger.info("payment.reconcile_skipped", build_id=str(stale.build_id), reason="changed")
            return False
        self.revoke_readiness(payment, reason)
        return True

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _load(self, build_id: str, owner_id: str) -> tuple[Build, BuildPayment]:
        build = self._build_repo.get_for_update(build_id, owner_id)
        if not build:
            raise BuildNotFound(f"Build {build_id} not found.")
        return build, self._payment_repo.get_or_create_for_build(build)

    def _session(self, payment: BuildPayment) -> PaymentSession:
        return PaymentSession(
            payment, card_option_enabled=self._settings.get_settings().enable_card_option
        )

    @staticmethod
    def _require_method(payment: BuildPayment, method: str) -> None:
        if payment.method != method:
            raise InvalidSessionTransition(
                "method_mismatch",
                f"Select {PaymentMethod(method).label} as your payment method first.",
            )

    def _apply_amounts(self, build: Build, payment: BuildPayment) -> None:
        """Derive the integer charge amounts from the calculator total."""
        settings = self._settings.get_settings()
        total = calculate_total(build, settings)
        total_cents = to_chargeable_cents(total)
        if payment.plan_type == PlanType.DEPOSIT:
            percent = payment.plan_percent or settings.deposit_percent
            deposit = deposit_cents(total, percent)
            payment.plan_percent = percent
            payment.plan_amount_cents = deposit
        else:
            deposit = total_cents
            payment.plan_amount_cents = total_cents
        payment.total_cents = total_cents
        payment.deposit_cents = deposit
        payment.final_cents = total_cents - deposit

    @staticmethod
    def _clear_method_state(payment: BuildPayment) -> None:
        payment.setup_intent_id = ""
        payment.client_secret = ""
        payment.saved_payment_method_id = ""
        payment.mandate_accepted = False
        payment.mandate_accepted_at = None
        payment.transfer_confirmed = False
        payment.card_verified_at = None
        payment.card_details = {}
        payment.authorizations = {}
        payment.needs_refresh = False
        payment.retry_count = 0
        payment.session_step = PaymentStep.DETAILS
