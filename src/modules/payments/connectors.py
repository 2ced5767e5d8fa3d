"""Payment Method Connectors.

One connector per payment method.  Each wraps the processor handshake
needed to obtain a usable instrument:

- ``begin_setup(build, payment)`` starts (or restarts) the handshake and
  returns the data the client needs.  A new call always replaces the
  stored client secret.
- ``confirm(build, payment, ...)`` validates the buyer's input, completes
  the handshake and returns the instrument id.
- ``save(build, payment, instrument_id, metadata)`` records the instrument
  on the payment record.

Connectors mutate ``payment`` in memory; ``PaymentService`` persists it.
"""

from __future__ import annotations

import re
import time
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Dict, List, Mapping, Optional

import structlog
from django.utils import timezone

from modules.payments.constants import (
    BANK_TRANSFER_COMMITMENTS,
    BILLING_ADDRESS_FIELDS,
    CARD_AUTHORIZATIONS,
    DEPOSIT_COMMITMENT,
    EMAIL_PATTERN,
    PAYER_REQUIRED_FIELDS,
    REFERENCE_PREFIX,
    TRANSFER_BENEFICIARY,
    ZIP_PATTERN,
    Milestone,
    PaymentMethod,
    PaymentStatus,
    PlanType,
)
from modules.payments.exceptions import PaymentValidationError, ProcessorError
from modules.payments.retry import SetupRetryPolicy
from shared.domain.notifications import ErrorKind

if TYPE_CHECKING:
    from modules.builds.models import Build
    from modules.payments.dtos import BankTransferDetailsDTO, SaveAchDTO, VerifyCardDTO
    from modules.payments.models import BuildPayment
    from modules.payments.processors import IPaymentProcessor

logger = structlog.get_logger(__name__)

_ZIP_RE = re.compile(ZIP_PATTERN)
_EMAIL_RE = re.compile(EMAIL_PATTERN)
_BASE36 = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ"


def transfer_reference_code(build_id: Any, now_ms: Optional[int] = None) -> str:
    """``FF-<last 8 of build id>-<base36 millisecond timestamp>``, upper case."""
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    return f"{REFERENCE_PREFIX}-{str(build_id)[-8:].upper()}-{_to_base36(now_ms)}"


def validate_billing_address(address: Mapping[str, Any], prefix: str = "billing_address") -> None:
    for field in BILLING_ADDRESS_FIELDS:
        if not str(address.get(field) or "").strip():
            raise PaymentValidationError(
                f"Billing address {field} is required.", field=f"{prefix}.{field}"
            )
    if not _ZIP_RE.match(str(address["zip"]).strip()):
        raise PaymentValidationError("Please enter a valid ZIP code.", field=f"{prefix}.zip")


class PaymentConnector(ABC):
    method: str

    def __init__(self, processor: IPaymentProcessor, retry_policy: SetupRetryPolicy) -> None:
        self._processor = processor
        self._retry = retry_policy

    @abstractmethod
    def begin_setup(self, build: Build, payment: BuildPayment) -> Dict[str, Any]: ...

    @abstractmethod
    def confirm(self, build: Build, payment: BuildPayment, data: Any) -> str: ...

    @abstractmethod
    def save(
        self,
        build: Build,
        payment: BuildPayment,
        instrument_id: str,
        metadata: Mapping[str, Any],
    ) -> bool: ...

    # ------------------------------------------------------------------
    # Shared helpers
    # ------------------------------------------------------------------

    def _metadata(self, build: Build) -> Dict[str, str]:
        return {"build_id": str(build.id), "owner_id": str(build.owner_id)}

    def _ensure_customer(
        self,
        build: Build,
        payment: BuildPayment,
        name: str = "",
        address: Optional[Mapping[str, str]] = None,
    ) -> str:
        info = build.buyer_info or {}
        customer_id = self._processor.ensure_customer(
            payment.processor_customer_id,
            email=info.get("email", ""),
            name=name or build.buyer_full_name(),
            metadata=self._metadata(build),
            address=address,
        )
        payment.processor_customer_id = customer_id
        return customer_id

    def _record_retry(self, payment: BuildPayment):
        def on_retry(retry: int, exc: ProcessorError) -> None:
            payment.retry_count = retry
            payment.last_error_kind = str(exc.kind)

        return on_retry

    def _start_setup_intent(self, build: Build, payment: BuildPayment) -> Dict[str, Any]:
        payment.retry_count = 0

        def attempt():
            customer_id = self._ensure_customer(build, payment)
            return self._processor.create_setup_intent(
                customer_id, self.method, self._metadata(build)
            )

        session = self._retry.run(attempt, on_retry=self._record_retry(payment))
        payment.setup_intent_id = session.setup_intent_id
        payment.client_secret = session.client_secret
        payment.needs_refresh = False
        payment.last_error_kind = ""
        logger.info(
            "payment.setup_started",
            build_id=str(build.id),
            method=self.method,
            setup_intent_id=session.setup_intent_id,
        )
        return {
            "client_secret": session.client_secret,
            "customer_id": session.customer_id,
            "setup_intent_id": session.setup_intent_id,
        }


class AchDebitConnector(PaymentConnector):
    method = PaymentMethod.ACH_DEBIT

    def begin_setup(self, build, payment) -> Dict[str, Any]:
        return self._start_setup_intent(build, payment)

    def confirm(self, build, payment, data: SaveAchDTO) -> str:
        if not data.payment_method_id:
            raise PaymentValidationError(
                "A linked bank account is required.", field="payment_method_id"
            )
        customer_id = self._ensure_customer(build, payment)
        self._processor.attach_payment_method(data.payment_method_id, customer_id)
        return data.payment_method_id

    def save(self, build, payment, instrument_id, metadata) -> bool:
        payment.method = PaymentMethod.ACH_DEBIT
        payment.saved_payment_method_id = instrument_id
        payment.financial_connections = {
            "account_id": metadata.get("account_id"),
            "last_balance_check_cents": metadata.get("balance_cents"),
        }
        if metadata.get("mandate_accepted"):
            payment.mandate_accepted = True
            payment.mandate_accepted_at = timezone.now()
        logger.info("payment.ach_method_saved", build_id=str(build.id))
        return True


class BankTransferConnector(PaymentConnector):
    method = PaymentMethod.BANK_TRANSFER

    def begin_setup(self, build, payment) -> Dict[str, Any]:
        payment.retry_count = 0

        def attempt():
            self._ensure_customer(build, payment)
            return self._processor.create_virtual_account(self._metadata(build))

        try:
            account = self._retry.run(attempt, on_retry=self._record_retry(payment))
        except ProcessorError as exc:
            if exc.kind in (ErrorKind.VALIDATION, ErrorKind.UNKNOWN):
                raise ProcessorError(ErrorKind.PROVISION_FAILED, str(exc), code=exc.code) from exc
            raise

        reference = transfer_reference_code(build.id)
        payment.method = PaymentMethod.BANK_TRANSFER
        payment.virtual_account_id = account.id
        payment.transfer_reference = reference
        payment.transfer_instructions = {
            "beneficiary": TRANSFER_BENEFICIARY,
            "routing_number": account.routing_number,
            "account_number": account.account_number,
            "reference_code": reference,
        }
        payment.needs_refresh = False
        payment.last_error_kind = ""
        logger.info(
            "payment.virtual_account_provisioned",
            build_id=str(build.id),
            virtual_account_id=account.id,
        )
        return {
            "virtual_account_id": account.id,
            "reference_code": reference,
            "instructions": dict(payment.transfer_instructions),
        }

    def confirm(self, build, payment, data: BankTransferDetailsDTO) -> str:
        payer = data.payer_info
        for field in PAYER_REQUIRED_FIELDS:
            if not str(getattr(payer, field) or "").strip():
                raise PaymentValidationError(
                    f"{field.replace('_', ' ').capitalize()} is required.",
                    field=f"payer_info.{field}",
                )
        if not _EMAIL_RE.match(payer.email):
            raise PaymentValidationError(
                "Please enter a valid email address.", field="payer_info.email"
            )
        validate_billing_address(
            payer.billing_address.model_dump(), prefix="payer_info.billing_address"
        )
        commitments = data.commitments or {}
        if not all(commitments.get(name) for name in BANK_TRANSFER_COMMITMENTS):
            raise PaymentValidationError(
                "All required commitments must be acknowledged.", field="commitments"
            )
        plan_type = data.plan_type or payment.plan_type
        if plan_type == PlanType.DEPOSIT and not commitments.get(DEPOSIT_COMMITMENT):
            raise PaymentValidationError(
                "Storage fees acknowledgment is required for deposit payments.",
                field=f"commitments.{DEPOSIT_COMMITMENT}",
            )
        if not payment.transfer_reference:
            raise PaymentValidationError(
                "Bank transfer instructions have not been provisioned yet."
            )
        return payment.transfer_reference

    def save(self, build, payment, instrument_id, metadata) -> bool:
        payment.method = PaymentMethod.BANK_TRANSFER
        payment.payer_info = dict(metadata.get("payer_info") or {})
        payment.commitments = dict(metadata.get("commitments") or {})
        payment.transfer_confirmed = True
        logger.info(
            "payment.bank_transfer_details_saved",
            build_id=str(build.id),
            reference=instrument_id,
        )
        return True

    @staticmethod
    def planned_intents(payment: BuildPayment) -> List[Dict[str, Any]]:
        """Expected transfers for the plan, amounts taken from the payment record."""
        if payment.plan_type == PlanType.DEPOSIT:
            return [
                {"milestone": Milestone.DEPOSIT, "expected_amount_cents": payment.amount_for(Milestone.DEPOSIT)},
                {"milestone": Milestone.FINAL, "expected_amount_cents": payment.amount_for(Milestone.FINAL)},
            ]
        return [
            {"milestone": Milestone.FULL, "expected_amount_cents": payment.amount_for(Milestone.FULL)}
        ]


class CardConnector(PaymentConnector):
    method = PaymentMethod.CARD

    def begin_setup(self, build, payment) -> Dict[str, Any]:
        return self._start_setup_intent(build, payment)

    def confirm(self, build, payment, data: VerifyCardDTO) -> str:
        if not data.payment_method_id:
            raise PaymentValidationError("A card is required.", field="payment_method_id")
        if not data.cardholder_name.strip():
            raise PaymentValidationError(
                "Cardholder name is required.", field="cardholder_name"
            )
        address = data.billing_address.model_dump()
        validate_billing_address(address)

        customer_id = self._ensure_customer(
            build, payment, name=data.cardholder_name, address=address
        )
        verification = self._processor.verify_card(
            customer_id, data.payment_method_id, self._metadata(build)
        )
        payment.method = PaymentMethod.CARD
        payment.setup_intent_id = verification.setup_intent_id
        if verification.requires_action:
            payment.client_secret = verification.client_secret
            raise ProcessorError(
                ErrorKind.AUTHENTICATION_REQUIRED,
                "Additional authentication required.",
                code="requires_action",
            )
        if not verification.succeeded:
            raise ProcessorError(ErrorKind.DECLINED, "Card verification failed.")

        payment.cardholder_name = data.cardholder_name.strip()
        payment.billing_address = address
        payment.card_details = {
            **verification.card_details(),
            "payment_method_id": verification.payment_method_id,
        }
        payment.card_verified_at = timezone.now()
        logger.info(
            "payment.card_verified",
            build_id=str(build.id),
            brand=verification.brand,
            last4=verification.last4,
        )
        return verification.payment_method_id

    def save(self, build, payment, instrument_id, metadata) -> bool:
        authorizations = metadata.get("authorizations") or {}
        if not all(authorizations.get(name) for name in CARD_AUTHORIZATIONS):
            raise PaymentValidationError(
                "All required authorizations must be acknowledged.", field="authorizations"
            )
        if payment.card_verified_at is None:
            raise PaymentValidationError("Verify the card before saving it.")
        if instrument_id != payment.card_details.get("payment_method_id", instrument_id):
            raise PaymentValidationError(
                "The saved card does not match the verified card.", field="payment_method_id"
            )
        payment.saved_payment_method_id = instrument_id
        payment.authorizations = {name: True for name in CARD_AUTHORIZATIONS}
        payment.status = PaymentStatus.PENDING_CONTRACT
        logger.info("payment.card_method_saved", build_id=str(build.id))
        return True


def _to_base36(value: int) -> str:
    if value == 0:
        return "0"
    digits = []
    while value:
        value, remainder = divmod(value, 36)
        digits.append(_BASE36[remainder])
    return "".join(reversed(digits))
