"""Payment processor client.

``IPaymentProcessor`` is the only seam between the checkout and the
external processor.  ``StripePaymentProcessor`` implements it on top of the
``stripe`` SDK; every SDK failure leaves this module as a
``ProcessorError`` carrying an ``ErrorKind`` so callers never inspect
processor messages.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, Mapping, Optional

import stripe
import structlog

from modules.payments.constants import CURRENCY, PaymentMethod
from modules.payments.dtos import (
    CardVerification,
    ChargeResult,
    SetupIntentState,
    SetupSession,
    VirtualAccount,
)
from modules.payments.exceptions import ProcessorError
from shared.domain.notifications import ErrorKind

logger = structlog.get_logger(__name__)

ERROR_CODE_KINDS: dict[str, ErrorKind] = {
    "setup_intent_invalid": ErrorKind.SETUP_INTENT_INVALID,
    "setup_intent_invalid_parameter": ErrorKind.SETUP_INTENT_INVALID,
    "setup_intent_unexpected_state": ErrorKind.SETUP_INTENT_INVALID,
    "setup_intent_expired": ErrorKind.SETUP_INTENT_EXPIRED,
    "processing_error": ErrorKind.PROCESSING_ERROR,
    "card_declined": ErrorKind.DECLINED,
    "expired_card": ErrorKind.DECLINED,
    "incorrect_cvc": ErrorKind.DECLINED,
    "insufficient_funds": ErrorKind.DECLINED,
    "bank_account_declined": ErrorKind.DECLINED,
    "authentication_required": ErrorKind.AUTHENTICATION_REQUIRED,
    "setup_intent_authentication_failure": ErrorKind.AUTHENTICATION_REQUIRED,
    "validation_error": ErrorKind.VALIDATION,
}


def classify_stripe_error(exc: Exception) -> ErrorKind:
    """Map a Stripe SDK exception to an ``ErrorKind``.

    Known error codes win over the exception class.
    """
    code = getattr(exc, "code", None)
    if code and code in ERROR_CODE_KINDS:
        return ERROR_CODE_KINDS[code]
    if isinstance(exc, stripe.CardError):
        return ErrorKind.DECLINED
    if isinstance(exc, stripe.APIConnectionError):
        return ErrorKind.NETWORK
    if isinstance(exc, (stripe.RateLimitError, stripe.APIError)):
        return ErrorKind.PROCESSING_ERROR
    if isinstance(exc, stripe.InvalidRequestError):
        return ErrorKind.VALIDATION
    return ErrorKind.UNKNOWN


class IPaymentProcessor(ABC):
    @abstractmethod
    def ensure_customer(
        self,
        customer_id: str,
        email: str,
        name: str,
        metadata: Mapping[str, str],
        address: Optional[Mapping[str, str]] = None,
    ) -> str:
        """Return ``customer_id`` or create a processor customer."""

    @abstractmethod
    def create_setup_intent(
        self, customer_id: str, method: str, metadata: Mapping[str, str]
    ) -> SetupSession:
        """Start a fresh setup handshake.  Each call yields a new client secret."""

    @abstractmethod
    def attach_payment_method(self, payment_method_id: str, customer_id: str) -> None: ...

    @abstractmethod
    def verify_card(
        self, customer_id: str, payment_method_id: str, metadata: Mapping[str, str]
    ) -> CardVerification:
        """Confirm a zero-amount setup intent against the card."""

    @abstractmethod
    def create_virtual_account(self, metadata: Mapping[str, str]) -> VirtualAccount: ...

    @abstractmethod
    def charge(
        self,
        amount_cents: int,
        customer_id: str,
        payment_method_id: str,
        metadata: Mapping[str, str],
    ) -> ChargeResult: ...

    @abstractmethod
    def retrieve_setup_intent(self, setup_intent_id: str) -> SetupIntentState: ...

    @abstractmethod
    def construct_webhook_event(self, payload: bytes, signature: str) -> Dict[str, Any]:
        """Verify the webhook signature and return the event.

        Raises:
            ProcessorError: signature or payload is invalid (kind VALIDATION).
        """


class StripePaymentProcessor(IPaymentProcessor):
    """``IPaymentProcessor`` backed by the Stripe SDK.

    ``stripe_client`` defaults to the ``stripe`` module and is replaced in
    tests.
    """

    def __init__(
        self,
        api_key: str,
        webhook_secret: str = "",
        stripe_client: Any = stripe,
    ) -> None:
        self._api_key = api_key
        self._webhook_secret = webhook_secret
        self._stripe = stripe_client

    def _call(self, operation: str, func, **params) -> Any:
        try:
            return func(api_key=self._api_key, **params)
        except stripe.StripeError as exc:
            kind = classify_stripe_error(exc)
            logger.warning(
                "payment.processor_error",
                operation=operation,
                kind=str(kind),
                code=getattr(exc, "code", None),
            )
            raise ProcessorError(kind, str(exc), code=getattr(exc, "code", None)) from exc

    # ------------------------------------------------------------------
    # Customers and setup
    # ------------------------------------------------------------------

    def ensure_customer(self, customer_id, email, name, metadata, address=None) -> str:
        if customer_id:
            return customer_id
        params: Dict[str, Any] = {"email": email, "name": name, "metadata": dict(metadata)}
        if address:
            params["address"] = {
                "line1": address.get("street", ""),
                "city": address.get("city", ""),
                "state": address.get("state", ""),
                "postal_code": address.get("zip", ""),
                "country": "US",
            }
        customer = self._call("customer.create", self._stripe.Customer.create, **params)
        return customer["id"]

    def create_setup_intent(self, customer_id, method, metadata) -> SetupSession:
        params: Dict[str, Any] = {
            "customer": customer_id,
            "usage": "off_session",
            "metadata": dict(metadata),
        }
        if method == PaymentMethod.ACH_DEBIT:
            params["payment_method_types"] = ["us_bank_account"]
            params["payment_method_options"] = {
                "us_bank_account": {
                    "financial_connections": {"permissions": ["payment_method", "balances"]},
                    "verification_method": "automatic",
                }
            }
        else:
            params["payment_method_types"] = ["card"]
        intent = self._call("setup_intent.create", self._stripe.SetupIntent.create, **params)
        return SetupSession(
            setup_intent_id=intent["id"],
            client_secret=intent["client_secret"],
            customer_id=customer_id,
        )

    def attach_payment_method(self, payment_method_id, customer_id) -> None:
        self._call(
            "payment_method.attach",
            self._stripe.PaymentMethod.attach,
            payment_method=payment_method_id,
            customer=customer_id,
        )

    def verify_card(self, customer_id, payment_method_id, metadata) -> CardVerification:
        self.attach_payment_method(payment_method_id, customer_id)
        intent = self._call(
            "setup_intent.verify_card",
            self._stripe.SetupIntent.create,
            customer=customer_id,
            payment_method=payment_method_id,
            confirm=True,
            usage="off_session",
            metadata={**metadata, "verification": "true"},
        )
        card: Mapping[str, Any] = {}
        if intent["status"] == "succeeded":
            method = self._call(
                "payment_method.retrieve",
                self._stripe.PaymentMethod.retrieve,
                id=payment_method_id,
            )
            card = method.get("card") or {}
        return CardVerification(
            status=intent["status"],
            setup_intent_id=intent["id"],
            client_secret=intent.get("client_secret") or "",
            payment_method_id=payment_method_id,
            brand=card.get("brand", ""),
            last4=card.get("last4", ""),
            exp_month=card.get("exp_month"),
            exp_year=card.get("exp_year"),
        )

    def create_virtual_account(self, metadata) -> VirtualAccount:
        account = self._call(
            "account.create",
            self._stripe.Account.create,
            type="custom",
            country="US",
            business_type="individual",
            capabilities={
                "transfers": {"requested": True},
                "treasury": {"requested": True},
            },
            metadata=dict(metadata),
        )
        financial_account = self._call(
            "treasury.financial_account.create",
            self._stripe.treasury.FinancialAccount.create,
            supported_currencies=[CURRENCY],
            features={
                "financial_addresses": {"aba": {"requested": True}},
                "inbound_transfers": {"ach": {"requested": True}},
            },
            metadata=dict(metadata),
            stripe_account=account["id"],
        )
        aba = _first_aba_address(financial_account)
        return VirtualAccount(
            id=financial_account["id"],
            account_id=account["id"],
            routing_number=aba.get("routing_number") or "N/A",
            account_number=aba.get("account_number") or "N/A",
        )

    # ------------------------------------------------------------------
    # Charges and reconciliation
    # ------------------------------------------------------------------

    def charge(self, amount_cents, customer_id, payment_method_id, metadata) -> ChargeResult:
        intent = self._call(
            "payment_intent.create",
            self._stripe.PaymentIntent.create,
            amount=int(amount_cents),
            currency=CURRENCY,
            customer=customer_id,
            payment_method=payment_method_id,
            confirm=True,
            off_session=True,
            metadata=dict(metadata),
        )
        return ChargeResult(
            id=intent["id"],
            status=intent["status"],
            client_secret=intent.get("client_secret") or "",
        )

    def retrieve_setup_intent(self, setup_intent_id) -> SetupIntentState:
        intent = self._call(
            "setup_intent.retrieve", self._stripe.SetupIntent.retrieve, id=setup_intent_id
        )
        payment_method = intent.get("payment_method") or ""
        if isinstance(payment_method, Mapping):
            payment_method = payment_method.get("id", "")
        return SetupIntentState(
            id=intent["id"], status=intent["status"], payment_method_id=payment_method
        )

    def construct_webhook_event(self, payload, signature) -> Dict[str, Any]:
        try:
            event = self._stripe.Webhook.construct_event(
                payload, signature, self._webhook_secret
            )
        except (ValueError, stripe.SignatureVerificationError) as exc:
            raise ProcessorError(ErrorKind.VALIDATION, "Invalid webhook payload.") from exc
        return event


def _first_aba_address(financial_account: Mapping[str, Any]) -> Mapping[str, Any]:
    addresses = financial_account.get("financial_addresses") or []
    if not addresses:
        return {}
    return addresses[0].get("aba") or {}
