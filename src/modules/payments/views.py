"""Payment API views.

``/api/payments/<operation>`` endpoints drive the payment wizard.  Domain
exceptions are translated into standardized error payloads whose
``notification`` comes from the error kind; processor messages are never
echoed back.
"""

from __future__ import annotations

from typing import Any, Callable

import structlog
from django.conf import settings
from rest_framework import status
from rest_framework.decorators import action
from rest_framework.permissions import AllowAny
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.throttling import BaseThrottle
from rest_framework.views import APIView
from rest_framework.viewsets import GenericViewSet

from modules.builds.exceptions import BuildNotFound, CheckoutRequirementMissing
from modules.builds.repositories.django_repository import BuildDjangoRepository
from modules.builds.serializers import BuildSerializer
from modules.builds.views import get_build_service
from modules.core.exception_handler import error_response
from modules.core.identity import owner_id_for
from modules.payments.dtos import (
    BankTransferDetailsDTO,
    PayerInfoDTO,
    SaveAchDTO,
    SaveCardDTO,
    SelectPlanDTO,
    VerifyCardDTO,
)
from modules.payments.exceptions import (
    ContractNotSigned,
    InvalidSessionTransition,
    MilestoneAlreadyPaid,
    PaymentNotReady,
    PaymentValidationError,
    ProcessorError,
    SetupRetriesExhausted,
)
from modules.payments.processors import IPaymentProcessor, StripePaymentProcessor
from modules.payments.repositories.django_repository import PaymentDjangoRepository
from modules.payments.serializers import (
    BankTransferIntentsSerializer,
    BuildRefSerializer,
    MarkReadySerializer,
    ProcessCardPaymentSerializer,
    SaveAchMethodSerializer,
    SaveCardMethodSerializer,
    SelectPlanSerializer,
    SessionStepSerializer,
    TransferIntentSerializer,
    VerifyCardSerializer,
)
from modules.payments.services import PaymentService
from modules.payments.webhooks import StripeWebhookHandler
from modules.storefront_settings.views import get_settings_provider
from shared.domain.notifications import ErrorKind

logger = structlog.get_logger(__name__)

# Actions that open a processor handshake or move money.
_SETUP_ACTIONS = {
    "setup_ach",
    "setup_card",
    "provision_bank_transfer",
    "verify_card",
    "process_card_payment",
}

_PROCESSOR_STATUS = {
    ErrorKind.DECLINED: status.HTTP_402_PAYMENT_REQUIRED,
    ErrorKind.AUTHENTICATION_REQUIRED: status.HTTP_402_PAYMENT_REQUIRED,
    ErrorKind.VALIDATION: status.HTTP_400_BAD_REQUEST,
}


def get_payment_processor() -> IPaymentProcessor:
    return StripePaymentProcessor(
        api_key=settings.STRIPE_SECRET_KEY,
        webhook_secret=settings.STRIPE_WEBHOOK_SECRET,
    )


def get_payment_service() -> PaymentService:
    return PaymentService(
        build_repository=BuildDjangoRepository(),
        payment_repository=PaymentDjangoRepository(),
        processor=get_payment_processor(),
        settings_provider=get_settings_provider(),
        build_service=get_build_service(),
    )


def payment_error_response(exc: Exception) -> Response:
    """Translate a payment-domain exception into an API error."""
    if isinstance(exc, BuildNotFound):
        return error_response("build_not_found", "Build not found.", status=status.HTTP_404_NOT_FOUND)
    if isinstance(exc, PaymentValidationError):
        return error_response(
            "invalid_payment_details", str(exc), kind=ErrorKind.VALIDATION, attr=exc.field
        )
    if isinstance(exc, (InvalidSessionTransition, PaymentNotReady, CheckoutRequirementMissing)):
        return error_response(
            exc.code, str(exc), status=status.HTTP_409_CONFLICT, kind=ErrorKind.VALIDATION
        )
    if isinstance(exc, ContractNotSigned):
        return error_response(
            "contract_not_signed", str(exc), status=status.HTTP_409_CONFLICT, phase="pre_contract"
        )
    if isinstance(exc, MilestoneAlreadyPaid):
        return error_response("milestone_already_paid", str(exc), status=status.HTTP_409_CONFLICT)
    if isinstance(exc, SetupRetriesExhausted):
        return error_response(
            "setup_exhausted",
            "Payment setup failed. Refresh the page to start a new session.",
            status=status.HTTP_502_BAD_GATEWAY,
            kind=ErrorKind.SETUP_EXHAUSTED,
            recoverable=False,
            needs_refresh=True,
        )
    if isinstance(exc, ProcessorError):
        return error_response(
            str(exc.kind),
            "The payment processor rejected the request.",
            status=_PROCESSOR_STATUS.get(exc.kind, status.HTTP_502_BAD_GATEWAY),
            kind=exc.kind,
            recoverable=exc.recoverable,
            needs_refresh=exc.kind not in _PROCESSOR_STATUS,
        )
    raise exc


class PaymentViewSet(GenericViewSet):
    """Payment wizard operations, one ``@action`` per endpoint."""

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self._service = get_payment_service()

    def get_throttles(self) -> list[BaseThrottle]:
        self.throttle_scope = "payment_setup" if self.action in _SETUP_ACTIONS else None
        return super().get_throttles()

    def _run(self, request: Request, serializer_class, operation: Callable[[dict, str], Any]):
        serializer = serializer_class(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        try:
            return operation(data, owner_id_for(request.user))
        except (
            BuildNotFound,
            PaymentValidationError,
            InvalidSessionTransition,
            PaymentNotReady,
            CheckoutRequirementMissing,
            ContractNotSigned,
            MilestoneAlreadyPaid,
            ProcessorError,
            SetupRetriesExhausted,
        ) as exc:
            return payment_error_response(exc)

    # ------------------------------------------------------------------
    # Session
    # ------------------------------------------------------------------

    @action(detail=False, methods=["get"])
    def session(self, request: Request) -> Response:
        """GET /api/payments/session?buildId=..."""
        serializer = BuildRefSerializer(
            data={"build_id": request.query_params.get("buildId") or request.query_params.get("build_id")}
        )
        serializer.is_valid(raise_exception=True)
        try:
            snapshot = self._service.get_session(
                str(serializer.validated_data["build_id"]), owner_id_for(request.user)
            )
        except BuildNotFound as exc:
            return payment_error_response(exc)
        return Response(snapshot)

    @action(detail=False, methods=["post"])
    def select(self, request: Request) -> Response:
        def operation(data, owner_id):
            dto = SelectPlanDTO(
                method=data["method"],
                plan_type=data["plan_type"],
                plan_percent=data.get("plan_percent"),
            )
            return Response(self._service.select(str(data["build_id"]), owner_id, dto))

        return self._run(request, SelectPlanSerializer, operation)

    @action(detail=False, methods=["post"], url_path="session-step")
    def session_step(self, request: Request) -> Response:
        return self._run(
            request,
            SessionStepSerializer,
            lambda data, owner_id: Response(
                self._service.go_to_step(str(data["build_id"]), owner_id, data["step"])
            ),
        )

    # ------------------------------------------------------------------
    # ACH debit
    # ------------------------------------------------------------------

    @action(detail=False, methods=["post"], url_path="setup-ach")
    def setup_ach(self, request: Request) -> Response:
        return self._run(
            request,
            BuildRefSerializer,
            lambda data, owner_id: Response(
                self._service.setup_ach(str(data["build_id"]), owner_id)
            ),
        )

    @action(detail=False, methods=["post"], url_path="save-ach-method")
    def save_ach_method(self, request: Request) -> Response:
        def operation(data, owner_id):
            dto = SaveAchDTO(
                payment_method_id=data["payment_method_id"],
                mandate_accepted=data.get("mandate_accepted", False),
                account_id=data.get("account_id"),
                balance_cents=data.get("balance_cents"),
            )
            snapshot = self._service.save_ach_method(str(data["build_id"]), owner_id, dto)
            return Response({"success": True, "session": snapshot})

        return self._run(request, SaveAchMethodSerializer, operation)

    # ------------------------------------------------------------------
    # Bank transfer
    # ------------------------------------------------------------------

    @action(detail=False, methods=["post"], url_path="provision-bank-transfer")
    def provision_bank_transfer(self, request: Request) -> Response:
        return self._run(
            request,
            BuildRefSerializer,
            lambda data, owner_id: Response(
                {
                    "success": True,
                    "virtual_account": self._service.provision_bank_transfer(
                        str(data["build_id"]), owner_id
                    ),
                }
            ),
        )

    @action(detail=False, methods=["post"], url_path="bank-transfer-intents")
    def bank_transfer_intents(self, request: Request) -> Response:
        def operation(data, owner_id):
            payer = dict(data["payer_info"])
            payer.setdefault("billing_address", {})
            dto = BankTransferDetailsDTO(
                payer_info=PayerInfoDTO(**payer),
                commitments=data.get("commitments") or {},
                plan_type=data.get("plan_type"),
                plan_percent=data.get("plan_percent"),
            )
            intents = self._service.submit_bank_transfer_details(
                str(data["build_id"]), owner_id, dto
            )
            return Response(
                {
                    "success": True,
                    "intents": TransferIntentSerializer(intents, many=True).data,
                }
            )

        return self._run(request, BankTransferIntentsSerializer, operation)

    # ------------------------------------------------------------------
    # Card
    # ------------------------------------------------------------------

    @action(detail=False, methods=["post"], url_path="setup-card")
    def setup_card(self, request: Request) -> Response:
        return self._run(
            request,
            BuildRefSerializer,
            lambda data, owner_id: Response(
                self._service.setup_card(str(data["build_id"]), owner_id)
            ),
        )

    @action(detail=False, methods=["post"], url_path="verify-card")
    def verify_card(self, request: Request) -> Response:
        def operation(data, owner_id):
            dto = VerifyCardDTO(
                payment_method_id=data["payment_method_id"],
                cardholder_name=data.get("cardholder_name", ""),
                billing_address=data.get("billing_address") or {},
            )
            return Response(self._service.verify_card(str(data["build_id"]), owner_id, dto))

        return self._run(request, VerifyCardSerializer, operation)

    @action(detail=False, methods=["post"], url_path="save-card-method")
    def save_card_method(self, request: Request) -> Response:
        def operation(data, owner_id):
            dto = SaveCardDTO(
                payment_method_id=data["payment_method_id"],
                authorizations=data.get("authorizations") or {},
            )
            snapshot = self._service.save_card_method(str(data["build_id"]), owner_id, dto)
            return Response({"success": True, "session": snapshot})

        return self._run(request, SaveCardMethodSerializer, operation)

    @action(detail=False, methods=["post"], url_path="process-card-payment")
    def process_card_payment(self, request: Request) -> Response:
        return self._run(
            request,
            ProcessCardPaymentSerializer,
            lambda data, owner_id: Response(
                self._service.process_card_payment(
                    str(data["build_id"]), owner_id, data["milestone"]
                )
            ),
        )

    # ------------------------------------------------------------------
    # Readiness
    # ------------------------------------------------------------------

    @action(detail=False, methods=["post"], url_path="mark-ready")
    def mark_ready(self, request: Request) -> Response:
        def operation(data, owner_id):
            snapshot = self._service.mark_ready(
                str(data["build_id"]), owner_id, mandate_accepted=data.get("mandate_accepted")
            )
            return Response({"success": True, "session": snapshot})

        return self._run(request, MarkReadySerializer, operation)

    @action(detail=False, methods=["post"], url_path="continue-to-contract")
    def continue_to_contract(self, request: Request) -> Response:
        return self._run(
            request,
            BuildRefSerializer,
            lambda data, owner_id: Response(
                BuildSerializer(
                    self._service.continue_to_contract(str(data["build_id"]), owner_id)
                ).data
            ),
        )


class StripeWebhookView(APIView):
    """POST /api/webhooks/stripe.  Authenticated by the signature header only."""

    authentication_classes: list = []
    permission_classes = [AllowAny]
    throttle_classes: list = []

    def post(self, request: Request) -> Response:
        service = get_payment_service()
        signature = request.headers.get("Stripe-Signature", "")
        try:
            event = get_payment_processor().construct_webhook_event(request.body, signature)
        except ProcessorError:
            logger.warning("payment.webhook_signature_invalid")
            return error_response(
                "invalid_signature",
                "Webhook signature verification failed.",
                kind=ErrorKind.VALIDATION,
            )
        handler = StripeWebhookHandler(PaymentDjangoRepository(), service)
        applied = handler.apply(event)
        return Response({"received": True, "applied": applied})
