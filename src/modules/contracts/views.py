"""Contract API views.

``/api/contracts/...`` drives the pack lifecycle; ``/api/webhooks/docuseal``
receives DocuSeal submission events authenticated by a shared secret
header.
"""

from __future__ import annotations

import hmac

import structlog
from django.conf import settings
from rest_framework import status
from rest_framework.permissions import AllowAny
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.views import APIView

from modules.builds.exceptions import BuildNotFound, CheckoutRequirementMissing
from modules.builds.repositories.django_repository import BuildDjangoRepository
from modules.builds.views import build_not_found, get_build_service
from modules.contracts.constants import CompletionSource
from modules.contracts.esign import DocuSealClient, IESignatureClient
from modules.contracts.exceptions import (
    ContractPackLocked,
    SigningSessionError,
    UnknownContractPack,
)
from modules.contracts.repositories.django_repository import ContractDjangoRepository
from modules.contracts.serializers import (
    ContractBuildSerializer,
    DocuSealEventSerializer,
    StartPackSerializer,
)
from modules.contracts.services import ContractOrchestrator
from modules.core.exception_handler import error_response
from modules.core.identity import owner_id_for
from modules.storefront_settings.views import get_settings_provider
from shared.domain.notifications import ErrorKind

logger = structlog.get_logger(__name__)

SIGNATURE_HEADER = "X-DocuSeal-Signature"


def get_esign_client() -> IESignatureClient:
    return DocuSealClient(
        api_base=settings.DOCUSEAL_API_BASE,
        api_key=settings.DOCUSEAL_API_KEY,
        timeout=settings.DOCUSEAL_TIMEOUT_SECONDS,
        completed_redirect_url=settings.STOREFRONT_PUBLIC_URL.rstrip("/") + "/checkout/{build_id}/agreement",
    )


def get_contract_orchestrator() -> ContractOrchestrator:
    return ContractOrchestrator(
        build_repository=BuildDjangoRepository(),
        contract_repository=ContractDjangoRepository(),
        esign_client=get_esign_client(),
        settings_provider=get_settings_provider(),
        build_service=get_build_service(),
        template_ids=settings.DOCUSEAL_TEMPLATE_IDS,
    )


def contract_error_response(exc: Exception) -> Response:
    if isinstance(exc, BuildNotFound):
        return build_not_found()
    if isinstance(exc, UnknownContractPack):
        return error_response(
            "unknown_pack", str(exc), status=status.HTTP_404_NOT_FOUND, attr="template"
        )
    if isinstance(exc, (ContractPackLocked, CheckoutRequirementMissing)):
        return error_response(
            exc.code, str(exc), status=status.HTTP_409_CONFLICT, kind=ErrorKind.VALIDATION
        )
    if isinstance(exc, SigningSessionError):
        return error_response(
            "signing_session_failed",
            "Unable to start the signing session.",
            status=status.HTTP_502_BAD_GATEWAY,
            kind=ErrorKind.SIGNING_SESSION_FAILED,
            recoverable=True,
        )
    raise exc


CONTRACT_ERRORS = (
    BuildNotFound,
    UnknownContractPack,
    ContractPackLocked,
    CheckoutRequirementMissing,
    SigningSessionError,
)


class ContractCreateView(APIView):
    """POST /api/contracts/create"""

    def post(self, request: Request) -> Response:
        serializer = ContractBuildSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            snapshot = get_contract_orchestrator().create(
                str(serializer.validated_data["build_id"]), owner_id_for(request.user)
            )
        except CONTRACT_ERRORS as exc:
            return contract_error_response(exc)
        return Response(snapshot, status=status.HTTP_201_CREATED)


class ContractStatusView(APIView):
    """GET /api/contracts/status?buildId=..."""

    def get(self, request: Request) -> Response:
        serializer = ContractBuildSerializer(
            data={
                "build_id": request.query_params.get("buildId")
                or request.query_params.get("build_id")
            }
        )
        serializer.is_valid(raise_exception=True)
        try:
            snapshot = get_contract_orchestrator().status(
                str(serializer.validated_data["build_id"]), owner_id_for(request.user)
            )
        except CONTRACT_ERRORS as exc:
            return contract_error_response(exc)
        return Response(snapshot)


class StartPackView(APIView):
    """POST /api/contracts/{template}/start"""

    throttle_scope = "contract_start"

    def post(self, request: Request, template: str) -> Response:
        serializer = StartPackSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            session = get_contract_orchestrator().start_pack(
                str(serializer.validated_data["build_id"]), owner_id_for(request.user), template
            )
        except CONTRACT_ERRORS as exc:
            return contract_error_response(exc)
        return Response(session)


class MarkSummaryReviewedView(APIView):
    """POST /api/contracts/{build_id}/mark-summary-reviewed"""

    def post(self, request: Request, build_id) -> Response:
        try:
            snapshot = get_contract_orchestrator().mark_summary_reviewed(
                str(build_id), owner_id_for(request.user)
            )
        except CONTRACT_ERRORS as exc:
            return contract_error_response(exc)
        return Response(snapshot)


class DocuSealWebhookView(APIView):
    """POST /api/webhooks/docuseal"""

    authentication_classes: list = []
    permission_classes = [AllowAny]
    throttle_classes: list = []

    def post(self, request: Request) -> Response:
        secret = settings.DOCUSEAL_WEBHOOK_SECRET
        header = request.headers.get(SIGNATURE_HEADER, "")
        if not secret or not hmac.compare_digest(header, secret):
            logger.warning("contract.webhook_unauthorized")
            return error_response(
                "unauthorized", "Invalid webhook secret.", status=status.HTTP_401_UNAUTHORIZED
            )

        serializer = DocuSealEventSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        event_type = serializer.validated_data["event_type"] or request.data.get("type", "")
        data = serializer.validated_data["data"]
        submission = data.get("submission") or {}
        submission_id = str(data.get("submission_id") or submission.get("id") or data.get("id") or "")
        if not submission_id:
            return Response({"received": True, "applied": False})

        documents = data.get("documents") or []
        try:
            applied = get_contract_orchestrator().record_submission_event(
                submission_id,
                event_type,
                source=CompletionSource.WEBHOOK,
                document_url=(documents[0] or {}).get("url") if documents else None,
                audit_trail_url=data.get("audit_log_url") or submission.get("audit_log_url"),
            )
        except BuildNotFound:
            applied = False
        return Response({"received": True, "applied": applied})
