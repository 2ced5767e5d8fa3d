"""Build API views.

Exposes ``BuildService`` over HTTP.  Every lookup is scoped to the
authenticated owner; domain exceptions are translated into standardized
error payloads and the view never swallows generic exceptions.
"""

from __future__ import annotations

from django_filters.rest_framework import DjangoFilterBackend
from rest_framework import status
from rest_framework.decorators import action
from rest_framework.filters import OrderingFilter
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.throttling import BaseThrottle
from rest_framework.viewsets import GenericViewSet

from modules.builds.dtos import BuyerInfoDTO, CreateBuildDTO, UpdateBuildDTO
from modules.builds.exceptions import (
    BuildNotFound,
    BuildPricingLocked,
    CheckoutRequirementMissing,
    InvalidCheckoutStep,
)
from modules.builds.filters import BuildFilter
from modules.builds.models import Build
from modules.builds.repositories.django_repository import BuildDjangoRepository
from modules.builds.serializers import (
    BuildListSerializer,
    BuildSerializer,
    CheckoutStepSerializer,
    CreateBuildSerializer,
    NavigationSerializer,
    RenameBuildSerializer,
    UpdateBuildSerializer,
)
from modules.builds.services import BuildService
from modules.core.exception_handler import error_response
from modules.core.identity import owner_id_for
from modules.core.pagination import StandardResultsSetPagination
from modules.pricing.dtos import OptionLine
from modules.storefront_settings.views import get_settings_provider
from shared.domain.notifications import ErrorKind


def get_build_service() -> BuildService:
    return BuildService(
        build_repository=BuildDjangoRepository(),
        settings_provider=get_settings_provider(),
    )


def build_not_found() -> Response:
    return error_response(
        "build_not_found", "Build not found.", status=status.HTTP_404_NOT_FOUND
    )


class BuildViewSet(GenericViewSet):
    """Buyer builds and their checkout progress.

    Does **not** extend ``ModelViewSet``; all ORM access goes through the
    service/repository layer.
    """

    queryset = Build.objects.none()
    filterset_class = BuildFilter
    ordering_fields = ["updated_at", "created_at", "step"]
    ordering = ["-updated_at", "-id"]
    filter_backends = [DjangoFilterBackend, OrderingFilter]

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self._service = get_build_service()

    def get_throttles(self) -> list[BaseThrottle]:
        self.throttle_scope = "checkout_step" if self.action == "checkout_step" else None
        return super().get_throttles()

    def get_queryset(self):
        return self._service.list_builds(owner_id_for(self.request.user))

    # ------------------------------------------------------------------
    # CRUD
    # ------------------------------------------------------------------

    def create(self, request: Request) -> Response:
        """POST /api/builds"""
        serializer = CreateBuildSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        dto = CreateBuildDTO(
            owner_id=owner_id_for(request.user),
            model_slug=data["model_slug"],
            model_name=data.get("model_name", ""),
            name=data.get("name", ""),
            base_price_cents=data["base_price_cents"],
            options=[OptionLine(**option) for option in data.get("options", [])],
            delivery_fee_cents=data.get("delivery_fee_cents", 0),
            buyer_info=BuyerInfoDTO(**data["buyer_info"]) if data.get("buyer_info") else None,
        )
        build = self._service.create_build(dto)
        return Response(BuildSerializer(build).data, status=status.HTTP_201_CREATED)

    def list(self, request: Request) -> Response:
        """GET /api/builds"""
        queryset = self.filter_queryset(self.get_queryset())
        paginator = StandardResultsSetPagination()
        page = paginator.paginate_queryset(queryset, request)
        serializer = BuildListSerializer(page, many=True)
        return paginator.get_paginated_response(serializer.data)

    def retrieve(self, request: Request, pk: str | None = None) -> Response:
        """GET /api/builds/{pk}"""
        try:
            build = self._service.get_build(str(pk), owner_id_for(request.user))
        except BuildNotFound:
            return build_not_found()
        return Response(BuildSerializer(build).data)

    def partial_update(self, request: Request, pk: str | None = None) -> Response:
        """PATCH /api/builds/{pk}

        ``step`` is not writable here; use ``checkout-step``.
        """
        serializer = UpdateBuildSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = dict(serializer.validated_data)
        if "options" in data:
            data["options"] = [OptionLine(**option) for option in data["options"]]
        if "buyer_info" in data:
            data["buyer_info"] = BuyerInfoDTO(**data["buyer_info"])

        try:
            build = self._service.update_build(
                str(pk), owner_id_for(request.user), UpdateBuildDTO(**data)
            )
        except BuildNotFound:
            return build_not_found()
        except BuildPricingLocked as exc:
            return error_response(
                exc.code, str(exc), status=status.HTTP_409_CONFLICT, kind=ErrorKind.VALIDATION
            )
        return Response(BuildSerializer(build).data)

    def destroy(self, request: Request, pk: str | None = None) -> Response:
        """DELETE /api/builds/{pk}"""
        try:
            self._service.delete_build(str(pk), owner_id_for(request.user))
        except BuildNotFound:
            return build_not_found()
        return Response(status=status.HTTP_204_NO_CONTENT)

    # ------------------------------------------------------------------
    # Build management actions
    # ------------------------------------------------------------------

    @action(detail=True, methods=["post"])
    def duplicate(self, request: Request, pk: str | None = None) -> Response:
        try:
            build = self._service.duplicate_build(str(pk), owner_id_for(request.user))
        except BuildNotFound:
            return build_not_found()
        return Response(BuildSerializer(build).data, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=["post"])
    def rename(self, request: Request, pk: str | None = None) -> Response:
        serializer = RenameBuildSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            build = self._service.rename_build(
                str(pk), owner_id_for(request.user), serializer.validated_data["name"]
            )
        except BuildNotFound:
            return build_not_found()
        return Response(BuildSerializer(build).data)

    @action(detail=True, methods=["post"])
    def primary(self, request: Request, pk: str | None = None) -> Response:
        try:
            build = self._service.set_primary(str(pk), owner_id_for(request.user))
        except BuildNotFound:
            return build_not_found()
        return Response(BuildSerializer(build).data)

    # ------------------------------------------------------------------
    # Checkout
    # ------------------------------------------------------------------

    @action(detail=True, methods=["post", "patch"], url_path="checkout-step")
    def checkout_step(self, request: Request, pk: str | None = None) -> Response:
        """POST /api/builds/{pk}/checkout-step

        Moves the progress marker forward.  A lower step is accepted and
        returns the build unchanged.
        """
        serializer = CheckoutStepSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            build = self._service.advance_step(
                str(pk),
                serializer.validated_data["step"],
                owner_id=owner_id_for(request.user),
            )
        except BuildNotFound:
            return build_not_found()
        except InvalidCheckoutStep as exc:
            return error_response(
                "invalid_step", str(exc), kind=ErrorKind.VALIDATION, attr="step"
            )
        except CheckoutRequirementMissing as exc:
            return error_response(
                exc.code,
                str(exc),
                status=status.HTTP_409_CONFLICT,
                kind=ErrorKind.VALIDATION,
            )
        return Response(BuildSerializer(build).data)

    @action(detail=True, methods=["get"])
    def summary(self, request: Request, pk: str | None = None) -> Response:
        """GET /api/builds/{pk}/summary: the priced order summary."""
        try:
            breakdown = self._service.summary(str(pk), owner_id_for(request.user))
        except BuildNotFound:
            return build_not_found()
        return Response(breakdown.model_dump())

    @action(detail=True, methods=["post"])
    def navigation(self, request: Request, pk: str | None = None) -> Response:
        serializer = NavigationSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        try:
            decision, route = self._service.navigation(
                str(pk),
                owner_id_for(request.user),
                target=data["target"],
                current=data["current"],
                is_signed_in=data["is_signed_in"],
            )
        except BuildNotFound:
            return build_not_found()
        return Response(
            {
                "can_navigate": decision.can_navigate,
                "reason": decision.reason,
                "route": route,
            }
        )
