"""Settings API views.

``GET /api/settings`` is public and returns the safe subset used by
signed-out pricing screens.  ``GET/PUT /api/admin/settings`` is admin only.
"""

from __future__ import annotations

from rest_framework import status
from rest_framework.permissions import AllowAny
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.views import APIView

from modules.core.exception_handler import error_response
from modules.core.identity import owner_id_for
from modules.core.permissions import IsAdmin
from modules.storefront_settings.exceptions import InvalidSettings
from modules.storefront_settings.repositories.django_repository import (
    SettingsDjangoRepository,
)
from modules.storefront_settings.services import SettingsProvider
from shared.domain.notifications import ErrorKind


def get_settings_provider() -> SettingsProvider:
    return SettingsProvider(settings_repository=SettingsDjangoRepository())


class PublicSettingsView(APIView):
    authentication_classes: list = []
    permission_classes = [AllowAny]

    def get(self, request: Request) -> Response:
        return Response(get_settings_provider().get_settings().public_subset())


class AdminSettingsView(APIView):
    permission_classes = [IsAdmin]

    def get(self, request: Request) -> Response:
        return Response(get_settings_provider().get_settings().model_dump())

    def put(self, request: Request) -> Response:
        if not isinstance(request.data, dict):
            return error_response(
                "invalid_settings",
                "Settings payload must be a JSON object.",
                kind=ErrorKind.VALIDATION,
            )
        try:
            updated = get_settings_provider().update_settings(
                request.data, updated_by=owner_id_for(request.user)
            )
        except InvalidSettings as exc:
            return error_response(
                "invalid_settings",
                str(exc),
                status=status.HTTP_400_BAD_REQUEST,
                kind=ErrorKind.VALIDATION,
            )
        return Response(updated.model_dump())
