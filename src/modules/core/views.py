import time
from typing import Any, Callable, Dict

import structlog
from django.conf import settings
from django.core.cache import cache
from django.db import connections
from django.http import HttpRequest, JsonResponse
from django.utils import timezone
from rest_framework.permissions import IsAuthenticated
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.views import APIView

from modules.core.identity import is_admin, owner_id_for

logger = structlog.get_logger(__name__)


def _check_database() -> None:
    conn = connections["default"]
    conn.ensure_connection()
    with conn.cursor() as cursor:
        cursor.execute("SELECT 1")
        cursor.fetchone()


def _check_cache() -> None:
    # Settings and throttle counters live here; checkout degrades without it.
    cache.set("_health_check", "ok", 10)
    if cache.get("_health_check") != "ok":
        raise ConnectionError("Cache read failed")


def _run_check(name: str, check: Callable[[], None]) -> Dict[str, Any]:
    start = time.monotonic()
    try:
        check()
    except Exception:
        logger.error("health_check.service_failed", service=name)
        return {"status": "down"}
    return {"status": "up", "response_time_ms": round((time.monotonic() - start) * 1000, 2)}


def _collaborators() -> Dict[str, Dict[str, bool]]:
    """Whether the payment processor and e-signature keys are configured.

    Never calls out; a missing key makes the service degraded, not down.
    """
    template_ids = getattr(settings, "DOCUSEAL_TEMPLATE_IDS", {}) or {}
    return {
        "stripe": {"configured": bool(getattr(settings, "STRIPE_SECRET_KEY", ""))},
        "docuseal": {
            "configured": bool(getattr(settings, "DOCUSEAL_API_KEY", ""))
            and all(template_ids.values())
        },
    }


def health_check(request: HttpRequest) -> JsonResponse:
    services = {
        "database": _run_check("database", _check_database),
        "cache": _run_check("cache", _check_cache),
    }
    healthy = all(service["status"] == "up" for service in services.values())
    collaborators = _collaborators()
    if not healthy:
        status = "unhealthy"
    elif all(c["configured"] for c in collaborators.values()):
        status = "healthy"
    else:
        status = "degraded"

    logger.info("health_check.completed", status=status)
    return JsonResponse(
        {
            "status": status,
            "timestamp": timezone.now().isoformat(),
            "services": services,
            "collaborators": collaborators,
        },
        status=200 if healthy else 503,
    )


class MeView(APIView):
    """Identity of the signed-in buyer as seen by the checkout API.

    * No token  -> 401
    * Bad token -> 401
    * Valid JWT -> 200 with the owner id used on builds
    """

    permission_classes = [IsAuthenticated]

    def get(self, request: Request) -> Response:
        return Response(
            {
                "owner_id": owner_id_for(request.user),
                "is_admin": is_admin(request.user),
            }
        )
