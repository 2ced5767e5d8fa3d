import time
import uuid
from contextvars import ContextVar
from typing import Callable

import structlog
from django.http import HttpRequest, HttpResponse

correlation_id_var: ContextVar[str] = ContextVar("correlation_id", default="")

logger = structlog.get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"
MAX_REQUEST_ID_LENGTH = 128

# Probed every few seconds by the orchestrator; not worth a log line each.
QUIET_PATHS = frozenset({"/health"})


class CorrelationIdMiddleware:
    """Binds a correlation ID (and the build being worked on) to every log line.

    The ID comes from the ``X-Request-ID`` header, or a new UUID4 when the
    client sent none, and is echoed back on the response.  Checkout calls
    that name their build in the query string (``?buildId=``) also get
    ``build_id`` bound, so a buyer's whole session can be followed in the
    logs.
    """

    def __init__(self, get_response: Callable[[HttpRequest], HttpResponse]) -> None:
        self.get_response = get_response

    def __call__(self, request: HttpRequest) -> HttpResponse:
        cid = (request.headers.get(REQUEST_ID_HEADER) or "")[:MAX_REQUEST_ID_LENGTH]
        cid = cid or str(uuid.uuid4())
        correlation_id_var.set(cid)

        structlog.contextvars.clear_contextvars()
        context = {"correlation_id": cid}
        build_id = request.GET.get("buildId") or request.GET.get("build_id")
        if build_id:
            context["build_id"] = build_id
        structlog.contextvars.bind_contextvars(**context)

        quiet = request.path in QUIET_PATHS
        started = time.monotonic()
        if not quiet:
            logger.info("http.request_started", method=request.method, path=request.path)

        response = self.get_response(request)

        if not quiet or response.status_code >= 500:
            logger.info(
                "http.request_finished",
                method=request.method,
                path=request.path,
                status_code=response.status_code,
                duration_ms=round((time.monotonic() - started) * 1000, 1),
            )

        response[REQUEST_ID_HEADER] = cid
        return response
