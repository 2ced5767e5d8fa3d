"""Standardized API error payloads.

Every error response has the shape::

    {
        "type": "validation_error" | "client_error" | "server_error",
        "errors": [{"code": ..., "detail": ..., "attr": ...}],
        "notification": {"type": ..., "title": ..., "message": ...},
    }

``notification`` is the toast the UI shows.  It is derived from an
``ErrorKind`` through ``toast_for`` and never contains exception text.
"""

from __future__ import annotations

from typing import Any

import structlog
from rest_framework import status as http_status
from rest_framework.exceptions import APIException, ValidationError
from rest_framework.response import Response
from rest_framework.views import exception_handler

from shared.domain.notifications import ErrorKind, Toast, toast_for

logger = structlog.get_logger(__name__)


def standardized_exception_handler(exc: Exception, context: dict) -> Response | None:
    response = exception_handler(exc, context)
    if response is None:
        # Unhandled: Django turns this into a 500 page.
        return None

    if isinstance(exc, ValidationError):
        error_type = "validation_error"
        errors = _flatten_validation_errors(exc.detail)
        kind: ErrorKind | None = ErrorKind.VALIDATION
    else:
        error_type = "server_error" if response.status_code >= 500 else "client_error"
        detail = exc.detail if isinstance(exc, APIException) else str(exc)
        code = exc.get_codes() if isinstance(exc, APIException) else "error"
        if isinstance(code, (dict, list)):
            code = "error"
        errors = [{"code": str(code), "detail": str(detail), "attr": None}]
        kind = None

    response.data = {
        "type": error_type,
        "errors": errors,
        "notification": toast_for(kind).as_dict(),
    }
    return response


def error_response(
    code: str,
    detail: str,
    status: int = http_status.HTTP_400_BAD_REQUEST,
    kind: ErrorKind | None = None,
    attr: str | None = None,
    toast: Toast | None = None,
    **extra: Any,
) -> Response:
    """Build a standardized error response from a view-level domain failure."""
    error_type = "server_error" if status >= 500 else "client_error"
    if kind is ErrorKind.VALIDATION:
        error_type = "validation_error"
    payload: dict[str, Any] = {
        "type": error_type,
        "errors": [{"code": code, "detail": detail, "attr": attr}],
        "notification": (toast or toast_for(kind)).as_dict(),
    }
    payload.update(extra)
    logger.info("api.error_response", code=code, status_code=status)
    return Response(payload, status=status)


def _flatten_validation_errors(detail: Any, attr: str | None = None) -> list[dict]:
    errors: list[dict] = []
    if isinstance(detail, dict):
        for key, value in detail.items():
            child_attr = key if attr is None else f"{attr}.{key}"
            if key == "non_field_errors":
                child_attr = attr
            errors.extend(_flatten_validation_errors(value, child_attr))
    elif isinstance(detail, list):
        for index, value in enumerate(detail):
            if isinstance(value, (dict, list)):
                child_attr = f"{attr}.{index}" if attr else str(index)
                errors.extend(_flatten_validation_errors(value, child_attr))
            else:
                errors.extend(_flatten_validation_errors(value, attr))
    else:
        errors.append(
            {
                "code": getattr(detail, "code", "invalid"),
                "detail": str(detail),
                "attr": attr,
            }
        )
    return errors
