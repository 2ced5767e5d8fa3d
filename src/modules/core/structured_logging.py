"""structlog setup shared by Django, Celery workers and management commands.

Settings call ``configure_structlog()`` and take ``LOGGING`` from
``logging_config()``; both structlog loggers and stdlib records end up in
the same JSON formatter with the same processor chain.
"""

from __future__ import annotations

import re
from typing import Any

import structlog

MASK = "***MASKED***"

SENSITIVE_PATTERN = re.compile(
    # card number (PAN): 13-19 digits, never part of a longer dash-joined token such as a UUID
    r"((?<![\w-])(?:\d[ -]?){12,18}\d(?![\w-]))"
    r"|(account_?number|routing_?number|accountNumber|routingNumber"
    r"|password|passwd|secret|token|authorization|client_secret)"
    r"""([=:]\s*["']?)([^\s,}"']+)""",
    re.IGNORECASE,
)


def _mask(value: Any) -> Any:
    if isinstance(value, str):
        return SENSITIVE_PATTERN.sub(MASK, value)
    if isinstance(value, dict):
        return {key: _mask(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_mask(item) for item in value]
    return value


def mask_sensitive_data(_, __, event_dict):
    """Mask card numbers, bank account details and credentials in every value."""
    for key, value in list(event_dict.items()):
        event_dict[key] = _mask(value)
    return event_dict


SHARED_PROCESSORS = [
    structlog.contextvars.merge_contextvars,
    structlog.stdlib.add_log_level,
    structlog.stdlib.add_logger_name,
    structlog.processors.TimeStamper(fmt="iso"),
    mask_sensitive_data,
    structlog.processors.StackInfoRenderer(),
    structlog.processors.UnicodeDecoder(),
]


def configure_structlog() -> None:
    structlog.configure(
        processors=[*SHARED_PROCESSORS, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def logging_config(level: str = "INFO") -> dict:
    console = {"handlers": ["console"], "propagate": False}
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "json": {
                "()": structlog.stdlib.ProcessorFormatter,
                "processors": [
                    structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                    structlog.processors.JSONRenderer(),
                ],
                "foreign_pre_chain": SHARED_PROCESSORS,
            },
        },
        "handlers": {
            "console": {"class": "logging.StreamHandler", "formatter": "json"},
        },
        "root": {"handlers": ["console"], "level": level},
        "loggers": {
            # checkout modules propagate to root so request logs and domain logs share a handler
            "modules": {"level": level},
            "django": {**console, "level": "INFO"},
            "django.server": {**console, "level": "WARNING"},
            "celery": {**console, "level": level},
        },
    }
