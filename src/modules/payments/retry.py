"""Bounded automatic retry for payment setup calls.

A recoverable ``ProcessorError`` is retried at most ``max_retries`` times
with a fixed delay.  A non-recoverable error is raised immediately.  When
the retries are used up ``SetupRetriesExhausted`` is raised and the caller
moves the session to the "refresh the page" state.  Each ``run`` starts
from zero, which is what a manual retry does.
"""

from __future__ import annotations

import time
from typing import Callable, Optional, TypeVar

import structlog
from django.conf import settings

from modules.payments.exceptions import ProcessorError, SetupRetriesExhausted

logger = structlog.get_logger(__name__)

T = TypeVar("T")

DEFAULT_MAX_RETRIES = 2
DEFAULT_DELAY_SECONDS = 1.0


class SetupRetryPolicy:
    def __init__(
        self,
        max_retries: int = DEFAULT_MAX_RETRIES,
        delay_seconds: float = DEFAULT_DELAY_SECONDS,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.max_retries = max_retries
        self.delay_seconds = delay_seconds
        self._sleep = sleep

    @classmethod
    def from_settings(cls) -> SetupRetryPolicy:
        return cls(
            max_retries=getattr(settings, "PAYMENT_SETUP_MAX_RETRIES", DEFAULT_MAX_RETRIES),
            delay_seconds=getattr(
                settings, "PAYMENT_SETUP_RETRY_DELAY_SECONDS", DEFAULT_DELAY_SECONDS
            ),
        )

    def run(
        self,
        operation: Callable[[], T],
        on_retry: Optional[Callable[[int, ProcessorError], None]] = None,
    ) -> T:
        retries = 0
        while True:
            try:
                return operation()
            except ProcessorError as exc:
                if not exc.recoverable:
                    raise
                if retries >= self.max_retries:
                    logger.warning(
                        "payment.setup_retries_exhausted",
                        attempts=retries + 1,
                        kind=str(exc.kind),
                    )
                    raise SetupRetriesExhausted(exc, attempts=retries + 1) from exc
                retries += 1
                logger.info(
                    "payment.setup_retry",
                    retry=retries,
                    max_retries=self.max_retries,
                    kind=str(exc.kind),
                )
                if on_retry is not None:
                    on_retry(retries, exc)
                self._sleep(self.delay_seconds)
