"""Payment domain exceptions.

``ProcessorError`` carries an ``ErrorKind``; everything user-facing is
derived from the kind, never from the message.
"""

from __future__ import annotations

from typing import Optional

from shared.domain.notifications import ErrorKind


class PaymentNotFound(Exception):
    """The build has no payment record yet."""


class PaymentValidationError(Exception):
    """Client-detectable input problem.  Never retried, no processor call made."""

    def __init__(self, message: str, field: Optional[str] = None) -> None:
        super().__init__(message)
        self.field = field


class InvalidSessionTransition(Exception):
    """The payment wizard cannot move to the requested step."""

    def __init__(self, code: str, message: str) -> None:
        super().__init__(message)
        self.code = code


class PaymentNotReady(Exception):
    """Method-specific preconditions for ``ready`` are not met."""

    def __init__(self, code: str, message: str) -> None:
        super().__init__(message)
        self.code = code


class ContractNotSigned(Exception):
    """Funds are only captured after the contract is signed."""


class MilestoneAlreadyPaid(Exception):
    pass


class ProcessorError(Exception):
    """Classified failure from the payment processor."""

    def __init__(
        self,
        kind: ErrorKind,
        message: str = "",
        code: Optional[str] = None,
    ) -> None:
        super().__init__(message or str(kind))
        self.kind = kind
        self.code = code

    @property
    def recoverable(self) -> bool:
        return self.kind.recoverable


class SetupRetriesExhausted(Exception):
    """Automatic retries are used up; the buyer has to refresh the session."""

    def __init__(self, last_error: ProcessorError, attempts: int) -> None:
        super().__init__(f"Payment setup failed after {attempts} attempts.")
        self.last_error = last_error
        self.attempts = attempts
        self.kind = ErrorKind.SETUP_EXHAUSTED
