"""Contract domain exceptions."""

from __future__ import annotations

from shared.domain.notifications import ErrorKind


class UnknownContractPack(Exception):
    pass


class ContractPackLocked(Exception):
    """The pack cannot be started or acknowledged in the current state."""

    def __init__(self, code: str, message: str) -> None:
        super().__init__(message)
        self.code = code


class SigningSessionError(Exception):
    """The e-signature collaborator failed.  The buyer may retry by hand."""

    kind = ErrorKind.SIGNING_SESSION_FAILED

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
