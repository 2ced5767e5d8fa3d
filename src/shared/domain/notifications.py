"""User-facing notification primitives.

Every error that reaches a buyer is expressed as a ``Toast``.  Collaborator
failures are classified once into an ``ErrorKind`` and converted through the
single ``TOAST_BY_KIND`` table; anything unclassified falls back to
``GENERIC_ERROR_TOAST``.  Raw exception text never ends up in a toast.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from enum import StrEnum


class ToastType(StrEnum):
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"
    SUCCESS = "success"


@dataclass(frozen=True)
class Toast:
    """Immutable notification payload rendered by the UI layer."""

    type: ToastType
    title: str
    message: str

    def as_dict(self) -> dict[str, str]:
        data = asdict(self)
        data["type"] = str(self.type)
        return data


class ErrorKind(StrEnum):
    """Classification of collaborator and checkout failures."""

    SETUP_INTENT_INVALID = "setup_intent_invalid"
    SETUP_INTENT_EXPIRED = "setup_intent_expired"
    PROCESSING_ERROR = "processing_error"
    NETWORK = "network"
    PROVISION_FAILED = "provision_failed"
    SIGNING_SESSION_FAILED = "signing_session_failed"
    DECLINED = "declined"
    VALIDATION = "validation"
    AUTHENTICATION_REQUIRED = "authentication_required"
    SETUP_EXHAUSTED = "setup_exhausted"
    OFFLINE = "offline"
    UNKNOWN = "unknown"

    @property
    def recoverable(self) -> bool:
        return self in RECOVERABLE_KINDS


RECOVERABLE_KINDS: frozenset[ErrorKind] = frozenset(
    {
        ErrorKind.SETUP_INTENT_INVALID,
        ErrorKind.SETUP_INTENT_EXPIRED,
        ErrorKind.PROCESSING_ERROR,
        ErrorKind.NETWORK,
        ErrorKind.PROVISION_FAILED,
        ErrorKind.SIGNING_SESSION_FAILED,
    }
)


GENERIC_ERROR_TOAST = Toast(
    type=ToastType.ERROR,
    title="Something went wrong",
    message="Unable to complete your request. Please try again in a moment.",
)

TOAST_BY_KIND: dict[ErrorKind, Toast] = {
    ErrorKind.SETUP_INTENT_INVALID: Toast(
        ToastType.WARNING,
        "Payment session expired",
        "Your payment session needs to be refreshed. We are retrying automatically.",
    ),
    ErrorKind.SETUP_INTENT_EXPIRED: Toast(
        ToastType.WARNING,
        "Payment session expired",
        "Your payment session needs to be refreshed. We are retrying automatically.",
    ),
    ErrorKind.PROCESSING_ERROR: Toast(
        ToastType.WARNING,
        "Payment processor busy",
        "The payment processor had a temporary problem. Please try again.",
    ),
    ErrorKind.NETWORK: Toast(
        ToastType.WARNING,
        "Connection problem",
        "We could not reach the payment processor. Check your connection and try again.",
    ),
    ErrorKind.PROVISION_FAILED: Toast(
        ToastType.ERROR,
        "Transfer setup failed",
        "We could not create your bank transfer instructions. Please try again.",
    ),
    ErrorKind.SIGNING_SESSION_FAILED: Toast(
        ToastType.ERROR,
        "Could not open the contract",
        "We could not start your signing session. Please try again.",
    ),
    ErrorKind.DECLINED: Toast(
        ToastType.ERROR,
        "Payment method declined",
        "Your payment method was declined. Please use a different card or account.",
    ),
    ErrorKind.VALIDATION: Toast(
        ToastType.ERROR,
        "Check your details",
        "Some of the information provided is not valid. Please review and try again.",
    ),
    ErrorKind.AUTHENTICATION_REQUIRED: Toast(
        ToastType.INFO,
        "Verification required",
        "Your bank needs you to verify this payment method before continuing.",
    ),
    ErrorKind.SETUP_EXHAUSTED: Toast(
        ToastType.ERROR,
        "Please refresh the page",
        "We could not set up your payment method after several attempts. "
        "Refresh the page to start a new session.",
    ),
    ErrorKind.OFFLINE: Toast(
        ToastType.INFO,
        "You are offline",
        "Your changes are saved on this device and will sync when you reconnect.",
    ),
}


def toast_for(kind: ErrorKind | str | None) -> Toast:
    """Map an error kind to its user-safe toast, with a generic fallback."""
    if kind is None:
        return GENERIC_ERROR_TOAST
    try:
        kind = ErrorKind(kind)
    except ValueError:
        return GENERIC_ERROR_TOAST
    return TOAST_BY_KIND.get(kind, GENERIC_ERROR_TOAST)
