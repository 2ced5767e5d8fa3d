"""Checkout Navigation Guard.

``can_navigate_to_step`` is a pure, deny-by-default decision: every
allowed path is an explicit rule below; anything else is refused with a
reason the UI can show.  It must be consulted before any step change.

Rules, in order:

1. Unknown current or target step: "Invalid step".
2. Same step or a previous step: allowed.
3. Sign In: allowed only while signed out ("Already signed in").
4. A step the build has already reached (``target <= build.step``): allowed.
5. A step listed in ``NAVIGATION_TRANSITIONS`` for the current step:
   Delivery Address needs sign-in; Overview and Payment Method also need a
   delivery address.
6. Otherwise: "Complete current step first".
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

from modules.builds.constants import (
    DEFAULT_MODEL_SLUG,
    NAVIGATION_TRANSITIONS,
    STEP_ROUTES,
    CheckoutStep,
)

INVALID_STEP = "Invalid step"
ALREADY_SIGNED_IN = "Already signed in"
SIGN_IN_REQUIRED = "Sign in required"
DELIVERY_ADDRESS_REQUIRED = "Delivery address required"
COMPLETE_CURRENT_STEP = "Complete current step first"

_ADDRESS_GATED = {CheckoutStep.OVERVIEW, CheckoutStep.PAYMENT_METHOD}


@dataclass(frozen=True)
class NavigationDecision:
    can_navigate: bool
    reason: Optional[str] = None

    @classmethod
    def allow(cls) -> NavigationDecision:
        return cls(True)

    @classmethod
    def deny(cls, reason: str) -> NavigationDecision:
        return cls(False, reason)


def resolve_step(value: Any) -> Optional[CheckoutStep]:
    """Accept a ``CheckoutStep``, its number or its label."""
    if isinstance(value, CheckoutStep):
        return value
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return CheckoutStep(value) if value in CheckoutStep.values else None
    if isinstance(value, str):
        if value.isdigit():
            return resolve_step(int(value))
        for step in CheckoutStep:
            if step.label == value:
                return step
    return None


def can_navigate_to_step(
    target: Any,
    current: Any,
    is_signed_in: bool,
    build: Any = None,
) -> NavigationDecision:
    target_step = resolve_step(target)
    current_step = resolve_step(current)
    if target_step is None or current_step is None:
        return NavigationDecision.deny(INVALID_STEP)

    if target_step <= current_step:
        return NavigationDecision.allow()

    if target_step == CheckoutStep.SIGN_IN:
        if is_signed_in:
            return NavigationDecision.deny(ALREADY_SIGNED_IN)
        return NavigationDecision.allow()

    reached = _build_step(build)
    if reached and target_step <= reached:
        return NavigationDecision.allow()

    if target_step in NAVIGATION_TRANSITIONS.get(current_step, set()):
        if not is_signed_in:
            return NavigationDecision.deny(SIGN_IN_REQUIRED)
        if target_step in _ADDRESS_GATED and not _has_delivery_address(build):
            return NavigationDecision.deny(DELIVERY_ADDRESS_REQUIRED)
        return NavigationDecision.allow()

    return NavigationDecision.deny(COMPLETE_CURRENT_STEP)


def is_step_completed(
    step: Any, current: Any, is_signed_in: bool, build: Any = None
) -> bool:
    """A step is completed once the build has reached it.

    Without a build, only steps before ``current`` count.
    """
    step_value = resolve_step(step)
    if step_value is None:
        return False
    if step_value == CheckoutStep.SIGN_IN:
        return is_signed_in
    reached = _build_step(build)
    if reached:
        return step_value <= reached
    current_step = resolve_step(current)
    return current_step is not None and step_value < current_step


def get_step_route(step: Any, build_id: Any, model_slug: str = "") -> str:
    step_value = resolve_step(step)
    if step_value is None:
        step_value = CheckoutStep.OVERVIEW
    return STEP_ROUTES[step_value].format(
        build_id=build_id, model_slug=model_slug or DEFAULT_MODEL_SLUG
    )


def _build_step(build: Any) -> int:
    if build is None:
        return 0
    value = build.get("step") if isinstance(build, dict) else getattr(build, "step", 0)
    try:
        return int(value or 0)
    except (TypeError, ValueError):
        return 0


def _has_delivery_address(build: Any) -> bool:
    if build is None:
        return False
    if isinstance(build, dict):
        info = build.get("buyer_info") or {}
        return bool(info.get("delivery_address") or info.get("address"))
    return bool(getattr(build, "has_delivery_address", False))
