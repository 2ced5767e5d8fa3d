"""Unit tests for the checkout navigation guard.

Covers:
- Backward and same-step navigation is always allowed.
- Sign In is only reachable while signed out.
- Forward moves follow the transition table, sign-in and address gates.
- Steps the build already reached stay reachable.
- Unknown steps are denied.
- Step routes and completion markers.
"""

from __future__ import annotations

import pytest

from modules.builds.constants import CheckoutStep
from modules.builds.navigation import (
    ALREADY_SIGNED_IN,
    COMPLETE_CURRENT_STEP,
    DELIVERY_ADDRESS_REQUIRED,
    INVALID_STEP,
    SIGN_IN_REQUIRED,
    can_navigate_to_step,
    get_step_route,
    is_step_completed,
    resolve_step,
)

pytestmark = pytest.mark.unit

WITH_ADDRESS = {"step": CheckoutStep.DELIVERY_ADDRESS, "buyer_info": {"address": "1200 Main St"}}
WITHOUT_ADDRESS = {"step": CheckoutStep.DELIVERY_ADDRESS, "buyer_info": {}}


class TestBackwardNavigation:
    @pytest.mark.parametrize("current", list(CheckoutStep))
    def test_every_earlier_step_is_allowed(self, current):
        for target in CheckoutStep:
            if target <= current and target != CheckoutStep.SIGN_IN:
                assert can_navigate_to_step(target, current, True).can_navigate

    def test_same_step(self):
        decision = can_navigate_to_step(CheckoutStep.PAYMENT_METHOD, CheckoutStep.PAYMENT_METHOD, True)
        assert decision.can_navigate
        assert decision.reason is None


class TestSignIn:
    def test_signed_in_buyer_cannot_open_sign_in(self):
        decision = can_navigate_to_step(CheckoutStep.SIGN_IN, CheckoutStep.CUSTOMIZE, True)
        assert not decision.can_navigate
        assert decision.reason == ALREADY_SIGNED_IN

    def test_signed_out_buyer_can_open_sign_in(self):
        assert can_navigate_to_step(CheckoutStep.SIGN_IN, CheckoutStep.CUSTOMIZE, False).can_navigate

    def test_delivery_address_requires_sign_in(self):
        decision = can_navigate_to_step(
            CheckoutStep.DELIVERY_ADDRESS, CheckoutStep.CUSTOMIZE, False
        )
        assert decision.reason == SIGN_IN_REQUIRED


class TestForwardNavigation:
    def test_customize_to_delivery_address(self):
        assert can_navigate_to_step(
            CheckoutStep.DELIVERY_ADDRESS, CheckoutStep.CUSTOMIZE, True
        ).can_navigate

    def test_overview_needs_delivery_address(self):
        decision = can_navigate_to_step(
            CheckoutStep.OVERVIEW, CheckoutStep.DELIVERY_ADDRESS, True, WITHOUT_ADDRESS
        )
        assert decision.reason == DELIVERY_ADDRESS_REQUIRED

    def test_overview_with_delivery_address(self):
        assert can_navigate_to_step(
            CheckoutStep.OVERVIEW, CheckoutStep.DELIVERY_ADDRESS, True, WITH_ADDRESS
        ).can_navigate

    def test_cannot_skip_ahead(self):
        decision = can_navigate_to_step(
            CheckoutStep.CONTRACT, CheckoutStep.DELIVERY_ADDRESS, True, WITH_ADDRESS
        )
        assert not decision.can_navigate
        assert decision.reason == COMPLETE_CURRENT_STEP

    def test_contract_is_never_a_free_transition(self):
        build = {"step": CheckoutStep.PAYMENT_METHOD, "buyer_info": {"address": "x"}}
        decision = can_navigate_to_step(CheckoutStep.CONTRACT, CheckoutStep.PAYMENT_METHOD, True, build)
        assert decision.reason == COMPLETE_CURRENT_STEP

    def test_reached_steps_stay_open(self):
        build = {"step": CheckoutStep.CONTRACT, "buyer_info": {"address": "x"}}
        assert can_navigate_to_step(
            CheckoutStep.CONTRACT, CheckoutStep.OVERVIEW, True, build
        ).can_navigate

    def test_model_instance_is_accepted(self, build):
        assert build.step == CheckoutStep.OVERVIEW
        assert can_navigate_to_step(
            CheckoutStep.PAYMENT_METHOD, CheckoutStep.OVERVIEW, True, build
        ).can_navigate


class TestInvalidSteps:
    @pytest.mark.parametrize("target", [0, 9, "Shipping", None, True])
    def test_unknown_target(self, target):
        decision = can_navigate_to_step(target, CheckoutStep.OVERVIEW, True)
        assert decision.reason == INVALID_STEP

    def test_unknown_current(self):
        assert can_navigate_to_step(CheckoutStep.OVERVIEW, 42, True).reason == INVALID_STEP

    def test_labels_and_digits_resolve(self):
        assert resolve_step("Payment Method") == CheckoutStep.PAYMENT_METHOD
        assert resolve_step("7") == CheckoutStep.CONTRACT


class TestRoutesAndCompletion:
    def test_route_for_contract(self):
        assert get_step_route(CheckoutStep.CONTRACT, "abc") == "/checkout/abc/agreement"

    def test_customize_route_uses_model_slug(self):
        assert get_step_route(CheckoutStep.CUSTOMIZE, "abc", "willow") == "/customize/willow?buildId=abc"

    def test_unknown_step_routes_to_overview(self):
        assert get_step_route(99, "abc") == "/checkout/abc/review"

    def test_steps_up_to_build_progress_are_completed(self):
        build = {"step": CheckoutStep.PAYMENT_METHOD}
        assert is_step_completed(CheckoutStep.OVERVIEW, CheckoutStep.OVERVIEW, True, build)
        assert is_step_completed(CheckoutStep.PAYMENT_METHOD, CheckoutStep.OVERVIEW, True, build)
        assert not is_step_completed(CheckoutStep.CONTRACT, CheckoutStep.OVERVIEW, True, build)

    def test_without_build_only_earlier_steps_are_completed(self):
        assert is_step_completed(CheckoutStep.DELIVERY_ADDRESS, CheckoutStep.OVERVIEW, True)
        assert not is_step_completed(CheckoutStep.OVERVIEW, CheckoutStep.OVERVIEW, True)

    def test_sign_in_completion_follows_session(self):
        assert is_step_completed(CheckoutStep.SIGN_IN, CheckoutStep.CHOOSE_HOME, True)
        assert not is_step_completed(CheckoutStep.SIGN_IN, CheckoutStep.CHOOSE_HOME, False)
