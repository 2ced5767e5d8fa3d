"""Build domain constants.

``CheckoutStep`` is the checkout progress enumeration stored on
``Build.step``.  ``NAVIGATION_TRANSITIONS`` lists, per step, the forward
steps a buyer may open before the build has reached them; those targets
still have to pass the guard rules in ``navigation.py``.  URL routes live
in ``STEP_ROUTES`` and are never consulted by the guard.
"""

from django.db import models


class CheckoutStep(models.IntegerChoices):
    CHOOSE_HOME = 1, "Choose Your Home"
    CUSTOMIZE = 2, "Customize!"
    SIGN_IN = 3, "Sign In"
    DELIVERY_ADDRESS = 4, "Delivery Address"
    OVERVIEW = 5, "Overview"
    PAYMENT_METHOD = 6, "Payment Method"
    CONTRACT = 7, "Contract"
    CONFIRMATION = 8, "Confirmation"


class BuildStatus(models.TextChoices):
    DRAFT = "DRAFT", "Draft"
    CHECKOUT = "CHECKOUT", "In checkout"
    CONTRACT_SIGNED = "CONTRACT_SIGNED", "Contract signed"
    CONFIRMED = "CONFIRMED", "Confirmed"


FIRST_STEP = CheckoutStep.CHOOSE_HOME
LAST_STEP = CheckoutStep.CONFIRMATION

NAVIGATION_TRANSITIONS: dict[int, set[int]] = {
    CheckoutStep.CHOOSE_HOME: set(),
    CheckoutStep.CUSTOMIZE: {CheckoutStep.SIGN_IN, CheckoutStep.DELIVERY_ADDRESS},
    CheckoutStep.SIGN_IN: {CheckoutStep.DELIVERY_ADDRESS},
    CheckoutStep.DELIVERY_ADDRESS: {CheckoutStep.OVERVIEW},
    CheckoutStep.OVERVIEW: {CheckoutStep.PAYMENT_METHOD},
    CheckoutStep.PAYMENT_METHOD: set(),
    CheckoutStep.CONTRACT: set(),
    CheckoutStep.CONFIRMATION: set(),
}

STEP_ROUTES: dict[int, str] = {
    CheckoutStep.CHOOSE_HOME: "/models",
    CheckoutStep.CUSTOMIZE: "/customize/{model_slug}?buildId={build_id}",
    CheckoutStep.SIGN_IN: "/sign-in?redirect=/checkout/{build_id}/buyer",
    CheckoutStep.DELIVERY_ADDRESS: "/checkout/{build_id}/buyer",
    CheckoutStep.OVERVIEW: "/checkout/{build_id}/review",
    CheckoutStep.PAYMENT_METHOD: "/checkout/{build_id}/payment-method",
    CheckoutStep.CONTRACT: "/checkout/{build_id}/agreement",
    CheckoutStep.CONFIRMATION: "/checkout/{build_id}/confirm",
}

DEFAULT_MODEL_SLUG = "magnolia"

REQUIRED_BUYER_FIELDS: tuple[str, ...] = ("first_name", "last_name", "email", "address")

BUILD_TOPIC = "builds"
