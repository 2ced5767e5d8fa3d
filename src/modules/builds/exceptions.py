"""Build domain exceptions.

Raised by ``BuildService``; views translate them into HTTP responses.
"""

from __future__ import annotations


class BuildNotFound(Exception):
    """The build does not exist or belongs to another owner."""


class InvalidCheckoutStep(Exception):
    """The requested step is outside 1..8."""


class CheckoutRequirementMissing(Exception):
    """A prerequisite for the requested step is not satisfied."""

    def __init__(self, code: str, message: str) -> None:
        super().__init__(message)
        self.code = code


class BuildPricingLocked(Exception):
    """Price inputs changed after payment amounts were taken from them."""

    code = "pricing_locked"
