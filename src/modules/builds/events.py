"""Domain events for the Builds bounded context."""

from __future__ import annotations

from dataclasses import dataclass

from shared.domain.events import DomainEvent


@dataclass(frozen=True)
class BuildCreated(DomainEvent):
    """Raised when a buyer starts a build."""


@dataclass(frozen=True)
class BuildStepAdvanced(DomainEvent):
    """Raised when the checkout progress marker moves forward."""

    previous_step: int = 0
    step: int = 0
