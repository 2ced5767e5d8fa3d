"""Domain events for the Payments bounded context."""

from __future__ import annotations

from dataclasses import dataclass

from shared.domain.events import DomainEvent


@dataclass(frozen=True)
class PaymentMethodSelected(DomainEvent):
    method: str = ""
    plan_type: str = ""


@dataclass(frozen=True)
class PaymentMarkedReady(DomainEvent):
    """``aggregate_id`` is the build id."""

    method: str = ""


@dataclass(frozen=True)
class PaymentReadinessRevoked(DomainEvent):
    reason: str = ""


@dataclass(frozen=True)
class MilestoneCharged(DomainEvent):
    milestone: str = ""
    amount_cents: int = 0
