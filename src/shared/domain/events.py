"""Domain event primitives.

Aggregates (builds, payments, contract packs) collect events in memory
while a service changes them.  The repository drains them into the outbox
inside the transaction that saves the aggregate, and the outbox relay
rebuilds them from their stored payload.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from datetime import datetime, timezone
from typing import Any, Mapping, Self
from uuid import UUID, uuid4


@dataclass(frozen=True)
class DomainEvent:
    """Base domain event (immutable)."""

    aggregate_id: UUID
    event_id: UUID = field(default_factory=uuid4)
    occurred_on: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    event_name: str = field(init=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "event_name", type(self).__name__)

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> Self:
        """Rebuild an event from its outbox payload; unknown keys are dropped."""
        accepted = {f.name for f in fields(cls) if f.init}
        return cls(**{key: value for key, value in payload.items() if key in accepted})


class DomainEventMixin:
    """Event collection for aggregate roots.

    Django builds model instances without running mixin initialisers, so
    the list is created on first use.
    """

    _domain_events: list[DomainEvent]

    def _pending_events(self) -> list[DomainEvent]:
        if not hasattr(self, "_domain_events"):
            self._domain_events = []
        return self._domain_events

    def add_domain_event(self, event: DomainEvent) -> None:
        self._pending_events().append(event)

    def clear_domain_events(self) -> None:
        self._pending_events().clear()

    def pull_domain_events(self) -> list[DomainEvent]:
        """Return the pending events and forget them."""
        events = list(self._pending_events())
        self.clear_domain_events()
        return events

    @property
    def domain_events(self) -> list[DomainEvent]:
        return list(self._pending_events())
