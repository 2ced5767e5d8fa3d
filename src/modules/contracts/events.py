"""Domain events for the Contracts bounded context."""

from __future__ import annotations

from dataclasses import dataclass

from shared.domain.events import DomainEvent


@dataclass(frozen=True)
class ContractPackStarted(DomainEvent):
    pack: str = ""
    submission_id: str = ""


@dataclass(frozen=True)
class ContractPackCompleted(DomainEvent):
    """``aggregate_id`` is the build id."""

    pack: str = ""
    source: str = ""


@dataclass(frozen=True)
class ContractSigned(DomainEvent):
    pass
