"""In-memory event bus used by the outbox relay."""

from __future__ import annotations

from typing import Dict, List, Optional, Type

import structlog

from shared.domain.bus import IEventBus, IEventHandler
from shared.domain.events import DomainEvent

logger = structlog.get_logger(__name__)


class InMemoryEventBus(IEventBus):
    def __init__(self) -> None:
        self._handlers: Dict[Type[DomainEvent], List[IEventHandler]] = {}
        self._classes: Dict[str, Type[DomainEvent]] = {}

    def subscribe(self, event_class: Type[DomainEvent], handler: IEventHandler) -> None:
        handlers = self._handlers.setdefault(event_class, [])
        if handler not in handlers:
            handlers.append(handler)
        self._classes[event_class.__name__] = event_class

    def publish(self, event: DomainEvent) -> None:
        handlers = self._handlers.get(type(event), [])
        for handler in handlers:
            handler.handle(event)
        logger.debug("event_bus.published", event_name=event.event_name, handlers=len(handlers))

    def event_class_for(self, event_name: str) -> Optional[Type[DomainEvent]]:
        return self._classes.get(event_name)


# Subscriptions are registered by each module's AppConfig.ready().
event_bus = InMemoryEventBus()
