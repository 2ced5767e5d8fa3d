"""Outbox helpers shared by every repository.

``record_domain_events`` is called inside the repository's
``transaction.atomic()`` block right after the aggregate is saved.
``publish_pending`` is the relay driven by the ``outbox.publish_pending``
Celery task.
"""

from __future__ import annotations

import json
from dataclasses import asdict
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict
from uuid import UUID

import structlog

from modules.core.models import OutboxEvent
from shared.domain.bus import IEventBus
from shared.domain.events import DomainEventMixin

logger = structlog.get_logger(__name__)

OUTBOX_MAX_ATTEMPTS = 5


def record_domain_events(entity: DomainEventMixin, topic: str) -> int:
    """Write the entity's collected events to the outbox and clear them."""
    events = entity.pull_domain_events()
    for event in events:
        OutboxEvent.objects.create(
            event_type=event.event_name,
            aggregate_id=str(event.aggregate_id),
            payload=serialize_event_payload(event),
            topic=topic,
        )
    return len(events)


def serialize_event_payload(event: Any) -> Dict[str, Any]:
    data = asdict(event)
    normalized = _normalize_for_json(data)
    return json.loads(json.dumps(normalized))


def publish_pending(
    bus: IEventBus,
    batch_size: int = 100,
    max_attempts: int = OUTBOX_MAX_ATTEMPTS,
) -> Dict[str, int]:
    """Relay publishable outbox rows to the in-process bus.

    Rows whose event type has no subscriber are marked published: there is
    nobody to deliver them to.
    """
    published = failed = 0
    for row in OutboxEvent.objects.publishable(max_attempts)[:batch_size]:
        log = logger.bind(outbox_id=str(row.id), event_type=row.event_type)
        event_class = bus.event_class_for(row.event_type)
        try:
            if event_class is not None:
                bus.publish(event_class.from_payload(row.payload))
        except Exception as exc:  # handler failures are recorded, not raised
            row.mark_failed(str(exc))
            failed += 1
            log.warning("outbox.publish_failed", error=str(exc))
            continue
        row.mark_published()
        published += 1
    if published or failed:
        logger.info("outbox.relay_completed", published=published, failed=failed)
    return {"published": published, "failed": failed}


def _normalize_for_json(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, list):
        return [_normalize_for_json(item) for item in value]
    if isinstance(value, dict):
        return {key: _normalize_for_json(val) for key, val in value.items()}
    return value
