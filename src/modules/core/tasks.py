"""Asynchronous tasks for the core module."""

import structlog
from celery import shared_task

from modules.core.outbox import publish_pending
from shared.infrastructure.bus import event_bus

logger = structlog.get_logger(__name__)


@shared_task(name="outbox.publish_pending")
def publish_outbox_events(batch_size: int = 100):
    """Relay pending outbox rows to the event bus handlers."""
    result = publish_pending(event_bus, batch_size=batch_size)
    logger.info("outbox.task_executed", **result)
    return result
