"""Asynchronous tasks for the contracts module."""

import structlog
from celery import shared_task

logger = structlog.get_logger(__name__)


@shared_task(name="contracts.poll_in_progress")
def poll_in_progress_packs():
    """Poll DocuSeal for packs still being signed; the webhook may never arrive."""
    from modules.contracts.views import get_contract_orchestrator

    result = get_contract_orchestrator().poll_in_progress()
    logger.info("contracts.poll_task_executed", **result)
    return result
