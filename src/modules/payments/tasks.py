"""Asynchronous tasks for the payments module."""

import structlog
from celery import shared_task

logger = structlog.get_logger(__name__)


@shared_task(name="payments.reconcile_readiness")
def reconcile_payment_readiness():
    """Clear ``ready`` on builds whose saved setup the processor no longer honours."""
    from modules.payments.views import get_payment_service

    result = get_payment_service().reconcile_readiness()
    logger.info("payments.reconcile_task_executed", **result)
    return result
