"""Event handlers for Payments domain events."""

from __future__ import annotations

import structlog

from modules.payments.events import (
    MilestoneCharged,
    PaymentMarkedReady,
    PaymentReadinessRevoked,
)
from shared.domain.bus import IEventHandler

logger = structlog.get_logger(__name__)


class PaymentMarkedReadyHandler(IEventHandler[PaymentMarkedReady]):
    def handle(self, event: PaymentMarkedReady) -> None:
        logger.info(
            "payment.ready_event",
            build_id=str(event.aggregate_id),
            method=event.method,
        )


class PaymentReadinessRevokedHandler(IEventHandler[PaymentReadinessRevoked]):
    """Readiness lost after the fact is worth an operator's attention."""

    def handle(self, event: PaymentReadinessRevoked) -> None:
        logger.warning(
            "payment.readiness_revoked_event",
            build_id=str(event.aggregate_id),
            reason=event.reason,
        )


class MilestoneChargedHandler(IEventHandler[MilestoneCharged]):
    def handle(self, event: MilestoneCharged) -> None:
        logger.info(
            "payment.milestone_charged_event",
            build_id=str(event.aggregate_id),
            milestone=event.milestone,
            amount_cents=event.amount_cents,
        )


payment_marked_ready_handler = PaymentMarkedReadyHandler()
payment_readiness_revoked_handler = PaymentReadinessRevokedHandler()
milestone_charged_handler = MilestoneChargedHandler()
