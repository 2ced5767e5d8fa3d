"""Django ORM implementation of the payment repository."""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional

import structlog
from django.core.exceptions import ValidationError
from django.db import transaction
from django.db.models import QuerySet

from modules.core.outbox import record_domain_events
from modules.payments.constants import PAYMENT_TOPIC
from modules.payments.models import BankTransferIntent, BuildPayment
from modules.payments.repositories.interfaces import IPaymentRepository

logger = structlog.get_logger(__name__)


class PaymentDjangoRepository(IPaymentRepository):
    def get_by_id(self, id: str) -> Optional[BuildPayment]:
        try:
            return BuildPayment.objects.filter(id=id).first()
        except (ValueError, ValidationError):
            return None

    def get_for_build(self, build_id: Any) -> Optional[BuildPayment]:
        try:
            return BuildPayment.objects.select_for_update().filter(build_id=build_id).first()
        except (ValueError, ValidationError):
            return None

    @transaction.atomic
    def get_or_create_for_build(self, build) -> BuildPayment:
        payment, created = BuildPayment.objects.select_for_update().get_or_create(build=build)
        if created:
            logger.info("payment.record_created", build_id=str(build.id))
        return payment

    def get_by_setup_intent(self, setup_intent_id: str) -> Optional[BuildPayment]:
        if not setup_intent_id:
            return None
        return (
            BuildPayment.objects.select_for_update()
            .filter(setup_intent_id=setup_intent_id)
            .first()
        )

    def get_by_virtual_account(self, virtual_account_id: str) -> Optional[BuildPayment]:
        if not virtual_account_id:
            return None
        return (
            BuildPayment.objects.select_for_update()
            .filter(virtual_account_id=virtual_account_id)
            .first()
        )

    def list(self, filters: Optional[Dict[str, Any]] = None) -> QuerySet:
        queryset = BuildPayment.objects.select_related("build")
        if filters:
            queryset = queryset.filter(**filters)
        return queryset

    def list_ready(self, methods: Iterable[str]) -> QuerySet:
        return (
            BuildPayment.objects.select_related("build")
            .filter(ready=True, method__in=list(methods))
            .order_by("updated_at")
        )

    @transaction.atomic
    def save(self, entity: BuildPayment) -> BuildPayment:
        entity.save()
        event_count = record_domain_events(entity, topic=PAYMENT_TOPIC)
        logger.info(
            "payment.saved",
            build_id=str(entity.build_id),
            ready=entity.ready,
            event_count=event_count,
        )
        return entity

    @transaction.atomic
    def delete(self, id: str) -> bool:
        payment = self.get_by_id(id)
        if not payment:
            return False
        payment.delete()
        return True

    @transaction.atomic
    def replace_transfer_intents(
        self, payment: BuildPayment, intents: List[Dict[str, Any]], created_by: str
    ) -> List[BankTransferIntent]:
        BankTransferIntent.objects.filter(payment=payment).delete()
        created = [
            BankTransferIntent.objects.create(payment=payment, created_by=created_by, **data)
            for data in intents
        ]
        logger.info(
            "payment.transfer_intents_created",
            build_id=str(payment.build_id),
            count=len(created),
        )
        return created
