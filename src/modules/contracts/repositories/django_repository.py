"""Django ORM implementation of the contract pack repository."""

from __future__ import annotations

from typing import Any, Dict, Optional

import structlog
from django.core.exceptions import ValidationError
from django.db import transaction
from django.db.models import QuerySet

from modules.contracts.constants import CONTRACT_TOPIC, PACK_ORDER, PackStatus
from modules.contracts.models import ContractPack
from modules.contracts.repositories.interfaces import IContractRepository
from modules.core.outbox import record_domain_events

logger = structlog.get_logger(__name__)


class ContractDjangoRepository(IContractRepository):
    def get_by_id(self, id: str) -> Optional[ContractPack]:
        try:
            return ContractPack.objects.filter(id=id).first()
        except (ValueError, ValidationError):
            return None

    @transaction.atomic
    def packs_for_build(self, build, lock: bool = False) -> Dict[str, ContractPack]:
        queryset = ContractPack.objects.filter(build=build)
        if lock:
            queryset = queryset.select_for_update()
        packs = {row.pack: row for row in queryset}
        for pack in PACK_ORDER:
            if pack not in packs:
                packs[pack] = ContractPack.objects.create(build=build, pack=pack)
        return {pack: packs[pack] for pack in PACK_ORDER}

    def get_by_submission(self, submission_id: str) -> Optional[ContractPack]:
        if not submission_id:
            return None
        return (
            ContractPack.objects.select_related("build")
            .filter(submission_id=str(submission_id))
            .first()
        )

    def list(self, filters: Optional[Dict[str, Any]] = None) -> QuerySet:
        queryset = ContractPack.objects.select_related("build")
        if filters:
            queryset = queryset.filter(**filters)
        return queryset

    def list_in_progress(self) -> QuerySet:
        return (
            ContractPack.objects.select_related("build")
            .filter(status=PackStatus.IN_PROGRESS)
            .exclude(submission_id="")
            .order_by("started_at")
        )

    @transaction.atomic
    def save(self, entity: ContractPack) -> ContractPack:
        entity.save()
        event_count = record_domain_events(entity, topic=CONTRACT_TOPIC)
        logger.info(
            "contract.pack_saved",
            build_id=str(entity.build_id),
            pack=entity.pack,
            status=entity.status,
            event_count=event_count,
        )
        return entity

    @transaction.atomic
    def delete(self, id: str) -> bool:
        pack = self.get_by_id(id)
        if not pack:
            return False
        pack.delete()
        return True
