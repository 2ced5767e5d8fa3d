"""Django ORM implementation of the Build repository.

Writes run inside ``transaction.atomic()`` and flush the aggregate's
domain events to the outbox in the same transaction.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

import structlog
from django.core.exceptions import ValidationError
from django.db import transaction
from django.db.models import QuerySet

from modules.builds.constants import BUILD_TOPIC
from modules.builds.models import Build
from modules.builds.repositories.interfaces import IBuildRepository
from modules.core.outbox import record_domain_events

logger = structlog.get_logger(__name__)


class BuildDjangoRepository(IBuildRepository):
    """Concrete Build repository backed by Django ORM."""

    @transaction.atomic
    def create(self, data: Dict[str, Any]) -> Build:
        build = Build(**data)
        build.save()
        logger.info("build.created", build_id=str(build.id), owner_id=build.owner_id)
        return build

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def get_by_id(self, id: str) -> Optional[Build]:
        try:
            return Build.objects.filter(id=id).first()
        except (ValueError, ValidationError):
            return None

    def get_for_owner(self, id: str, owner_id: str) -> Optional[Build]:
        try:
            return Build.objects.filter(id=id, owner_id=owner_id).first()
        except (ValueError, ValidationError):
            return None

    def get_for_update(self, id: str, owner_id: Optional[str] = None) -> Optional[Build]:
        """Row-locked read.  Returns ``None`` for missing or invalid IDs."""
        try:
            queryset = Build.objects.select_for_update().filter(id=id)
            if owner_id is not None:
                queryset = queryset.filter(owner_id=owner_id)
            return queryset.first()
        except (ValueError, ValidationError):
            return None

    def list(self, filters: Optional[Dict[str, Any]] = None) -> QuerySet:
        queryset = Build.objects.all()
        if filters:
            queryset = queryset.filter(**filters)
        return queryset

    def list_for_owner(self, owner_id: str) -> QuerySet:
        return Build.objects.filter(owner_id=owner_id).order_by("-updated_at", "-id")

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    @transaction.atomic
    def save(self, entity: Build) -> Build:
        entity.save()
        event_count = record_domain_events(entity, topic=BUILD_TOPIC)
        logger.info("build.saved", build_id=str(entity.id), event_count=event_count)
        return entity

    @transaction.atomic
    def delete(self, id: str) -> bool:
        build = self.get_by_id(id)
        if not build:
            return False
        build.delete()
        logger.info("build.deleted", build_id=str(id))
        return True

    def clear_primary(self, owner_id: str, except_id: Any) -> int:
        return (
            Build.objects.filter(owner_id=owner_id, primary=True)
            .exclude(id=except_id)
            .update(primary=False)
        )
