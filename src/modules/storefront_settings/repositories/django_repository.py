from __future__ import annotations

from typing import Any, Dict

import structlog
from django.db import transaction

from modules.storefront_settings.constants import SETTINGS_KEY
from modules.storefront_settings.models import OrgSettings
from modules.storefront_settings.repositories.interfaces import ISettingsRepository

logger = structlog.get_logger(__name__)


class SettingsDjangoRepository(ISettingsRepository):
    def get_or_create(self) -> OrgSettings:
        entity, created = OrgSettings.objects.get_or_create(key=SETTINGS_KEY)
        if created:
            logger.info("settings.defaults_created")
        return entity

    @transaction.atomic
    def update(self, changes: Dict[str, Any], updated_by: str) -> OrgSettings:
        entity, _ = OrgSettings.objects.select_for_update().get_or_create(
            key=SETTINGS_KEY
        )
        for field, value in changes.items():
            setattr(entity, field, value)
        entity.updated_by = updated_by
        entity.save()
        logger.info("settings.updated", fields=sorted(changes), updated_by=updated_by)
        return entity
