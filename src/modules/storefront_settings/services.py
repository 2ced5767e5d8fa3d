"""Settings Provider.

Reads the organisation settings (cached) and applies admin updates.
Update semantics: only numeric, finite values are applied; empty,
non-numeric or missing values leave the stored value untouched.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import TYPE_CHECKING, Any, Dict, Mapping, Optional

import structlog
from django.core.cache import cache

from modules.storefront_settings.constants import (
    NUMERIC_FIELDS,
    SETTINGS_CACHE_KEY,
    SETTINGS_CACHE_TTL_SECONDS,
)
from modules.storefront_settings.dtos import PricingSettings
from modules.storefront_settings.exceptions import InvalidSettings

if TYPE_CHECKING:
    from modules.storefront_settings.repositories.interfaces import (
        ISettingsRepository,
    )

logger = structlog.get_logger(__name__)

_PERCENT_FIELDS = {"deposit_percent", "tax_rate_percent"}


class SettingsProvider:
    def __init__(self, settings_repository: ISettingsRepository) -> None:
        self._repo = settings_repository

    def get_settings(self) -> PricingSettings:
        cached = cache.get(SETTINGS_CACHE_KEY)
        if cached is not None:
            return PricingSettings(**cached)
        settings = PricingSettings.from_entity(self._repo.get_or_create())
        cache.set(SETTINGS_CACHE_KEY, settings.model_dump(), SETTINGS_CACHE_TTL_SECONDS)
        return settings

    def update_settings(
        self, patch: Mapping[str, Any], updated_by: str
    ) -> PricingSettings:
        """Apply a partial update.

        Accepts flat keys or the grouped shape of the public settings payload
        (``{"factory": {...}, "pricing": {...}, "payments": {...}}``).

        Raises:
            InvalidSettings: a numeric value is out of range.
        """
        flat = _flatten_patch(patch)
        changes: Dict[str, Any] = {}

        for field in NUMERIC_FIELDS:
            value = _num_or_none(flat.get(field))
            if value is None:
                continue
            if value < 0:
                raise InvalidSettings(f"{field} must not be negative.")
            if field in _PERCENT_FIELDS and value > 100:
                raise InvalidSettings(f"{field} must be at most 100.")
            changes[field] = value

        if isinstance(flat.get("enable_card_option"), bool):
            changes["enable_card_option"] = flat["enable_card_option"]

        for field, limit in (("factory_name", 200), ("factory_address", 500)):
            text = str(flat.get(field) or "").strip()[:limit]
            if text:
                changes[field] = text

        if not changes:
            logger.info("settings.update_skipped", updated_by=updated_by)
            return self.get_settings()

        entity = self._repo.update(changes, updated_by)
        cache.delete(SETTINGS_CACHE_KEY)
        return PricingSettings.from_entity(entity)


def _flatten_patch(patch: Mapping[str, Any]) -> Dict[str, Any]:
    flat: Dict[str, Any] = {
        k: v for k, v in patch.items() if k not in {"factory", "pricing", "payments"}
    }
    for group in ("pricing", "payments"):
        nested = patch.get(group)
        if isinstance(nested, Mapping):
            flat.update(nested)
    factory = patch.get("factory")
    if isinstance(factory, Mapping):
        flat["factory_name"] = factory.get("name")
        flat["factory_address"] = factory.get("address")
    return flat


def _num_or_none(value: Any) -> Optional[Decimal]:
    if value is None or value == "" or isinstance(value, bool):
        return None
    try:
        number = Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None
    if not number.is_finite():
        return None
    return number
