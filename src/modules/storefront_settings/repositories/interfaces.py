from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Dict

if TYPE_CHECKING:
    from modules.storefront_settings.models import OrgSettings


class ISettingsRepository(ABC):
    """Access to the single organisation settings row."""

    @abstractmethod
    def get_or_create(self) -> OrgSettings:
        """Return the settings row, creating it with defaults if missing."""

    @abstractmethod
    def update(self, changes: Dict[str, Any], updated_by: str) -> OrgSettings:
        """Apply already-validated field changes."""
