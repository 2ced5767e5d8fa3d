"""Build repository interface.

Every lookup is owner-scoped: a build that belongs to someone else is
indistinguishable from a missing one.
"""

from __future__ import annotations

from abc import abstractmethod
from typing import TYPE_CHECKING, Any, Dict, Optional

from modules.core.repositories.interfaces import IRepository, Queryable

if TYPE_CHECKING:
    from modules.builds.models import Build


class IBuildRepository(IRepository["Build"]):
    @abstractmethod
    def create(self, data: Dict[str, Any]) -> Build:
        """Create a build from already-validated field values."""

    @abstractmethod
    def get_for_owner(self, id: str, owner_id: str) -> Optional[Build]:
        """Retrieve a build only if ``owner_id`` owns it."""

    @abstractmethod
    def get_for_update(self, id: str, owner_id: Optional[str] = None) -> Optional[Build]:
        """Retrieve a build with a row-level lock."""

    @abstractmethod
    def list_for_owner(self, owner_id: str) -> Queryable[Build]:
        """Builds owned by ``owner_id``, most recently updated first."""

    @abstractmethod
    def clear_primary(self, owner_id: str, except_id: Any) -> int:
        """Unset ``primary`` on every other build of the owner."""
