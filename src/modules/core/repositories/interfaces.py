"""Repository contract shared by the build, payment and contract modules.

Services take these interfaces in their constructors; only the
``django_repository`` modules touch the ORM.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, Generic, Iterator, Optional, Protocol, TypeVar

T = TypeVar("T")
T_co = TypeVar("T_co", covariant=True)


class Queryable(Protocol[T_co]):
    """The slice of ``QuerySet`` that services rely on."""

    def filter(self, *args: Any, **kwargs: Any) -> Queryable[T_co]: ...

    def __iter__(self) -> Iterator[T_co]: ...


class IRepository(ABC, Generic[T]):
    @abstractmethod
    def get_by_id(self, id: str) -> Optional[T]:
        """``None`` when the row is missing or ``id`` is not a valid UUID."""

    @abstractmethod
    def list(self, filters: Optional[Dict[str, Any]] = None) -> Queryable[T]: ...

    @abstractmethod
    def save(self, entity: T) -> T:
        """Persist ``entity`` and move its collected domain events to the outbox."""

    @abstractmethod
    def delete(self, id: str) -> bool: ...
