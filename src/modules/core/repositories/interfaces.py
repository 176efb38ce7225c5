"""Generic repository interface (Dependency Inversion Principle).

Provides ``IRepository[T]``, the base abstract class that the order and
payment repository interfaces extend.  Processors depend on this
abstraction, never on Django ORM directly.

There is no ``delete``: the aggregates behind these repositories are
never removed, only status-transitioned.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Generic, Optional, TypeVar

T = TypeVar("T")


class IRepository(ABC, Generic[T]):
    """Base generic repository contract.

    Type parameter ``T`` represents the aggregate managed by the
    repository (e.g. ``Order``, ``Payment``).
    """

    @abstractmethod
    def get_by_id(self, id: str) -> Optional[T]:
        """Retrieve an aggregate by its primary key (``None`` if missing)."""

    @abstractmethod
    def get_for_update(self, id: str) -> Optional[T]:
        """Retrieve an aggregate holding a row-level lock.

        Must be called inside ``transaction.atomic()``.
        """

    @abstractmethod
    def save(self, entity: T) -> T:
        """Persist (create or update) an aggregate."""
