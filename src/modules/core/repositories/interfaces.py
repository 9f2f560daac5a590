"""Base repository contract shared by module repositories.

Service classes receive a repository through their constructor and never
touch the ORM themselves; tests substitute a ``MagicMock`` for it.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, Generic, Iterable, Optional, TypeVar

T = TypeVar("T")


class IRepository(ABC, Generic[T]):
    """Persistence operations every aggregate repository provides.

    ``T`` is the aggregate root (``Order`` for the orders module).
    """

    @abstractmethod
    def get_by_id(self, id: str) -> Optional[T]:
        """Return the live aggregate with this primary key, or ``None``."""

    @abstractmethod
    def list(self, filters: Optional[Dict[str, Any]] = None) -> Iterable[T]:
        """Return live aggregates matching ``filters`` (lookup kwargs)."""

    @abstractmethod
    def save(self, entity: T) -> T:
        """Insert or update the aggregate and flush its pending events."""

    @abstractmethod
    def delete(self, id: str) -> bool:
        """Soft-delete by ID.  ``False`` when nothing matched."""
