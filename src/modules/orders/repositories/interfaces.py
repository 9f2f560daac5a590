"""Order repository interface.

Extends ``IRepository[Order]`` with the operations the fulfillment use
cases need: locked reads, a version-checked write of the order document,
status history tracking, and idempotency-key look-up.

The Service Layer depends exclusively on this contract (DIP).
"""

from __future__ import annotations

from abc import abstractmethod
from typing import TYPE_CHECKING, Any, Dict, Optional
from uuid import UUID

from modules.core.repositories.interfaces import IRepository

if TYPE_CHECKING:
    from modules.orders.models import Order, OrderStatusHistory


class IOrderRepository(IRepository["Order"]):
    """Repository contract for the Order aggregate root.

    Implementations raise ``StoreError`` when the underlying store fails
    and ``ConcurrentUpdate`` when a versioned write loses the race.
    """

    @abstractmethod
    def create(self, data: Dict[str, Any]) -> Order:
        """Create an order from prepared ``handling`` / ``breakdown`` documents."""

    @abstractmethod
    def get_for_update(self, id: str) -> Optional[Order]:
        """Retrieve a live order with a row-level lock."""

    @abstractmethod
    def put(self, order: Order, expected_version: int) -> Order:
        """Write the order document if its stored version still matches.

        Bumps ``version`` and flushes the order's pending domain events to
        the outbox in the same transaction.
        """

    @abstractmethod
    def add_history(
        self,
        order_id: UUID,
        status: str,
        notes: str = "",
        old_status: Optional[str] = None,
        changed_by: str = "",
    ) -> OrderStatusHistory:
        """Record a status change in the order's audit trail."""

    @abstractmethod
    def get_by_idempotency_key(self, key: str) -> Optional[Order]:
        """Retrieve an order by its idempotency key."""
