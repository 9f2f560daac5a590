"""Django ORM implementation of the Order repository.

Satisfies ``IOrderRepository`` using Django's QuerySet API.

Concurrency control on fulfillment writes is two-layered:
``get_for_update()`` takes a row lock (``SELECT ... FOR UPDATE``) and
``put()`` is a conditional ``UPDATE ... WHERE version = expected`` that
bumps ``version``.  Zero matched rows means another writer got there
first and raises ``ConcurrentUpdate``.

Database failures are re-raised as ``StoreError`` so callers only deal
with the order domain's exception hierarchy.
"""

from __future__ import annotations

from typing import Any, Dict, Optional
from uuid import UUID

import structlog
from django.core.exceptions import ValidationError
from django.db import DatabaseError, transaction
from django.db.models import F, QuerySet
from django.utils import timezone

from modules.core.models import OutboxEvent
from modules.orders.constants import OrderSource
from modules.orders.exceptions import ConcurrentUpdate, StoreError
from modules.orders.models import Order, OrderStatusHistory
from modules.orders.repositories.interfaces import IOrderRepository

logger = structlog.get_logger(__name__)

# Columns written by ``put``.  Everything else is fixed at creation.
_DOCUMENT_FIELDS = (
    "status",
    "handling",
    "breakdown",
    "completed_at",
    "cancelled_at",
    "cancellation",
)


class OrderDjangoRepository(IOrderRepository):
    """Concrete Order repository backed by Django ORM."""

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    @transaction.atomic
    def create(self, data: Dict[str, Any]) -> Order:
        """Create an order.

        ``data`` keys:
        - ``handling`` and ``breakdown`` (required): prepared documents
        - ``customer_id``, ``source``, ``notes``, ``idempotency_key`` (optional)
        """
        order = Order(
            customer_id=data.get("customer_id"),
            source=data.get("source") or OrderSource.STORE,
            handling=data["handling"],
            breakdown=data["breakdown"],
            notes=data.get("notes") or "",
            idempotency_key=data.get("idempotency_key"),
        )
        try:
            order.save()
        except DatabaseError as exc:
            logger.error("order.create_failed", error=str(exc))
            raise StoreError("Failed to create order.") from exc

        logger.info(
            "order.persisted",
            order_id=str(order.id),
            order_number=order.order_number,
            basket_count=len(order.baskets),
        )
        return order

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def get_by_id(self, id: str) -> Optional[Order]:
        """Retrieve a live order.  Returns ``None`` for unknown or invalid IDs."""
        try:
            return Order.objects.alive().filter(id=id).first()
        except (ValueError, ValidationError):
            return None
        except DatabaseError as exc:
            raise StoreError("Failed to load order.", context={"order_id": id}) from exc

    def get_for_update(self, id: str) -> Optional[Order]:
        """Retrieve a live order with a row-level lock (SELECT FOR UPDATE).

        Must be called inside ``transaction.atomic()``.
        """
        try:
            return Order.objects.alive().select_for_update().filter(id=id).first()
        except (ValueError, ValidationError):
            return None
        except DatabaseError as exc:
            raise StoreError("Failed to load order.", context={"order_id": id}) from exc

    def list(self, filters: Optional[Dict[str, Any]] = None) -> QuerySet:
        """List live orders, most recent first.

        Returns a lazy queryset so the API layer can apply filter backends
        and pagination.
        """
        queryset = Order.objects.alive()
        if filters:
            queryset = queryset.filter(**filters)
        return queryset

    def get_by_idempotency_key(self, key: str) -> Optional[Order]:
        """Retrieve an order by its idempotency key."""
        return Order.objects.filter(idempotency_key=key).first()

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    @transaction.atomic
    def put(self, order: Order, expected_version: int) -> Order:
        values = {name: getattr(order, name) for name in _DOCUMENT_FIELDS}
        try:
            updated = (
                Order.objects.alive()
                .filter(id=order.id, version=expected_version)
                .update(
                    version=F("version") + 1,
                    updated_at=timezone.now(),
                    **values,
                )
            )
        except DatabaseError as exc:
            logger.error("order.put_failed", order_id=str(order.id), error=str(exc))
            raise StoreError(
                "Failed to persist order.", context={"order_id": str(order.id)}
            ) from exc

        if updated == 0:
            logger.warning(
                "order.version_conflict",
                order_id=str(order.id),
                expected_version=expected_version,
            )
            raise ConcurrentUpdate(
                "Order was modified by another request.",
                context={
                    "order_id": str(order.id),
                    "expected_version": expected_version,
                },
            )

        order.version = expected_version + 1
        event_count = self._flush_events(order)
        logger.info(
            "order.put",
            order_id=str(order.id),
            version=order.version,
            event_count=event_count,
        )
        return order

    @transaction.atomic
    def save(self, entity: Order) -> Order:
        """Persist (create or update) an order and flush its events."""
        try:
            entity.save()
        except DatabaseError as exc:
            raise StoreError(
                "Failed to persist order.", context={"order_id": str(entity.id)}
            ) from exc
        event_count = self._flush_events(entity)
        logger.info("order.saved", order_id=str(entity.id), event_count=event_count)
        return entity

    @transaction.atomic
    def delete(self, id: str) -> bool:
        """Soft-delete an order by ID."""
        order = self.get_by_id(id)
        if not order:
            return False
        order.delete()
        logger.info("order.soft_deleted", order_id=str(id))
        return True

    # ------------------------------------------------------------------
    # Order-specific queries
    # ------------------------------------------------------------------

    @transaction.atomic
    def add_history(
        self,
        order_id: UUID,
        status: str,
        notes: str = "",
        old_status: Optional[str] = None,
        changed_by: str = "",
    ) -> OrderStatusHistory:
        """Record a status change in the order's audit trail."""
        history = OrderStatusHistory(
            order_id=order_id,
            old_status=old_status,
            new_status=status,
            changed_by=changed_by or "",
            notes=notes,
        )
        try:
            history.save()
        except DatabaseError as exc:
            raise StoreError(
                "Failed to record status history.",
                context={"order_id": str(order_id)},
            ) from exc

        logger.info(
            "order.history_added",
            order_id=str(order_id),
            old_status=old_status,
            new_status=status,
        )
        return history

    # ------------------------------------------------------------------
    # Outbox
    # ------------------------------------------------------------------

    @staticmethod
    def _flush_events(order: Order) -> int:
        events = order.pull_domain_events()
        for event in events:
            OutboxEvent.objects.create(
                event_type=event.event_name,
                aggregate_id=str(event.aggregate_id),
                payload=event.to_payload(),
                topic=event.topic,
            )
        return len(events)
