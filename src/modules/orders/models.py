"""Order and OrderStatusHistory models.

Business rules implemented:
- An order owns two JSON documents: ``handling`` (pickup / delivery stages)
  and ``breakdown`` (baskets with their ordered services, plus the audit log).
  Baskets and services are created with the order and only mutated afterwards.
- ``status`` is derived by the fulfillment state machine; views never set it.
- ``completed_at`` is set exactly once, when the order first completes.
- ``version`` is bumped on every fulfillment write and checked on save
  (compare-and-swap) so concurrent commands on one order serialize.
- Each order-level status change generates a history record.
- Idempotency via ``idempotency_key`` unique constraint.
- Order number auto-generated as human-readable identifier.
- Soft delete via ``deleted_at`` (inherited from SoftDeleteModel).
"""

from __future__ import annotations

import secrets
from typing import Any

from django.db import models
from django.utils import timezone

from modules.core.models import BaseModel, SoftDeleteModel
from modules.orders.constants import (
    ORDER_NUMBER_MAX_RETRIES,
    ORDER_NUMBER_PREFIX,
    TERMINAL_STATES,
    OrderSource,
    OrderStatus,
)
from modules.orders.fulfillment import OrderSnapshot
from shared.domain.events import DomainEventMixin


def _empty_handling() -> dict:
    return {
        "pickup": {"address": None, "status": "pending"},
        "delivery": {"address": None, "status": "pending"},
    }


def _empty_breakdown() -> dict:
    return {"baskets": [], "audit_log": []}


class Order(DomainEventMixin, SoftDeleteModel):
    """Order aggregate root.

    ``order_number`` is a human-readable identifier auto-generated on first
    save (format: ``LND-YYYYMMDD-XXXXXX``).  The UUIDv7 ``id`` is used for
    all internal references and API lookups.

    ``customer_id`` references the customer record kept by the customer
    directory; it is not a foreign key here.
    """

    order_number: models.CharField = models.CharField(
        max_length=20, unique=True, editable=False
    )
    customer_id: models.UUIDField = models.UUIDField(null=True, blank=True)
    source: models.CharField = models.CharField(
        max_length=10,
        choices=OrderSource.choices,
        default=OrderSource.STORE,
    )
    status: models.CharField = models.CharField(
        max_length=20,
        choices=OrderStatus.choices,
        default=OrderStatus.PENDING,
    )
    handling: models.JSONField = models.JSONField(default=_empty_handling)
    breakdown: models.JSONField = models.JSONField(default=_empty_breakdown)
    notes: models.TextField = models.TextField(blank=True, default="")
    completed_at: models.DateTimeField = models.DateTimeField(
        null=True, blank=True, default=None
    )
    cancelled_at: models.DateTimeField = models.DateTimeField(
        null=True, blank=True, default=None
    )
    cancellation: models.JSONField = models.JSONField(
        null=True, blank=True, default=None
    )
    version: models.PositiveIntegerField = models.PositiveIntegerField(default=1)
    idempotency_key: models.CharField = models.CharField(
        max_length=255,
        unique=True,
        null=True,
        blank=True,
    )

    class Meta:
        db_table = "orders"
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["status"], name="orders_status_idx"),
            models.Index(fields=["-created_at"], name="orders_created_idx"),
            models.Index(fields=["customer_id"], name="orders_customer_idx"),
        ]

    # ------------------------------------------------------------------
    # Fulfillment helpers
    # ------------------------------------------------------------------

    @property
    def is_terminal(self) -> bool:
        """Return ``True`` if the order is completed or cancelled."""
        return self.status in TERMINAL_STATES

    @property
    def baskets(self) -> list:
        return list((self.breakdown or {}).get("baskets") or [])

    @property
    def audit_log(self) -> list:
        return list((self.breakdown or {}).get("audit_log") or [])

    def to_snapshot(self) -> OrderSnapshot:
        return OrderSnapshot(
            status=self.status,
            handling=self.handling or {},
            breakdown=self.breakdown or {},
            completed_at=self.completed_at,
        )

    def apply_snapshot(self, snapshot: OrderSnapshot) -> None:
        self.status = snapshot.status
        self.handling = dict(snapshot.handling)
        self.breakdown = dict(snapshot.breakdown)
        self.completed_at = snapshot.completed_at

    # ------------------------------------------------------------------
    # Order number generation
    # ------------------------------------------------------------------

    @staticmethod
    def generate_order_number() -> str:
        """Generate a human-readable order number: ``LND-YYYYMMDD-XXXXXX``."""
        now = timezone.now()
        suffix = secrets.token_hex(3).upper()
        return f"{ORDER_NUMBER_PREFIX}-{now:%Y%m%d}-{suffix}"

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def save(self, *args: Any, **kwargs: Any) -> None:
        if not self.order_number:
            for attempt in range(ORDER_NUMBER_MAX_RETRIES):
                candidate = self.generate_order_number()
                if not Order.objects.filter(order_number=candidate).exists():
                    self.order_number = candidate
                    break
            else:
                raise RuntimeError(
                    f"Failed to generate unique order_number after "
                    f"{ORDER_NUMBER_MAX_RETRIES} attempts"
                )
        super().save(*args, **kwargs)

    def __str__(self) -> str:
        return f"{self.order_number} ({self.status})"


class OrderStatusHistory(BaseModel):
    """Append-only audit trail for order-level status transitions.

    The fine-grained stage/service history lives in ``breakdown.audit_log``;
    this table records only changes of ``Order.status`` so they can be
    queried without unpacking JSON.  ``changed_by`` holds the staff id
    passed with the command (empty for system changes).
    """

    order: models.ForeignKey = models.ForeignKey(
        "orders.Order",
        on_delete=models.CASCADE,
        related_name="status_history",
    )
    old_status: models.CharField = models.CharField(  # noqa: DJ01
        max_length=20,
        choices=OrderStatus.choices,
        null=True,
        blank=True,
    )
    new_status: models.CharField = models.CharField(
        max_length=20,
        choices=OrderStatus.choices,
    )
    changed_by: models.CharField = models.CharField(
        max_length=64, blank=True, default=""
    )
    notes: models.TextField = models.TextField(blank=True, default="")

    class Meta:
        db_table = "order_status_history"
        ordering = ["-created_at"]
        indexes = [
            models.Index(
                fields=["order", "-created_at"],
                name="osh_order_created_idx",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.order} : {self.old_status} -> {self.new_status}"
