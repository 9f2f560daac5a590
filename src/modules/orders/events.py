"""Domain events for the Orders bounded context."""

from __future__ import annotations

from dataclasses import dataclass
from typing import ClassVar, Optional

from shared.domain.events import DomainEvent


@dataclass(frozen=True)
class OrderEvent(DomainEvent):
    topic: ClassVar[str] = "orders"


@dataclass(frozen=True)
class OrderCreated(OrderEvent):
    """Raised when an order is created."""

    order_number: str = ""
    source: str = ""
    basket_count: int = 0


@dataclass(frozen=True)
class OrderStatusChanged(OrderEvent):
    """Raised when the derived order status changes."""

    old_status: str = ""
    new_status: str = ""
    changed_by: str = ""


@dataclass(frozen=True)
class HandlingStageChanged(OrderEvent):
    """Raised when the pickup or delivery stage moves."""

    stage: str = ""
    action: str = ""
    new_status: str = ""
    changed_by: str = ""


@dataclass(frozen=True)
class BasketServiceChanged(OrderEvent):
    """Raised when a basket service is started, completed or skipped."""

    basket_number: Optional[int] = None
    service_name: str = ""
    action: str = ""
    service_status: str = ""
    basket_status: str = ""
    auto_started: Optional[str] = None
    changed_by: str = ""


@dataclass(frozen=True)
class OrderCompleted(OrderEvent):
    """Raised once, when the order first reaches ``completed``."""

    order_number: str = ""


@dataclass(frozen=True)
class OrderCancelled(OrderEvent):
    """Raised when an order is cancelled."""

    reason: str = ""
    cancelled_by: str = ""
