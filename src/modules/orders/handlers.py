"""Event handlers for Orders domain events.

Handlers run when the outbox relay publishes a stored event.  Customer
notifications are delivered by a separate service; these handlers only
record the milestones in the structured log.
"""

from __future__ import annotations

import structlog

from modules.orders.events import (
    BasketServiceChanged,
    HandlingStageChanged,
    OrderCancelled,
    OrderCompleted,
    OrderCreated,
    OrderStatusChanged,
)
from shared.domain.bus import IEventHandler

logger = structlog.get_logger(__name__)


class OrderCreatedHandler(IEventHandler[OrderCreated]):
    def handle(self, event: OrderCreated) -> None:
        logger.info(
            "order.event.created",
            order_id=str(event.aggregate_id),
            order_number=event.order_number,
            source=event.source,
            basket_count=event.basket_count,
        )


class OrderStatusChangedHandler(IEventHandler[OrderStatusChanged]):
    def handle(self, event: OrderStatusChanged) -> None:
        logger.info(
            "order.event.status_changed",
            order_id=str(event.aggregate_id),
            old_status=event.old_status,
            new_status=event.new_status,
            changed_by=event.changed_by,
        )


class HandlingStageChangedHandler(IEventHandler[HandlingStageChanged]):
    def handle(self, event: HandlingStageChanged) -> None:
        logger.info(
            "order.event.handling_changed",
            order_id=str(event.aggregate_id),
            stage=event.stage,
            action=event.action,
            new_status=event.new_status,
        )


class BasketServiceChangedHandler(IEventHandler[BasketServiceChanged]):
    def handle(self, event: BasketServiceChanged) -> None:
        logger.info(
            "order.event.service_changed",
            order_id=str(event.aggregate_id),
            basket_number=event.basket_number,
            service_name=event.service_name,
            service_status=event.service_status,
            basket_status=event.basket_status,
            auto_started=event.auto_started,
        )


class OrderCompletedHandler(IEventHandler[OrderCompleted]):
    def handle(self, event: OrderCompleted) -> None:
        logger.info(
            "order.event.completed",
            order_id=str(event.aggregate_id),
            order_number=event.order_number,
        )


class OrderCancelledHandler(IEventHandler[OrderCancelled]):
    def handle(self, event: OrderCancelled) -> None:
        logger.info(
            "order.event.cancelled",
            order_id=str(event.aggregate_id),
            reason=event.reason,
            cancelled_by=event.cancelled_by,
        )


order_created_handler = OrderCreatedHandler()
order_status_changed_handler = OrderStatusChangedHandler()
handling_stage_changed_handler = HandlingStageChangedHandler()
basket_service_changed_handler = BasketServiceChangedHandler()
order_completed_handler = OrderCompletedHandler()
order_cancelled_handler = OrderCancelledHandler()
