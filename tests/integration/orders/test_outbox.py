"""Integration tests for outbox rows written by OrderService."""

from __future__ import annotations

import pytest

from modules.core.models import EventStatus, OutboxEvent
from modules.core.tasks import relay_outbox_events
from modules.orders.dtos import CancelOrderDTO

pytestmark = pytest.mark.integration


def _event_types(order):
    return list(
        OutboxEvent.objects.for_aggregate(order.id).values_list("event_type", flat=True)
    )


def test_create_order_writes_outbox_event(make_order):
    order = make_order()

    row = OutboxEvent.objects.get(aggregate_id=str(order.id))
    assert row.event_type == "OrderCreated"
    assert row.status == EventStatus.PENDING
    assert row.payload["order_number"] == order.order_number
    assert row.payload["basket_count"] == 1


def test_fulfillment_commands_write_outbox_events(make_order, order_service):
    order = make_order(baskets=[("Wash",)])

    order_service.update_service_status(
        order.id, {"staffId": "s-1", "handlingType": "pickup", "action": "start"}
    )
    order_service.update_service_status(
        order.id, {"staffId": "s-1", "basketId": 1, "action": "start"}
    )
    order_service.update_service_status(
        order.id, {"staffId": "s-1", "basketId": 1, "action": "complete"}
    )

    assert _event_types(order) == [
        "OrderCreated",
        "HandlingStageChanged",
        "OrderStatusChanged",
        "BasketServiceChanged",
        "BasketServiceChanged",
        "OrderStatusChanged",
        "OrderCompleted",
    ]


def test_noop_skip_writes_nothing(make_order, order_service):
    order = make_order(baskets=[("Wash",)])
    order_service.update_service_status(
        order.id, {"staffId": "s-1", "basketId": 1, "action": "skip"}
    )
    count = OutboxEvent.objects.count()

    order_service.update_service_status(
        order.id, {"staffId": "s-1", "basketId": 1, "action": "skip"}
    )

    assert OutboxEvent.objects.count() == count


def test_cancel_writes_outbox_events(make_order, order_service):
    order = make_order()

    order_service.cancel_order(order.id, CancelOrderDTO(staff_id="s-1", reason="damaged"))

    assert _event_types(order)[-2:] == ["OrderCancelled", "OrderStatusChanged"]


def test_relay_publishes_service_events(make_order, order_service):
    order = make_order()
    order_service.cancel_order(order.id, CancelOrderDTO(staff_id="s-1"))

    result = relay_outbox_events()

    assert result == {"published": 3, "failed": 0}
    assert not OutboxEvent.objects.pending().exists()
