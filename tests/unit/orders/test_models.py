"""Unit tests for Order and OrderStatusHistory models.

Covers:
- Defaults: status, source, empty handling / breakdown documents, version.
- Order number format, uniqueness and retry on collision.
- Idempotency key uniqueness.
- Snapshot conversion used by the fulfillment state machine.
- is_terminal / baskets / audit_log helpers.
- OrderStatusHistory reverse relation and ordering.
"""

from __future__ import annotations

import re
from datetime import datetime, timezone
from unittest.mock import patch

import pytest
from freezegun import freeze_time

from django.db import IntegrityError

from modules.orders.constants import OrderStatus
from modules.orders.fulfillment import OrderSnapshot
from modules.orders.models import Order, OrderStatusHistory

pytestmark = pytest.mark.unit

ORDER_NUMBER_RE = re.compile(r"^LND-\d{8}-[0-9A-F]{6}$")


class TestOrderDefaults:
    def test_create_with_defaults(self):
        order = Order.objects.create()
        assert order.status == OrderStatus.PENDING
        assert order.source == "store"
        assert order.version == 1
        assert order.handling == {
            "pickup": {"address": None, "status": "pending"},
            "delivery": {"address": None, "status": "pending"},
        }
        assert order.breakdown == {"baskets": [], "audit_log": []}
        assert order.completed_at is None
        assert order.cancellation is None

    def test_default_documents_are_not_shared(self):
        a = Order()
        b = Order()
        a.handling["pickup"]["status"] = "completed"
        assert b.handling["pickup"]["status"] == "pending"


class TestOrderNumber:
    def test_format(self):
        with freeze_time("2026-03-02 08:00:00"):
            order = Order.objects.create()
        assert ORDER_NUMBER_RE.match(order.order_number)
        assert order.order_number.startswith("LND-20260302-")

    def test_explicit_number_preserved(self):
        order = Order.objects.create(order_number="LND-20260101-ABCDEF")
        assert order.order_number == "LND-20260101-ABCDEF"

    def test_duplicate_number_raises(self):
        Order.objects.create(order_number="LND-20260101-ABCDEF")
        with pytest.raises(IntegrityError):
            Order.objects.create(order_number="LND-20260101-ABCDEF")

    def test_retry_on_collision(self):
        Order.objects.create(order_number="LND-20260101-000001")
        numbers = iter(["LND-20260101-000001", "LND-20260101-000002"])

        with patch.object(Order, "generate_order_number", side_effect=lambda: next(numbers)):
            order = Order.objects.create()

        assert order.order_number == "LND-20260101-000002"

    def test_gives_up_after_max_retries(self):
        Order.objects.create(order_number="LND-20260101-000001")

        with patch.object(
            Order, "generate_order_number", return_value="LND-20260101-000001"
        ):
            with pytest.raises(RuntimeError, match="order_number"):
                Order.objects.create()


class TestIdempotencyKey:
    def test_multiple_null_keys_allowed(self):
        Order.objects.create()
        Order.objects.create()
        assert Order.objects.filter(idempotency_key__isnull=True).count() == 2

    def test_duplicate_key_raises(self):
        Order.objects.create(idempotency_key="key-1")
        with pytest.raises(IntegrityError):
            Order.objects.create(idempotency_key="key-1")


class TestSnapshot:
    def test_round_trip(self):
        order = Order(
            status=OrderStatus.PROCESSING,
            breakdown={"baskets": [{"basket_number": 1, "services": []}], "audit_log": []},
        )
        snapshot = order.to_snapshot()
        assert snapshot.status == OrderStatus.PROCESSING
        assert snapshot.breakdown["baskets"][0]["basket_number"] == 1

        done = datetime(2026, 3, 2, 11, 0, tzinfo=timezone.utc)
        order.apply_snapshot(
            OrderSnapshot(
                status=OrderStatus.COMPLETED,
                handling=order.handling,
                breakdown={"baskets": [], "audit_log": [{"action": "service_completed"}]},
                completed_at=done,
            )
        )
        assert order.status == OrderStatus.COMPLETED
        assert order.completed_at == done
        assert order.audit_log == [{"action": "service_completed"}]
        assert order.baskets == []

    @pytest.mark.parametrize(
        "status,terminal",
        [
            (OrderStatus.PENDING, False),
            (OrderStatus.FOR_PICK_UP, False),
            (OrderStatus.PROCESSING, False),
            (OrderStatus.FOR_DELIVERY, False),
            (OrderStatus.COMPLETED, True),
            (OrderStatus.CANCELLED, True),
        ],
    )
    def test_is_terminal(self, status, terminal):
        assert Order(status=status).is_terminal is terminal

    def test_helpers_tolerate_missing_documents(self):
        order = Order(breakdown=None)
        assert order.baskets == []
        assert order.audit_log == []


class TestStatusHistory:
    def test_reverse_relation_newest_first(self):
        order = Order.objects.create()
        with freeze_time("2026-03-02 08:00:00"):
            OrderStatusHistory.objects.create(order=order, new_status=OrderStatus.PENDING)
        with freeze_time("2026-03-02 09:00:00"):
            OrderStatusHistory.objects.create(
                order=order,
                old_status=OrderStatus.PENDING,
                new_status=OrderStatus.FOR_PICK_UP,
                changed_by="staff-3",
            )

        history = list(order.status_history.all())
        assert [h.new_status for h in history] == ["for_pick-up", "pending"]
        assert history[0].changed_by == "staff-3"
        assert history[1].old_status is None

    def test_str(self):
        order = Order.objects.create(order_number="LND-20260101-ABCDEF")
        entry = OrderStatusHistory.objects.create(
            order=order, old_status="pending", new_status="cancelled"
        )
        assert str(entry) == "LND-20260101-ABCDEF (pending) : pending -> cancelled"
