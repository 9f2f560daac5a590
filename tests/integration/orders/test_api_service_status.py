"""Integration tests for PATCH /api/v1/orders/{id}/service-status/.

Covers:
- Pickup without an address is skipped and the order moves to processing.
- Basket start / complete with automatic start of the next catalog service.
- Delivery without an address is rejected and leaves the order untouched.
- Finishing the last service moves the order to for_delivery or completed.
- Error bodies ``{code, message, context}`` with 400 / 404 / 409.
- Authentication enforcement.
"""

from __future__ import annotations

from uuid import uuid4

import pytest

from modules.orders.constants import OrderStatus
from modules.orders.models import Order

pytestmark = pytest.mark.integration

STAFF = "staff-11"


def _patch(client, order_id, **body):
    body.setdefault("staffId", STAFF)
    return client.patch(
        f"/api/v1/orders/{order_id}/service-status/", body, format="json"
    )


def _services(data, basket_index=0):
    return {
        s["service_name"]: s["status"]
        for s in data["breakdown"]["baskets"][basket_index]["services"]
    }


# ---------------------------------------------------------------------------
# Handling stages
# ---------------------------------------------------------------------------


class TestPickup:
    def test_pickup_without_address_is_skipped(self, auth_client, make_order):
        order = make_order(pickup="")

        response = _patch(auth_client, order.id, handlingType="pickup", action="start")

        assert response.status_code == 200
        data = response.json()
        assert data["handling"]["pickup"]["status"] == "skipped"
        assert data["status"] == OrderStatus.PROCESSING
        audit = data["breakdown"]["audit_log"]
        assert [e["action"] for e in audit] == ["order_created", "handling_skipped"]
        assert audit[-1]["changed_by"] == STAFF

    def test_pickup_with_address_runs_through(self, auth_client, make_order):
        order = make_order(pickup="12 Mabini St")

        started = _patch(auth_client, order.id, handlingType="pickup", action="start")
        assert started.json()["status"] == OrderStatus.FOR_PICK_UP
        assert started.json()["handling"]["pickup"]["started_by"] == STAFF

        completed = _patch(
            auth_client, order.id, handlingType="pickup", action="complete"
        )
        data = completed.json()
        assert data["status"] == OrderStatus.PROCESSING
        assert data["handling"]["pickup"]["status"] == "completed"
        assert [h["new_status"] for h in data["status_history"]] == [
            "processing",
            "for_pick-up",
            "pending",
        ]

    def test_repeat_pickup_start_keeps_completed_order(self, auth_client, make_order):
        order = make_order(baskets=[("Wash",)])
        _patch(auth_client, order.id, handlingType="pickup", action="start")
        _patch(auth_client, order.id, basketId=1, action="start")
        done = _patch(auth_client, order.id, basketId=1, action="complete").json()
        assert done["status"] == OrderStatus.COMPLETED

        response = _patch(auth_client, order.id, handlingType="pickup", action="start")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == OrderStatus.COMPLETED
        assert data["completed_at"] == done["completed_at"]
        assert data["version"] == done["version"]
        assert len(data["breakdown"]["audit_log"]) == len(
            done["breakdown"]["audit_log"]
        )

    def test_pickup_after_services_started_rejected(self, auth_client, make_order):
        order = make_order(pickup="12 Mabini St")
        _patch(auth_client, order.id, handlingType="pickup", action="start")
        _patch(auth_client, order.id, handlingType="pickup", action="complete")
        _patch(auth_client, order.id, basketId=1, action="start")

        response = _patch(auth_client, order.id, handlingType="pickup", action="start")

        assert response.status_code == 400
        body = response.json()
        assert body["code"] == "pickup_after_services_started"
        assert body["context"]["started_services"][0]["service_name"] == "Wash"


class TestDelivery:
    def test_delivery_without_address_rejected(self, auth_client, make_order):
        order = make_order(delivery=None)

        response = _patch(
            auth_client, order.id, handlingType="delivery", action="start"
        )

        assert response.status_code == 400
        body = response.json()
        assert body["code"] == "delivery_requires_address"
        assert body["context"] == {"handling_stage": "delivery"}
        order.refresh_from_db()
        assert order.status == OrderStatus.PENDING
        assert order.version == 1

    def test_delivery_before_baskets_finish_rejected(self, auth_client, make_order):
        order = make_order(delivery="88 Rizal Ave")

        response = _patch(
            auth_client, order.id, handlingType="delivery", action="start"
        )

        assert response.status_code == 400
        body = response.json()
        assert body["code"] == "baskets_incomplete"
        assert len(body["context"]["unfinished_services"]) == 3


# ---------------------------------------------------------------------------
# Basket services
# ---------------------------------------------------------------------------


class TestBasketProgression:
    def test_start_then_complete_auto_starts_next(self, auth_client, make_order):
        order = make_order(baskets=[("Basic Wash", "Spin", "Dry")])
        _patch(auth_client, order.id, handlingType="pickup", action="start")

        started = _patch(auth_client, order.id, basketId=1, action="start")
        assert started.status_code == 200
        assert _services(started.json()) == {
            "Basic Wash": "in_progress",
            "Spin": "pending",
            "Dry": "pending",
        }
        assert started.json()["breakdown"]["baskets"][0]["status"] == "processing"

        completed = _patch(auth_client, order.id, basketId="1", action="complete")
        data = completed.json()
        assert _services(data) == {
            "Basic Wash": "completed",
            "Spin": "in_progress",
            "Dry": "pending",
        }
        entry = data["breakdown"]["audit_log"][-1]
        assert entry["action"] == "service_completed"
        assert entry["service_name"] == "Basic Wash"
        assert entry["details"]["auto_started"] == "Spin"

    def test_basket_can_be_addressed_by_id(self, auth_client, make_order):
        order = make_order()
        _patch(auth_client, order.id, handlingType="pickup", action="start")
        basket_id = order.baskets[0]["id"]

        response = _patch(auth_client, order.id, basketId=basket_id, action="start")

        assert response.status_code == 200
        assert _services(response.json())["Wash"] == "in_progress"

    def test_start_before_pickup_rejected(self, auth_client, make_order):
        order = make_order(pickup="12 Mabini St")

        response = _patch(auth_client, order.id, basketId=1, action="start")

        assert response.status_code == 400
        assert response.json()["code"] == "pickup_not_done"

    def test_skip_before_pickup_is_allowed(self, auth_client, make_order):
        order = make_order()

        response = _patch(auth_client, order.id, basketId=1, action="skip")

        assert response.status_code == 200
        assert _services(response.json())["Wash"] == "skipped"

    def test_skip_with_nothing_pending_is_a_noop(self, auth_client, make_order):
        order = make_order(baskets=[("Wash",)], delivery="88 Rizal Ave")
        _patch(auth_client, order.id, basketId=1, action="skip")
        before = Order.objects.get(pk=order.pk)

        response = _patch(auth_client, order.id, basketId=1, action="skip")

        assert response.status_code == 200
        after = Order.objects.get(pk=order.pk)
        assert after.version == before.version
        assert after.audit_log == before.audit_log

    def test_complete_without_in_progress_rejected(self, auth_client, make_order):
        order = make_order()
        _patch(auth_client, order.id, handlingType="pickup", action="start")

        response = _patch(auth_client, order.id, basketId=1, action="complete")

        assert response.status_code == 400
        assert response.json()["code"] == "no_in_progress_service"


# ---------------------------------------------------------------------------
# Order completion
# ---------------------------------------------------------------------------


def _finish_all_baskets(client, order_id, basket_count):
    for number in range(1, basket_count + 1):
        _patch(client, order_id, basketId=number, action="start")
        response = _patch(client, order_id, basketId=number, action="complete")
    return response


class TestOrderCompletion:
    def test_last_service_with_delivery_address(self, auth_client, make_order):
        order = make_order(baskets=[("Wash",), ("Fold",)], delivery="88 Rizal Ave")
        _patch(auth_client, order.id, handlingType="pickup", action="start")

        last = _finish_all_baskets(auth_client, order.id, 2)
        assert last.json()["status"] == OrderStatus.FOR_DELIVERY
        assert last.json()["completed_at"] is None

        _patch(auth_client, order.id, handlingType="delivery", action="start")
        delivered = _patch(
            auth_client, order.id, handlingType="delivery", action="complete"
        )

        data = delivered.json()
        assert data["status"] == OrderStatus.COMPLETED
        assert data["completed_at"] is not None
        assert data["handling"]["delivery"]["status"] == "completed"

    def test_last_service_without_delivery_address(self, auth_client, make_order):
        order = make_order(baskets=[("Wash",)])
        _patch(auth_client, order.id, handlingType="pickup", action="start")

        last = _finish_all_baskets(auth_client, order.id, 1)

        data = last.json()
        assert data["status"] == OrderStatus.COMPLETED
        assert data["completed_at"] is not None
        assert data["breakdown"]["baskets"][0]["status"] == "completed"


# ---------------------------------------------------------------------------
# Malformed commands and missing orders
# ---------------------------------------------------------------------------


class TestErrors:
    @pytest.mark.parametrize(
        "body,code",
        [
            ({"staffId": "", "basketId": 1, "action": "start"}, "missing_actor"),
            (
                {"basketId": 1, "handlingType": "pickup", "action": "start"},
                "ambiguous_or_missing_target",
            ),
            ({"action": "start"}, "ambiguous_or_missing_target"),
            ({"basketId": 1, "action": "finish"}, "invalid_action"),
        ],
    )
    def test_malformed_command(self, auth_client, make_order, body, code):
        order = make_order()

        response = _patch(auth_client, order.id, **body)

        assert response.status_code == 400
        assert response.json()["code"] == code
        assert "message" in response.json()

    def test_unknown_order(self, auth_client):
        response = _patch(auth_client, uuid4(), basketId=1, action="start")

        assert response.status_code == 404
        assert response.json()["code"] == "order_not_found"

    def test_malformed_order_id(self, auth_client):
        response = _patch(auth_client, "not-a-uuid", basketId=1, action="start")

        assert response.status_code == 404

    def test_unknown_basket(self, auth_client, make_order):
        order = make_order()
        _patch(auth_client, order.id, handlingType="pickup", action="start")

        response = _patch(auth_client, order.id, basketId=7, action="start")

        assert response.status_code == 404
        assert response.json()["code"] == "basket_not_found"

    def test_cancelled_order_rejects_commands(self, auth_client, make_order):
        order = make_order()
        auth_client.post(
            f"/api/v1/orders/{order.id}/cancel/", {"staff_id": STAFF}, format="json"
        )

        response = _patch(auth_client, order.id, handlingType="pickup", action="start")

        assert response.status_code == 409
        assert response.json()["code"] == "invalid_order_status"

    def test_requires_authentication(self, api_client, make_order):
        order = make_order()

        response = _patch(api_client, order.id, handlingType="pickup", action="start")

        assert response.status_code == 401
