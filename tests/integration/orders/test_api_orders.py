"""Integration tests for order intake, queries and cancellation endpoints.

Covers:
- POST /api/v1/orders/: creation, validation, Idempotency-Key, throttling.
- GET /api/v1/orders/: pagination and filters.
- GET /api/v1/orders/{id}/: retrieve and 404.
- POST /api/v1/orders/{id}/cancel/: cancellation rules.
"""

from __future__ import annotations

from uuid import uuid4

import pytest

from modules.orders.constants import OrderStatus
from modules.orders.dtos import CancelOrderDTO
from modules.orders.models import Order, OrderStatusHistory

pytestmark = pytest.mark.integration

ORDERS_URL = "/api/v1/orders/"


@pytest.fixture()
def order_payload():
    return {
        "source": "app",
        "pickup_address": "12 Mabini St",
        "delivery_address": "88 Rizal Ave",
        "staff_id": "staff-4",
        "baskets": [
            {
                "weight": 5.5,
                "services": [
                    {"service_name": "Basic Wash"},
                    {"service_name": "Tumble Dry"},
                    {"service_name": "Fold"},
                ],
            },
            {"basket_number": 3, "services": [{"service_name": "Iron"}]},
        ],
    }


# ---------------------------------------------------------------------------
# Create
# ---------------------------------------------------------------------------


class TestCreateOrder:
    def test_create_returns_201_with_document(self, auth_client, order_payload):
        response = auth_client.post(ORDERS_URL, order_payload, format="json")

        assert response.status_code == 201
        data = response.json()
        assert data["status"] == OrderStatus.PENDING
        assert data["source"] == "app"
        assert data["version"] == 1
        assert data["handling"]["pickup"] == {"address": "12 Mabini St", "status": "pending"}
        baskets = data["breakdown"]["baskets"]
        assert [b["basket_number"] for b in baskets] == [1, 3]
        assert [s["service_type"] for s in baskets[0]["services"]] == [
            "wash",
            "dry",
            "fold",
        ]
        assert data["breakdown"]["audit_log"][0]["changed_by"] == "staff-4"

        history = OrderStatusHistory.objects.get(order_id=data["id"])
        assert history.new_status == OrderStatus.PENDING

    def test_created_by_defaults_to_authenticated_user(
        self, auth_client, staff_user, order_payload
    ):
        del order_payload["staff_id"]

        response = auth_client.post(ORDERS_URL, order_payload, format="json")

        entry = response.json()["breakdown"]["audit_log"][0]
        assert entry["changed_by"] == str(staff_user.pk)

    def test_unknown_service_type_rejected(self, auth_client, order_payload):
        order_payload["baskets"][1]["services"] = [{"service_name": "Steam"}]

        response = auth_client.post(ORDERS_URL, order_payload, format="json")

        assert response.status_code == 400
        body = response.json()
        assert body["code"] == "unknown_service_type"
        assert body["context"]["basket_number"] == 3
        assert Order.objects.count() == 0

    def test_duplicate_basket_numbers_rejected(self, auth_client, order_payload):
        order_payload["baskets"][0]["basket_number"] = 3

        response = auth_client.post(ORDERS_URL, order_payload, format="json")

        assert response.status_code == 400
        assert "detail" in response.json()

    def test_missing_baskets_rejected(self, auth_client):
        response = auth_client.post(ORDERS_URL, {"source": "store"}, format="json")

        assert response.status_code == 400
        assert "baskets" in response.json()

    def test_idempotency_key_replays_existing_order(self, auth_client, order_payload):
        first = auth_client.post(
            ORDERS_URL, order_payload, format="json", HTTP_IDEMPOTENCY_KEY="abc-1"
        )
        second = auth_client.post(
            ORDERS_URL, order_payload, format="json", HTTP_IDEMPOTENCY_KEY="abc-1"
        )

        assert first.status_code == 201
        assert second.status_code == 200
        assert second.json()["id"] == first.json()["id"]
        assert Order.objects.count() == 1
        assert OrderStatusHistory.objects.count() == 1
        assert second.json()["breakdown"]["audit_log"] == first.json()["breakdown"][
            "audit_log"
        ]

    def test_creation_is_throttled(self, auth_client, order_payload):
        codes = [
            auth_client.post(ORDERS_URL, order_payload, format="json").status_code
            for _ in range(6)
        ]

        assert codes[:5] == [201] * 5
        assert codes[5] == 429

    def test_requires_authentication(self, api_client, order_payload):
        response = api_client.post(ORDERS_URL, order_payload, format="json")

        assert response.status_code == 401


# ---------------------------------------------------------------------------
# List / Retrieve
# ---------------------------------------------------------------------------


class TestListOrders:
    def test_paginated_list(self, auth_client, make_order):
        for _ in range(3):
            make_order()

        response = auth_client.get(ORDERS_URL, {"page_size": 2})

        assert response.status_code == 200
        data = response.json()
        assert data["count"] == 3
        assert len(data["results"]) == 2
        assert data["next"] is not None
        assert data["results"][0]["basket_count"] == 1

    def test_filter_by_status_and_source(self, auth_client, make_order, order_service):
        kept = make_order(source="app")
        make_order(source="store")
        cancelled = make_order(source="app")
        order_service.cancel_order(cancelled.id, CancelOrderDTO(staff_id="s-1"))

        response = auth_client.get(ORDERS_URL, {"status": "pending", "source": "app"})

        ids = [row["id"] for row in response.json()["results"]]
        assert ids == [str(kept.id)]

    def test_filter_by_order_number_is_case_insensitive(self, auth_client, make_order):
        order = make_order()
        make_order()

        response = auth_client.get(
            ORDERS_URL, {"order_number": order.order_number.lower()}
        )

        assert [row["id"] for row in response.json()["results"]] == [str(order.id)]

    def test_filter_by_customer(self, auth_client, make_order):
        customer_id = uuid4()
        order = make_order(customer_id=customer_id)
        make_order()

        response = auth_client.get(ORDERS_URL, {"customer": str(customer_id)})

        assert [row["id"] for row in response.json()["results"]] == [str(order.id)]

    def test_soft_deleted_orders_hidden(self, auth_client, make_order):
        order = make_order()
        order.delete()

        response = auth_client.get(ORDERS_URL)

        assert response.json()["count"] == 0


class TestRetrieveOrder:
    def test_retrieve(self, auth_client, make_order):
        order = make_order()

        response = auth_client.get(f"{ORDERS_URL}{order.id}/")

        assert response.status_code == 200
        assert response.json()["order_number"] == order.order_number

    def test_unknown_order_returns_404(self, auth_client):
        response = auth_client.get(f"{ORDERS_URL}{uuid4()}/")

        assert response.status_code == 404
        assert response.json()["code"] == "order_not_found"


# ---------------------------------------------------------------------------
# Cancel
# ---------------------------------------------------------------------------


class TestCancelOrder:
    def test_cancel(self, auth_client, make_order):
        order = make_order()

        response = auth_client.post(
            f"{ORDERS_URL}{order.id}/cancel/",
            {"staff_id": "staff-2", "reason": "customer_request", "notes": "No show"},
            format="json",
        )

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == OrderStatus.CANCELLED
        assert data["cancelled_at"] is not None
        assert data["cancellation"]["reason"] == "customer_request"
        assert data["cancellation"]["requested_by"] == "staff-2"
        assert data["version"] == 2
        assert data["breakdown"]["audit_log"][-1]["action"] == "order_cancelled"

    def test_cancel_twice_conflicts(self, auth_client, make_order):
        order = make_order()
        url = f"{ORDERS_URL}{order.id}/cancel/"
        auth_client.post(url, {"staff_id": "staff-2"}, format="json")

        response = auth_client.post(url, {"staff_id": "staff-2"}, format="json")

        assert response.status_code == 409
        assert response.json()["code"] == "invalid_order_status"

    def test_cancel_requires_staff_id(self, auth_client, make_order):
        order = make_order()

        response = auth_client.post(f"{ORDERS_URL}{order.id}/cancel/", {}, format="json")

        assert response.status_code == 400
        assert "staff_id" in response.json()

    def test_cancel_unknown_order(self, auth_client):
        response = auth_client.post(
            f"{ORDERS_URL}{uuid4()}/cancel/", {"staff_id": "staff-2"}, format="json"
        )

        assert response.status_code == 404
