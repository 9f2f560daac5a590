import pytest

from django.contrib.auth import get_user_model
from django.core.cache import cache

from rest_framework.test import APIClient

from modules.orders.dtos import CreateBasketDTO, CreateOrderDTO, CreateServiceDTO
from modules.orders.repositories.django_repository import OrderDjangoRepository
from modules.orders.services import OrderService


@pytest.fixture(autouse=True)
def _use_db(db):
    """Automatically use the test database for all tests."""


@pytest.fixture(autouse=True)
def _clear_throttle_cache():
    """Throttle counters live in the cache; start every test from zero."""
    cache.clear()
    yield
    cache.clear()


@pytest.fixture()
def api_client():
    """DRF APIClient for testing API endpoints."""
    return APIClient()


@pytest.fixture()
def api_client_with_correlation(api_client):
    """APIClient pre-configured with a known correlation ID header."""
    cid = "test-correlation-id-fixture"
    api_client.defaults["HTTP_X_REQUEST_ID"] = cid
    return api_client, cid


@pytest.fixture()
def staff_user():
    return get_user_model().objects.create_user(
        username="counter-staff", password="testpass123"
    )


@pytest.fixture()
def auth_client(staff_user):
    client = APIClient()
    client.force_authenticate(user=staff_user)
    return client


@pytest.fixture()
def order_service():
    return OrderService(order_repository=OrderDjangoRepository())


@pytest.fixture()
def make_order(order_service):
    """Create a persisted order.

    ``baskets`` is a list of service-name lists, one per basket.
    """

    def _make(baskets=(("Wash", "Dry", "Fold"),), pickup=None, delivery=None, **kwargs):
        dto = CreateOrderDTO(
            pickup_address=pickup,
            delivery_address=delivery,
            baskets=[
                CreateBasketDTO(
                    services=[CreateServiceDTO(service_name=name) for name in names]
                )
                for names in baskets
            ],
            **kwargs,
        )
        return order_service.create_order(dto)

    return _make
