"""Order URL configuration.

Routes:
- ``orders/``                        list / create
- ``orders/{id}/``                   retrieve
- ``orders/{id}/service-status/``    fulfillment command (PATCH)
- ``orders/{id}/cancel/``            cancellation (POST)
"""

from __future__ import annotations

from rest_framework.routers import SimpleRouter

from modules.orders.views import OrderViewSet

router = SimpleRouter(trailing_slash=True)
router.register("orders", OrderViewSet, basename="order")

urlpatterns = router.urls
