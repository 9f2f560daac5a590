"""Order API views.

Exposes the ``OrderService`` via HTTP using DRF ViewSets.
Domain exceptions are caught and translated into ``{code, message,
context}`` bodies with the status code each exception carries; the view
never swallows generic exceptions.
"""

from __future__ import annotations

import pydantic
from django_filters.rest_framework import DjangoFilterBackend
from rest_framework import status
from rest_framework.decorators import action
from rest_framework.filters import OrderingFilter, SearchFilter
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.throttling import BaseThrottle
from rest_framework.viewsets import GenericViewSet

from modules.core.pagination import StandardResultsSetPagination
from modules.orders.dtos import (
    CancelOrderDTO,
    CreateBasketDTO,
    CreateOrderDTO,
    CreateServiceDTO,
)
from modules.orders.exceptions import FulfillmentError
from modules.orders.filters import OrderFilter
from modules.orders.models import Order
from modules.orders.repositories.django_repository import OrderDjangoRepository
from modules.orders.serializers import (
    CancelOrderSerializer,
    CreateOrderSerializer,
    OrderListSerializer,
    OrderSerializer,
    ServiceStatusUpdateSerializer,
)
from modules.orders.services import OrderService


def _error_response(exc: FulfillmentError) -> Response:
    return Response(exc.as_dict(), status=exc.status_code)


class OrderViewSet(GenericViewSet):
    """ViewSet for Order operations.

    Uses ``OrderService`` with an injected repository (DIP).
    Does **not** extend ``ModelViewSet``: all ORM access goes through
    the service/repository layer.
    """

    queryset = Order.objects.alive()
    serializer_class = OrderSerializer
    filterset_class = OrderFilter
    search_fields = ["order_number", "notes"]
    ordering_fields = ["created_at", "completed_at", "status"]
    ordering = ["-created_at", "-id"]
    filter_backends = [DjangoFilterBackend, SearchFilter, OrderingFilter]

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self._service = OrderService(order_repository=OrderDjangoRepository())

    def get_throttles(self) -> list[BaseThrottle]:
        """Throttling scope per action."""
        throttle_scope: str | None
        if self.action == "create":
            throttle_scope = "order_creation"
        elif self.action in {"list", "retrieve"}:
            throttle_scope = "order_listing"
        elif self.action in {"service_status", "cancel"}:
            throttle_scope = "fulfillment_update"
        else:
            throttle_scope = None
        self.throttle_scope = throttle_scope
        return super().get_throttles()

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    def create(self, request: Request) -> Response:
        """POST /api/v1/orders/

        Supports idempotency via the ``Idempotency-Key`` header.
        Returns 200 if the key was already used, 201 for new orders.
        """
        create_serializer = CreateOrderSerializer(data=request.data)
        create_serializer.is_valid(raise_exception=True)

        data = create_serializer.validated_data
        idempotency_key = request.headers.get("Idempotency-Key")
        try:
            dto = CreateOrderDTO(
                customer_id=data.get("customer_id"),
                source=data["source"],
                pickup_address=data.get("pickup_address"),
                delivery_address=data.get("delivery_address"),
                baskets=[
                    CreateBasketDTO(
                        basket_number=basket.get("basket_number"),
                        weight=basket.get("weight"),
                        basket_notes=basket.get("basket_notes"),
                        services=[
                            CreateServiceDTO(**service)
                            for service in basket["services"]
                        ],
                    )
                    for basket in data["baskets"]
                ],
                notes=data.get("notes", ""),
                created_by=data.get("staff_id") or _user_id(request),
                idempotency_key=idempotency_key,
            )
        except pydantic.ValidationError as exc:
            return Response(
                {"detail": [err["msg"] for err in exc.errors()]},
                status=status.HTTP_400_BAD_REQUEST,
            )

        try:
            order, created = self._service.get_or_create_order(dto)
        except FulfillmentError as exc:
            return _error_response(exc)

        out = OrderSerializer(order)
        return Response(
            out.data, status=status.HTTP_201_CREATED if created else status.HTTP_200_OK
        )

    # ------------------------------------------------------------------
    # List / Retrieve
    # ------------------------------------------------------------------

    def get_queryset(self):
        return self._service.list_orders()

    def list(self, request: Request) -> Response:
        """GET /api/v1/orders/

        Filtering (status, source, customer, date range) is handled by
        ``OrderFilter`` via ``filter_backends``.  Ordering is handled by
        ``OrderingFilter``.  Results are paginated.
        """
        queryset = self.filter_queryset(self.get_queryset())

        paginator = StandardResultsSetPagination()
        page = paginator.paginate_queryset(queryset, request)
        serializer = OrderListSerializer(page, many=True)
        return paginator.get_paginated_response(serializer.data)

    def retrieve(self, request: Request, pk: str | None = None) -> Response:
        """GET /api/v1/orders/{pk}/"""
        try:
            order = self._service.get_order(str(pk))
        except FulfillmentError as exc:
            return _error_response(exc)
        serializer = OrderSerializer(order)
        return Response(serializer.data)

    # ------------------------------------------------------------------
    # Fulfillment progression
    # ------------------------------------------------------------------

    @action(detail=True, methods=["patch"], url_path="service-status")
    def service_status(self, request: Request, pk: str | None = None) -> Response:
        """PATCH /api/v1/orders/{pk}/service-status/

        Body: ``{staffId, action, basketId | handlingType}``.  Returns the
        full updated order, or ``{code, message, context}`` on rejection.
        """
        serializer = ServiceStatusUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            order = self._service.update_service_status(
                order_id=str(pk), payload=serializer.validated_data
            )
        except FulfillmentError as exc:
            return _error_response(exc)

        return Response(OrderSerializer(order).data)

    # ------------------------------------------------------------------
    # Cancel (dedicated action)
    # ------------------------------------------------------------------

    @action(detail=True, methods=["post"])
    def cancel(self, request: Request, pk: str | None = None) -> Response:
        """POST /api/v1/orders/{pk}/cancel/"""
        serializer = CancelOrderSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        dto = CancelOrderDTO(**serializer.validated_data)

        try:
            order = self._service.cancel_order(order_id=str(pk), dto=dto)
        except FulfillmentError as exc:
            return _error_response(exc)

        return Response(OrderSerializer(order).data)


def _user_id(request: Request) -> str | None:
    user = getattr(request, "user", None)
    if user is None or not user.is_authenticated:
        return None
    return str(user.pk)
