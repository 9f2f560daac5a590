"""Order DRF serializers for API input/output.

The serializer operates at the Interface layer (API Views).
Business logic lives in the Service Layer, which receives
Pydantic DTOs from ``dtos.py``.
"""

from __future__ import annotations

from rest_framework import serializers

from modules.orders.constants import OrderSource
from modules.orders.models import Order, OrderStatusHistory

# ---------------------------------------------------------------------------
# Input Serializers
# ---------------------------------------------------------------------------


class ServiceStatusUpdateSerializer(serializers.Serializer):
    """Shape of a fulfillment command.

    Every field is optional here: presence and allowed values are checked
    by ``parse_fulfillment_command`` so rejections keep a fixed order and
    the domain error codes.
    """

    staffId = serializers.CharField(required=False, allow_null=True, allow_blank=True)
    basketId = serializers.CharField(required=False, allow_null=True, allow_blank=True)
    handlingType = serializers.CharField(
        required=False, allow_null=True, allow_blank=True
    )
    action = serializers.CharField(required=False, allow_null=True, allow_blank=True)


class CreateServiceSerializer(serializers.Serializer):
    service_name = serializers.CharField(max_length=120)
    service_type = serializers.CharField(
        required=False, allow_null=True, allow_blank=True, default=None
    )
    service_id = serializers.CharField(required=False, allow_null=True, default=None)
    multiplier = serializers.IntegerField(min_value=1, required=False, default=1)


class CreateBasketSerializer(serializers.Serializer):
    basket_number = serializers.IntegerField(
        min_value=1, required=False, allow_null=True, default=None
    )
    weight = serializers.FloatField(
        min_value=0, required=False, allow_null=True, default=None
    )
    basket_notes = serializers.CharField(
        required=False, allow_blank=True, allow_null=True, default=""
    )
    services = CreateServiceSerializer(many=True, allow_empty=False)


class CreateOrderSerializer(serializers.Serializer):
    """Validates the order creation request payload."""

    customer_id = serializers.UUIDField(required=False, allow_null=True, default=None)
    source = serializers.ChoiceField(
        choices=OrderSource.choices, required=False, default=OrderSource.STORE
    )
    pickup_address = serializers.CharField(
        required=False, allow_blank=True, allow_null=True, default=None
    )
    delivery_address = serializers.CharField(
        required=False, allow_blank=True, allow_null=True, default=None
    )
    baskets = CreateBasketSerializer(many=True, allow_empty=False)
    notes = serializers.CharField(required=False, default="", allow_blank=True)
    staff_id = serializers.CharField(
        required=False, allow_blank=True, allow_null=True, default=None
    )


class CancelOrderSerializer(serializers.Serializer):
    staff_id = serializers.CharField()
    reason = serializers.ChoiceField(
        choices=["customer_request", "payment_failed", "damaged", "other"],
        required=False,
        default="other",
    )
    notes = serializers.CharField(required=False, default="", allow_blank=True)


# ---------------------------------------------------------------------------
# Output Serializers (Read)
# ---------------------------------------------------------------------------


class StatusHistorySerializer(serializers.ModelSerializer):
    """Read serializer for order status history records."""

    class Meta:
        model = OrderStatusHistory
        fields = [
            "id",
            "old_status",
            "new_status",
            "changed_by",
            "notes",
            "created_at",
        ]
        read_only_fields = fields


class OrderSerializer(serializers.ModelSerializer):
    """Full order document: handling stages, baskets, audit log and history."""

    status_history = StatusHistorySerializer(many=True, read_only=True)

    class Meta:
        model = Order
        fields = [
            "id",
            "order_number",
            "customer_id",
            "source",
            "status",
            "handling",
            "breakdown",
            "notes",
            "completed_at",
            "cancelled_at",
            "cancellation",
            "version",
            "created_at",
            "updated_at",
            "status_history",
        ]
        read_only_fields = fields


class OrderListSerializer(serializers.ModelSerializer):
    """Lightweight serializer for order list (no nested documents)."""

    basket_count = serializers.SerializerMethodField()

    class Meta:
        model = Order
        fields = [
            "id",
            "order_number",
            "customer_id",
            "source",
            "status",
            "basket_count",
            "completed_at",
            "created_at",
        ]
        read_only_fields = fields

    def get_basket_count(self, obj: Order) -> int:
        return len(obj.baskets)
