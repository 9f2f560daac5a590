import django_filters

from modules.orders.constants import OrderSource, OrderStatus
from modules.orders.models import Order


class OrderFilter(django_filters.FilterSet):
    status = django_filters.ChoiceFilter(choices=OrderStatus.choices)
    source = django_filters.ChoiceFilter(choices=OrderSource.choices)
    customer = django_filters.UUIDFilter(field_name="customer_id")
    order_number = django_filters.CharFilter(
        field_name="order_number", lookup_expr="iexact"
    )
    start_date = django_filters.DateFilter(
        field_name="created_at", lookup_expr="date__gte"
    )
    end_date = django_filters.DateFilter(
        field_name="created_at", lookup_expr="date__lte"
    )

    class Meta:
        model = Order
        fields = [
            "status",
            "source",
            "customer",
            "order_number",
            "start_date",
            "end_date",
        ]
