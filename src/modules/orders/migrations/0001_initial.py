import django.db.models.deletion
import uuid6
from django.db import migrations, models

import modules.orders.models

ORDER_STATUS_CHOICES = [
    ("pending", "Pending"),
    ("for_pick-up", "For pick-up"),
    ("processing", "Processing"),
    ("for_delivery", "For delivery"),
    ("completed", "Completed"),
    ("cancelled", "Cancelled"),
]


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="Order",
            fields=[
                (
                    "id",
                    models.UUIDField(
                        default=uuid6.uuid7,
                        editable=False,
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "deleted_at",
                    models.DateTimeField(
                        blank=True, db_index=True, default=None, null=True
                    ),
                ),
                (
                    "order_number",
                    models.CharField(editable=False, max_length=20, unique=True),
                ),
                ("customer_id", models.UUIDField(blank=True, null=True)),
                (
                    "source",
                    models.CharField(
                        choices=[("store", "Store (POS)"), ("app", "Mobile app")],
                        default="store",
                        max_length=10,
                    ),
                ),
                (
                    "status",
                    models.CharField(
                        choices=ORDER_STATUS_CHOICES,
                        default="pending",
                        max_length=20,
                    ),
                ),
                (
                    "handling",
                    models.JSONField(default=modules.orders.models._empty_handling),
                ),
                (
                    "breakdown",
                    models.JSONField(default=modules.orders.models._empty_breakdown),
                ),
                ("notes", models.TextField(blank=True, default="")),
                (
                    "completed_at",
                    models.DateTimeField(blank=True, default=None, null=True),
                ),
                (
                    "cancelled_at",
                    models.DateTimeField(blank=True, default=None, null=True),
                ),
                (
                    "cancellation",
                    models.JSONField(blank=True, default=None, null=True),
                ),
                ("version", models.PositiveIntegerField(default=1)),
                (
                    "idempotency_key",
                    models.CharField(
                        blank=True, max_length=255, null=True, unique=True
                    ),
                ),
            ],
            options={
                "db_table": "orders",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["status"], name="orders_status_idx"),
                    models.Index(fields=["-created_at"], name="orders_created_idx"),
                    models.Index(
                        fields=["customer_id"], name="orders_customer_idx"
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="OrderStatusHistory",
            fields=[
                (
                    "id",
                    models.UUIDField(
                        default=uuid6.uuid7,
                        editable=False,
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "old_status",
                    models.CharField(
                        blank=True,
                        choices=ORDER_STATUS_CHOICES,
                        max_length=20,
                        null=True,
                    ),
                ),
                (
                    "new_status",
                    models.CharField(choices=ORDER_STATUS_CHOICES, max_length=20),
                ),
                (
                    "changed_by",
                    models.CharField(blank=True, default="", max_length=64),
                ),
                ("notes", models.TextField(blank=True, default="")),
                (
                    "order",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="status_history",
                        to="orders.order",
                    ),
                ),
            ],
            options={
                "db_table": "order_status_history",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(
                        fields=["order", "-created_at"],
                        name="osh_order_created_idx",
                    ),
                ],
            },
        ),
    ]
