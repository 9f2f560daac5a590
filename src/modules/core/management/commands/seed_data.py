from __future__ import annotations

import random

from django.contrib.auth import get_user_model
from django.core.management.base import BaseCommand

from modules.orders.dtos import CreateBasketDTO, CreateOrderDTO, CreateServiceDTO
from modules.orders.models import Order
from modules.orders.repositories.django_repository import OrderDjangoRepository
from modules.orders.services import OrderService

SERVICE_MENUS = [
    ["Wash", "Spin", "Dry", "Fold"],
    ["Wash & Dry", "Fold"],
    ["Wash", "Dry", "Iron"],
    ["Dry Clean", "Iron"],
    ["Spin", "Dry"],
]

ADDRESSES = [
    "12 Mabini St, Quezon City",
    "88 Rizal Ave, Manila",
    "5 Katipunan Rd, Marikina",
]


class Command(BaseCommand):
    help = "Seed database with laundry orders at various fulfillment stages."

    def add_arguments(self, parser):
        parser.add_argument("--orders", type=int, default=12)

    def handle(self, *args, **options):
        random.seed(42)
        self.stdout.write("Seeding development data...")

        users_created = self._seed_users()
        service = OrderService(order_repository=OrderDjangoRepository())
        orders = [self._seed_order(service, i) for i in range(options["orders"])]
        progressed = sum(self._progress(service, order) for order in orders)

        self.stdout.write(
            self.style.SUCCESS(
                "Seed completed: "
                f"users={users_created}, "
                f"orders={len(orders)}, "
                f"commands_applied={progressed}"
            )
        )

    def _seed_users(self) -> int:
        User = get_user_model()
        created = 0
        if not User.objects.filter(username="admin").exists():
            User.objects.create_superuser("admin", password="admin123")
            created += 1
        if not User.objects.filter(username="staff").exists():
            User.objects.create_user("staff", password="staff123", is_staff=True)
            created += 1
        return created

    def _seed_order(self, service: OrderService, index: int) -> Order:
        app_order = index % 2 == 0
        baskets = [
            CreateBasketDTO(
                basket_number=n + 1,
                weight=round(random.uniform(2.0, 8.0), 1),
                services=[
                    CreateServiceDTO(service_name=name)
                    for name in random.choice(SERVICE_MENUS)
                ],
            )
            for n in range(random.randint(1, 3))
        ]
        return service.create_order(
            CreateOrderDTO(
                source="app" if app_order else "store",
                pickup_address=random.choice(ADDRESSES) if app_order else None,
                delivery_address=random.choice(ADDRESSES) if app_order else None,
                baskets=baskets,
                created_by="seed",
            )
        )

    def _progress(self, service: OrderService, order: Order) -> int:
        """Apply a random number of "happy path" commands to *order*."""
        applied = 0
        steps = random.randint(0, 12)
        payload = {"staffId": "seed", "handlingType": "pickup", "action": "start"}
        order = service.update_service_status(order.id, payload)
        applied += 1
        if order.handling["pickup"]["status"] == "in_progress" and steps:
            payload["action"] = "complete"
            order = service.update_service_status(order.id, payload)
            applied += 1

        for basket in order.baskets:
            ref = basket["basket_number"]
            for action in ("start", "complete", "complete", "complete"):
                if applied >= steps:
                    return applied
                current = next(
                    b for b in order.baskets if b["basket_number"] == ref
                )
                statuses = {s["status"] for s in current["services"]}
                if action == "complete" and "in_progress" not in statuses:
                    break
                order = service.update_service_status(
                    order.id, {"staffId": "seed", "basketId": ref, "action": action}
                )
                applied += 1
        return applied
