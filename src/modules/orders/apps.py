from django.apps import AppConfig


class OrdersConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "modules.orders"
    label = "orders"
    verbose_name = "Laundry orders"

    def ready(self) -> None:
        from modules.orders import events, handlers
        from shared.infrastructure.bus import event_bus

        event_bus.subscribe(events.OrderCreated, handlers.order_created_handler)
        event_bus.subscribe(
            events.OrderStatusChanged, handlers.order_status_changed_handler
        )
        event_bus.subscribe(
            events.HandlingStageChanged, handlers.handling_stage_changed_handler
        )
        event_bus.subscribe(
            events.BasketServiceChanged, handlers.basket_service_changed_handler
        )
        event_bus.subscribe(events.OrderCompleted, handlers.order_completed_handler)
        event_bus.subscribe(events.OrderCancelled, handlers.order_cancelled_handler)
