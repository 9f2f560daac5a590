"""Order service layer (Use Cases).

Orchestrates order creation, fulfillment progression and cancellation.
All write operations are atomic: the service defines the unit-of-work
boundary, the repository provides the row lock and versioned write, and
``modules.orders.fulfillment`` decides what the new order document is.

Business rules enforced here:
- Fulfillment commands are validated before the order is loaded
  (actor, then target, then action).
- A rejected command leaves no trace: no write, no audit entry, no event.
- A ``skip`` with nothing pending is a no-op and is not persisted.
- Every order-level status change is recorded in the status history.
- Completed and cancelled orders cannot be cancelled.
"""

from __future__ import annotations

from typing import (
    TYPE_CHECKING,
    Any,
    Callable,
    Dict,
    List,
    Mapping,
    Optional,
    Tuple,
    Union,
)
from uuid import UUID, uuid4

import structlog
from django.db import transaction
from django.utils import timezone

from modules.orders import fulfillment
from modules.orders.catalog import SERVICE_SEQUENCE, resolve_service_type
from modules.orders.constants import (
    BasketStatus,
    HandlingStage,
    OrderStatus,
    StageStatus,
)
from modules.orders.dtos import (
    BasketCommand,
    HandlingCommand,
    parse_fulfillment_command,
)
from modules.orders.events import (
    BasketServiceChanged,
    HandlingStageChanged,
    OrderCancelled,
    OrderCompleted,
    OrderCreated,
    OrderStatusChanged,
)
from modules.orders.exceptions import (
    FulfillmentError,
    InvalidOrderStatus,
    OrderNotFound,
    UnknownServiceType,
)

if TYPE_CHECKING:
    from datetime import datetime

    from modules.orders.dtos import (
        CancelOrderDTO,
        CreateBasketDTO,
        CreateOrderDTO,
        CreateServiceDTO,
        FulfillmentCommand,
    )
    from modules.orders.models import Order
    from modules.orders.repositories.interfaces import IOrderRepository

logger = structlog.get_logger(__name__)


class OrderService:
    """Application service for Order use-cases.

    Receives the repository and the clock via constructor injection (DIP).
    """

    def __init__(
        self,
        order_repository: IOrderRepository,
        clock: Callable[[], datetime] = timezone.now,
    ) -> None:
        self._order_repo = order_repository
        self._clock = clock

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def create_order(self, dto: CreateOrderDTO) -> Order:
        """Create a new order with its baskets and services."""
        order, _ = self.get_or_create_order(dto)
        return order

    @transaction.atomic
    def get_or_create_order(self, dto: CreateOrderDTO) -> Tuple[Order, bool]:
        """Create a new order, or return the one already stored under the
        same ``Idempotency-Key``.

        Every service is stored with an ``id`` and an explicit
        ``service_type`` so later sequencing never depends on the
        free-text name.

        Returns:
            ``(order, created)``; ``created`` is ``False`` for a replay.

        Raises:
            UnknownServiceType: a service could not be matched to the catalog.
        """
        log = logger.bind(source=dto.source, basket_count=len(dto.baskets))
        log.info("order.creation_started")

        if dto.idempotency_key:
            existing = self._order_repo.get_by_idempotency_key(dto.idempotency_key)
            if existing:
                log.info(
                    "order.idempotency_hit",
                    order_id=str(existing.id),
                    key=dto.idempotency_key,
                )
                return existing, False

        now = self._clock()
        actor = dto.created_by or ""
        baskets = _build_baskets(dto.baskets)
        handling = {
            HandlingStage.PICKUP.value: _build_stage(dto.pickup_address),
            HandlingStage.DELIVERY.value: _build_stage(dto.delivery_address),
        }
        breakdown = {
            "baskets": baskets,
            "audit_log": [
                fulfillment.build_audit_entry(
                    "order_created",
                    actor,
                    now,
                    details={
                        "source": dto.source,
                        "basket_count": len(baskets),
                        "service_count": sum(len(b["services"]) for b in baskets),
                    },
                )
            ],
        }

        order = self._order_repo.create(
            {
                "customer_id": dto.customer_id,
                "source": dto.source,
                "handling": handling,
                "breakdown": breakdown,
                "notes": dto.notes or "",
                "idempotency_key": dto.idempotency_key,
            }
        )

        order.add_domain_event(
            OrderCreated(
                aggregate_id=order.id,
                order_number=order.order_number,
                source=order.source,
                basket_count=len(baskets),
            )
        )
        self._order_repo.save(order)

        self._order_repo.add_history(
            order_id=order.id,
            status=OrderStatus.PENDING,
            notes="Order created",
            changed_by=actor,
        )

        log.info(
            "order.created", order_id=str(order.id), order_number=order.order_number
        )
        return order, True

    @transaction.atomic
    def update_service_status(
        self,
        order_id: Union[str, UUID],
        payload: Union[Mapping[str, Any], FulfillmentCommand],
    ) -> Order:
        """Apply one fulfillment command to an order.

        ``payload`` is either an already-typed command or the raw request
        body (``staffId``, ``basketId`` / ``handlingType``, ``action``).
        The order row stays locked until the transaction commits, and the
        write is checked against the version read under that lock.

        Raises:
            MissingActor, AmbiguousOrMissingTarget, InvalidAction: the
                command is malformed (checked before the order is loaded).
            OrderNotFound: the order does not exist.
            FulfillmentError: any rejection from the state machine.
            ConcurrentUpdate: the order changed between read and write.
            StoreError: the store failed.
        """
        if isinstance(payload, (HandlingCommand, BasketCommand)):
            command = payload
        else:
            command = parse_fulfillment_command(payload)

        log = logger.bind(
            order_id=str(order_id),
            command=command.kind,
            action=command.action,
            staff_id=command.actor_id,
        )

        order = self._order_repo.get_for_update(str(order_id))
        if not order:
            raise OrderNotFound(
                f"Order {order_id} not found.", context={"order_id": str(order_id)}
            )

        expected_version = order.version
        old_status = order.status

        try:
            transition = fulfillment.apply(order.to_snapshot(), command, self._clock())
        except FulfillmentError as exc:
            log.warning("order.fulfillment_rejected", code=exc.code, reason=exc.message)
            raise

        if not transition.changed:
            log.info("order.fulfillment_noop")
            return order

        order.apply_snapshot(transition.snapshot)
        self._collect_fulfillment_events(order, command, transition, old_status)
        self._order_repo.put(order, expected_version)

        if order.status != old_status:
            self._order_repo.add_history(
                order_id=order.id,
                status=order.status,
                old_status=old_status,
                changed_by=command.actor_id,
                notes=transition.audit_entry["action"],
            )

        log.info(
            "order.service_status_updated",
            audit_action=transition.audit_entry["action"],
            old_status=old_status,
            new_status=order.status,
            version=order.version,
        )
        return order

    @transaction.atomic
    def cancel_order(self, order_id: Union[str, UUID], dto: CancelOrderDTO) -> Order:
        """Cancel an order that has not yet completed.

        Raises:
            OrderNotFound: order does not exist.
            InvalidOrderStatus: the order is already completed or cancelled.
        """
        order = self._order_repo.get_for_update(str(order_id))
        if not order:
            raise OrderNotFound(
                f"Order {order_id} not found.", context={"order_id": str(order_id)}
            )

        log = logger.bind(order_id=str(order_id), current_status=order.status)

        if order.is_terminal:
            log.warning("order.cancel_not_allowed")
            raise InvalidOrderStatus(
                f"Cannot cancel order in status {order.status}.",
                context={"status": order.status},
            )

        now = self._clock()
        expected_version = order.version
        old_status = order.status

        order.status = OrderStatus.CANCELLED
        order.cancelled_at = now
        order.cancellation = {
            "reason": dto.reason,
            "notes": dto.notes or "",
            "requested_at": now.isoformat(),
            "requested_by": dto.staff_id,
        }
        order.breakdown = fulfillment.append_audit_entry(
            order.breakdown or {},
            fulfillment.build_audit_entry(
                "order_cancelled",
                dto.staff_id,
                now,
                details={"reason": dto.reason, "previous_status": old_status},
            ),
        )
        order.add_domain_event(
            OrderCancelled(
                aggregate_id=order.id, reason=dto.reason, cancelled_by=dto.staff_id
            )
        )
        order.add_domain_event(
            OrderStatusChanged(
                aggregate_id=order.id,
                old_status=old_status,
                new_status=OrderStatus.CANCELLED,
                changed_by=dto.staff_id,
            )
        )
        self._order_repo.put(order, expected_version)

        self._order_repo.add_history(
            order_id=order.id,
            status=OrderStatus.CANCELLED,
            old_status=old_status,
            changed_by=dto.staff_id,
            notes=dto.notes or "Order cancelled",
        )

        log.info("order.cancelled", reason=dto.reason)
        return order

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_order(self, order_id: str) -> Order:
        """Retrieve a single order by ID.

        Raises:
            OrderNotFound: if the order does not exist.
        """
        order = self._order_repo.get_by_id(order_id)
        if not order:
            raise OrderNotFound(
                f"Order {order_id} not found.", context={"order_id": str(order_id)}
            )
        return order

    def list_orders(self, filters: Optional[Dict[str, Any]] = None) -> Any:
        """Return orders, optionally filtered."""
        return self._order_repo.list(filters)

    # ------------------------------------------------------------------
    # Domain events
    # ------------------------------------------------------------------

    def _collect_fulfillment_events(
        self,
        order: Order,
        command: FulfillmentCommand,
        transition: fulfillment.Transition,
        old_status: str,
    ) -> None:
        entry = transition.audit_entry or {}
        details = entry.get("details") or {}

        if isinstance(command, HandlingCommand):
            stage = (order.handling or {}).get(command.stage) or {}
            order.add_domain_event(
                HandlingStageChanged(
                    aggregate_id=order.id,
                    stage=command.stage,
                    action=entry.get("action", ""),
                    new_status=stage.get("status", ""),
                    changed_by=command.actor_id,
                )
            )
        else:
            order.add_domain_event(
                BasketServiceChanged(
                    aggregate_id=order.id,
                    basket_number=entry.get("basket_number"),
                    service_name=entry.get("service_name") or "",
                    action=entry.get("action", ""),
                    service_status=details.get("service_status", ""),
                    basket_status=details.get("basket_status", ""),
                    auto_started=details.get("auto_started"),
                    changed_by=command.actor_id,
                )
            )

        if order.status != old_status:
            order.add_domain_event(
                OrderStatusChanged(
                    aggregate_id=order.id,
                    old_status=old_status,
                    new_status=order.status,
                    changed_by=command.actor_id,
                )
            )
            if order.status == OrderStatus.COMPLETED:
                order.add_domain_event(
                    OrderCompleted(
                        aggregate_id=order.id, order_number=order.order_number
                    )
                )


# ---------------------------------------------------------------------------
# Order document builders
# ---------------------------------------------------------------------------


def _build_stage(address: Optional[str]) -> Dict[str, Any]:
    cleaned = (address or "").strip()
    return {"address": cleaned or None, "status": StageStatus.PENDING.value}


def _build_baskets(baskets: List[CreateBasketDTO]) -> List[Dict[str, Any]]:
    taken = {b.basket_number for b in baskets if b.basket_number}
    next_number = 1
    built = []
    for basket in baskets:
        number = basket.basket_number
        if not number:
            while next_number in taken:
                next_number += 1
            number = next_number
            taken.add(number)
        built.append(
            {
                "id": str(uuid4()),
                "basket_number": number,
                "weight": basket.weight,
                "basket_notes": basket.basket_notes or "",
                "status": BasketStatus.PENDING.value,
                "services": [_build_service(s, number) for s in basket.services],
            }
        )
    return built


def _build_service(service: CreateServiceDTO, basket_number: int) -> Dict[str, Any]:
    document = {
        "service_name": service.service_name.strip(),
        "service_type": service.service_type,
    }
    service_type = resolve_service_type(document)
    if service_type is None or (
        service.service_type
        and service.service_type.strip().lower() not in SERVICE_SEQUENCE
    ):
        raise UnknownServiceType(
            f'Invalid service type for "{service.service_name}".',
            context={
                "basket_number": basket_number,
                "service_name": service.service_name,
                "service_type": service.service_type,
                "valid_service_types": list(SERVICE_SEQUENCE),
            },
        )
    return {
        "id": service.service_id or str(uuid4()),
        "service_name": document["service_name"],
        "service_type": service_type,
        "multiplier": service.multiplier,
        "status": StageStatus.PENDING.value,
    }
