"""Order fulfillment progression state machine.

Advances an order through ``pickup -> basket services -> delivery``.
The state machine is a pure function of the current order snapshot and a
command::

    apply(snapshot, command, now) -> Transition(snapshot', audit_entry)

It never touches the input snapshot: ``handling`` and ``breakdown`` are
deep-copied into a working draft, every precondition is checked before the
draft is changed, and a rejected command raises one of the
``FulfillmentError`` subclasses with the input left intact.

Derived state:
- Basket status is a projection of its services (``completed`` when every
  service is completed/skipped, ``processing`` when one is in progress,
  ``pending`` otherwise).
- Order status follows the handling stages, and is recomputed after every
  basket command once all baskets are done (``for_delivery`` when a delivery
  address is on file, ``completed`` otherwise).
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional

from django.utils.dateparse import parse_datetime

from modules.orders.catalog import SERVICE_SEQUENCE, resolve_service_type, types_after
from modules.orders.constants import (
    ACTION_PAST_TENSE,
    FINISHED_STAGE_STATUSES,
    PICKUP_PHASE_STATUSES,
    BasketStatus,
    FulfillmentAction,
    HandlingStage,
    OrderStatus,
    StageStatus,
)
from modules.orders.dtos import BasketCommand, FulfillmentCommand, HandlingCommand
from modules.orders.exceptions import (
    BasketNotFound,
    BasketsIncomplete,
    DeliveryRequiresAddress,
    InvalidOrderStatus,
    NoInProgressService,
    NoPendingServices,
    PickupAfterServicesStarted,
    PickupNotDone,
    UnknownServiceType,
)

Document = Dict[str, Any]


@dataclass(frozen=True)
class OrderSnapshot:
    """The fulfillment-relevant part of an order document."""

    status: str
    handling: Mapping[str, Any]
    breakdown: Mapping[str, Any]
    completed_at: Optional[datetime] = None


@dataclass(frozen=True)
class Transition:
    """Outcome of an accepted command.

    ``audit_entry`` is ``None`` only for a no-op (``skip`` on a basket with
    nothing pending, or ``start`` on an unaddressed pickup that is already
    finished), in which case ``snapshot`` is the input snapshot.
    """

    snapshot: OrderSnapshot
    audit_entry: Optional[Document]
    auto_started: Optional[Document] = None

    @property
    def changed(self) -> bool:
        return self.audit_entry is not None


@dataclass
class _Draft:
    status: str
    completed_at: Optional[datetime]
    handling: Document
    breakdown: Document
    auto_started: Optional[Document] = field(default=None)

    def mark_completed(self, now: datetime) -> None:
        self.status = OrderStatus.COMPLETED
        if self.completed_at is None:
            self.completed_at = now

    @property
    def baskets(self) -> List[Document]:
        if not isinstance(self.breakdown.get("baskets"), list):
            self.breakdown["baskets"] = []
        return self.breakdown["baskets"]

    def stage(self, name: str) -> Document:
        if not isinstance(self.handling.get(name), dict):
            self.handling[name] = {"address": None, "status": StageStatus.PENDING}
        return self.handling[name]

    def freeze(self) -> OrderSnapshot:
        return OrderSnapshot(
            status=self.status,
            handling=self.handling,
            breakdown=self.breakdown,
            completed_at=self.completed_at,
        )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def apply(
    snapshot: OrderSnapshot, command: FulfillmentCommand, now: datetime
) -> Transition:
    """Apply *command* to *snapshot* and return the resulting transition.

    Raises:
        InvalidOrderStatus: the order has been cancelled.
        DeliveryRequiresAddress, PickupAfterServicesStarted,
        BasketsIncomplete, PickupNotDone: ordering preconditions.
        BasketNotFound, UnknownServiceType, NoPendingServices,
        NoInProgressService: the order does not match the command.
    """
    if snapshot.status == OrderStatus.CANCELLED:
        raise InvalidOrderStatus(
            "Cannot update fulfillment of a cancelled order.",
            context={"status": snapshot.status},
        )

    draft = _Draft(
        status=snapshot.status,
        completed_at=snapshot.completed_at,
        handling=copy.deepcopy(dict(snapshot.handling or {})),
        breakdown=copy.deepcopy(dict(snapshot.breakdown or {})),
    )

    if isinstance(command, HandlingCommand):
        entry = _apply_handling(draft, command, now)
    elif isinstance(command, BasketCommand):
        entry = _apply_basket(draft, command, now)
    else:
        raise TypeError(f"Unsupported command: {command!r}")

    if entry is None:
        return Transition(snapshot=snapshot, audit_entry=None)

    draft.breakdown = append_audit_entry(draft.breakdown, entry)
    return Transition(
        snapshot=draft.freeze(), audit_entry=entry, auto_started=draft.auto_started
    )


def append_audit_entry(breakdown: Mapping[str, Any], entry: Document) -> Document:
    """Return a copy of *breakdown* with *entry* appended to its audit log."""
    updated = dict(breakdown)
    audit_log = list(updated.get("audit_log") or [])
    audit_log.append(entry)
    updated["audit_log"] = audit_log
    return updated


def build_audit_entry(
    action: str, changed_by: str, now: datetime, **fields: Any
) -> Document:
    entry: Document = {
        "action": action,
        "timestamp": now.isoformat(),
        "changed_by": changed_by,
    }
    entry.update(fields)
    return entry


def derive_basket_status(services: List[Mapping[str, Any]]) -> str:
    statuses = [_status(s) for s in services]
    if all(s in FINISHED_STAGE_STATUSES for s in statuses):
        return BasketStatus.COMPLETED
    if StageStatus.IN_PROGRESS in statuses:
        return BasketStatus.PROCESSING
    return BasketStatus.PENDING


def unfinished_services(baskets: List[Mapping[str, Any]]) -> List[Document]:
    """Services that are neither completed nor skipped, across all baskets."""
    return [
        {
            "basket_number": basket.get("basket_number"),
            "service_name": service.get("service_name"),
            "status": _status(service),
        }
        for basket in baskets
        for service in basket.get("services") or []
        if _status(service) not in FINISHED_STAGE_STATUSES
    ]


def has_address(stage: Optional[Mapping[str, Any]]) -> bool:
    return bool(((stage or {}).get("address") or "").strip())


# ---------------------------------------------------------------------------
# Handling stages
# ---------------------------------------------------------------------------


def _apply_handling(
    draft: _Draft, command: HandlingCommand, now: datetime
) -> Optional[Document]:
    stage_name = command.stage
    stage = draft.stage(stage_name)
    previous = _status(stage)

    if command.action == FulfillmentAction.START and not has_address(stage):
        if stage_name == HandlingStage.DELIVERY:
            raise DeliveryRequiresAddress(
                "Delivery requires an address to proceed.",
                context={"handling_stage": stage_name},
            )
        if previous in FINISHED_STAGE_STATUSES:
            return None
        stage["status"] = StageStatus.SKIPPED
        _derive_order_status_from_stage(draft, stage_name, StageStatus.SKIPPED, now)
        return build_audit_entry(
            "handling_skipped",
            command.actor_id,
            now,
            handling_stage=stage_name,
            details={
                "reason": "no_address",
                "previous_status": previous,
                "new_status": StageStatus.SKIPPED,
            },
        )

    if command.action == FulfillmentAction.START:
        if stage_name == HandlingStage.PICKUP:
            started = [
                s
                for s in _all_services(draft.baskets)
                if s["status"] != StageStatus.PENDING
            ]
            if started:
                raise PickupAfterServicesStarted(
                    "Cannot start pickup after basket services have started.",
                    context={"started_services": started},
                )
        else:
            unfinished = unfinished_services(draft.baskets)
            if unfinished:
                raise BasketsIncomplete(
                    "All baskets must complete their services before "
                    "starting delivery.",
                    context={"unfinished_services": unfinished},
                )

    _mark(stage, command.action, command.actor_id, now)
    _derive_order_status_from_stage(draft, stage_name, stage["status"], now)

    return build_audit_entry(
        f"handling_{ACTION_PAST_TENSE[command.action]}",
        command.actor_id,
        now,
        handling_stage=stage_name,
        details={"previous_status": previous, "new_status": stage["status"]},
    )


def _derive_order_status_from_stage(
    draft: _Draft, stage_name: str, stage_status: str, now: datetime
) -> None:
    if stage_name == HandlingStage.PICKUP:
        # Pickup never moves an order back once it is past pick-up.
        if draft.status not in PICKUP_PHASE_STATUSES:
            return
        if stage_status in FINISHED_STAGE_STATUSES:
            draft.status = OrderStatus.PROCESSING
        elif stage_status == StageStatus.IN_PROGRESS:
            draft.status = OrderStatus.FOR_PICK_UP
    else:
        if stage_status == StageStatus.IN_PROGRESS:
            draft.status = OrderStatus.FOR_DELIVERY
        elif stage_status == StageStatus.COMPLETED:
            draft.mark_completed(now)


# ---------------------------------------------------------------------------
# Basket services
# ---------------------------------------------------------------------------


def _apply_basket(
    draft: _Draft, command: BasketCommand, now: datetime
) -> Optional[Document]:
    if command.action in (FulfillmentAction.START, FulfillmentAction.COMPLETE):
        pickup_status = _status(draft.handling.get(HandlingStage.PICKUP) or {})
        if pickup_status not in FINISHED_STAGE_STATUSES:
            raise PickupNotDone(
                "Pickup must be completed before starting basket services.",
                context={"pickup_status": pickup_status},
            )

    basket = _find_basket(draft.baskets, command.basket_ref)
    services = basket.get("services")
    if not isinstance(services, list):
        services = basket["services"] = []

    if command.action == FulfillmentAction.START:
        target = _first_with_status(services, StageStatus.PENDING)
        if target is None:
            raise NoPendingServices(
                "No pending services in this basket.",
                context={"basket_number": basket.get("basket_number")},
            )
        _require_service_type(target)
        previous = _status(target)
        _mark(target, FulfillmentAction.START, command.actor_id, now)

    elif command.action == FulfillmentAction.COMPLETE:
        target = _first_with_status(services, StageStatus.IN_PROGRESS)
        if target is None:
            raise NoInProgressService(
                "No in_progress service to complete.",
                context={"basket_number": basket.get("basket_number")},
            )
        completed_type = _require_service_type(target)
        previous = _status(target)
        _mark(target, FulfillmentAction.COMPLETE, command.actor_id, now)
        draft.auto_started = _auto_advance(
            services, completed_type, command.actor_id, now
        )

    else:
        target = _first_with_status(services, StageStatus.PENDING)
        if target is None:
            return None
        previous = _status(target)
        _mark(target, FulfillmentAction.SKIP, command.actor_id, now)

    basket["status"] = derive_basket_status(services)
    if basket["status"] == BasketStatus.COMPLETED and not basket.get("completed_at"):
        basket["completed_at"] = now.isoformat()

    if not unfinished_services(draft.baskets):
        if has_address(draft.handling.get(HandlingStage.DELIVERY)):
            draft.status = OrderStatus.FOR_DELIVERY
        else:
            draft.mark_completed(now)

    details: Document = {
        "action": command.action,
        "previous_status": previous,
        "service_status": target["status"],
        "basket_status": basket["status"],
    }
    if draft.auto_started is not None:
        details["auto_started"] = draft.auto_started.get("service_name")

    return build_audit_entry(
        f"service_{ACTION_PAST_TENSE[command.action]}",
        command.actor_id,
        now,
        basket_number=basket.get("basket_number"),
        service_name=target.get("service_name"),
        details=details,
    )


def _auto_advance(
    services: List[Document], completed_type: str, actor_id: str, now: datetime
) -> Optional[Document]:
    """Start the next pending service in catalog order, if there is one."""
    for next_type in types_after(completed_type):
        for service in services:
            if (
                _status(service) == StageStatus.PENDING
                and resolve_service_type(service) == next_type
            ):
                _mark(service, FulfillmentAction.START, actor_id, now)
                return service
    return None


def _require_service_type(service: Mapping[str, Any]) -> str:
    service_type = resolve_service_type(service)
    if service_type is None:
        name = service.get("service_name")
        raise UnknownServiceType(
            f'Invalid service type: "{name}" does not contain any of '
            f"[{', '.join(SERVICE_SEQUENCE)}].",
            context={
                "service_name": name,
                "valid_service_types": list(SERVICE_SEQUENCE),
            },
        )
    return service_type


def _find_basket(baskets: List[Document], ref: Any) -> Document:
    wanted = str(ref)
    for basket in baskets:
        for key in ("basket_number", "id"):
            value = basket.get(key)
            if value is not None and str(value) == wanted:
                return basket
    raise BasketNotFound(
        "Basket not found in order.", context={"basketId": ref}
    )


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _status(item: Mapping[str, Any]) -> str:
    return item.get("status") or StageStatus.PENDING


def _first_with_status(services: List[Document], status: str) -> Optional[Document]:
    return next((s for s in services if _status(s) == status), None)


def _all_services(baskets: List[Mapping[str, Any]]) -> List[Document]:
    return [
        {
            "basket_number": basket.get("basket_number"),
            "service_name": service.get("service_name"),
            "status": _status(service),
        }
        for basket in baskets
        for service in basket.get("services") or []
    ]


def _mark(target: Document, action: str, actor_id: str, now: datetime) -> None:
    stamp = now.isoformat()
    if action == FulfillmentAction.START:
        target["status"] = StageStatus.IN_PROGRESS
        target["started_at"] = stamp
        target["started_by"] = actor_id
    elif action == FulfillmentAction.COMPLETE:
        target["status"] = StageStatus.COMPLETED
        target["completed_at"] = stamp
        target["completed_by"] = actor_id
        duration = _duration_minutes(target.get("started_at"), now)
        if duration is not None:
            target["duration_in_minutes"] = duration
    else:
        target["status"] = StageStatus.SKIPPED


def _duration_minutes(started_at: Any, now: datetime) -> Optional[int]:
    if not isinstance(started_at, str):
        return None
    started = parse_datetime(started_at)
    if started is None or (started.tzinfo is None) != (now.tzinfo is None):
        return None
    return max(0, round((now - started).total_seconds() / 60))
