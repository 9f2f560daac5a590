"""Domain events primitives for the modular monolith.

Events are immutable dataclasses.  Aggregates collect them in memory via
``DomainEventMixin``; the repository serialises them into outbox rows with
``to_payload()`` and the outbox relay rebuilds them with ``from_payload()``.
Every concrete event class registers itself by name so the relay can find
it from ``OutboxEvent.event_type``.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, fields
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, ClassVar, Dict, Optional, Type
from uuid import UUID, uuid4

_REGISTRY: Dict[str, Type["DomainEvent"]] = {}


@dataclass(frozen=True)
class DomainEvent:
    """Base domain event (immutable)."""

    aggregate_id: UUID
    event_id: UUID = field(default_factory=uuid4)
    occurred_on: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    event_name: str = field(init=False)

    topic: ClassVar[str] = "domain"

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        _REGISTRY[cls.__name__] = cls

    def __post_init__(self) -> None:
        object.__setattr__(self, "event_name", self.__class__.__name__)

    # ------------------------------------------------------------------
    # Serialisation
    # ------------------------------------------------------------------

    def to_payload(self) -> Dict[str, Any]:
        """Return a JSON-safe dict of the event fields."""
        return _normalize_for_json(asdict(self))

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "DomainEvent":
        kwargs: Dict[str, Any] = {}
        for f in fields(cls):
            if not f.init or f.name not in payload:
                continue
            kwargs[f.name] = payload[f.name]
        kwargs["aggregate_id"] = UUID(str(kwargs["aggregate_id"]))
        if "event_id" in kwargs:
            kwargs["event_id"] = UUID(str(kwargs["event_id"]))
        if isinstance(kwargs.get("occurred_on"), str):
            kwargs["occurred_on"] = datetime.fromisoformat(kwargs["occurred_on"])
        return cls(**kwargs)


def event_class_for(event_name: str) -> Optional[Type[DomainEvent]]:
    """Look up a registered event class by its ``event_name``."""
    return _REGISTRY.get(event_name)


def _normalize_for_json(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, (UUID, Decimal)):
        return str(value)
    if isinstance(value, (list, tuple)):
        return [_normalize_for_json(item) for item in value]
    if isinstance(value, dict):
        return {key: _normalize_for_json(val) for key, val in value.items()}
    return value


class DomainEventMixin:
    """Mixin for aggregate roots that collect domain events in memory."""

    _domain_events: list[DomainEvent]

    def add_domain_event(self, event: DomainEvent) -> None:
        if not hasattr(self, "_domain_events"):
            self._domain_events = []
        self._domain_events.append(event)

    def clear_domain_events(self) -> None:
        if hasattr(self, "_domain_events"):
            self._domain_events.clear()

    def pull_domain_events(self) -> list[DomainEvent]:
        """Return the collected events and forget them."""
        events = self.domain_events
        self.clear_domain_events()
        return events

    @property
    def domain_events(self) -> list[DomainEvent]:
        if not hasattr(self, "_domain_events"):
            self._domain_events = []
        return list(self._domain_events)
