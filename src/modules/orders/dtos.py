"""Order DTOs for the Service Layer.

Framework-agnostic data transfer objects using Pydantic v2.
These are the contracts between the API layer (DRF Serializers)
and the Service layer.  DTOs are immutable (``frozen=True``).

- ``HandlingCommand`` / ``BasketCommand``: the two shapes of a fulfillment
  command, combined into the ``FulfillmentCommand`` tagged union.
- ``CreateServiceDTO`` / ``CreateBasketDTO`` / ``CreateOrderDTO``: input for
  order creation.
- ``CancelOrderDTO``: input for order cancellation.
"""

from __future__ import annotations

from typing import Annotated, Any, List, Literal, Mapping, Optional, Union
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from modules.orders.constants import FulfillmentAction, HandlingStage
from modules.orders.exceptions import (
    AmbiguousOrMissingTarget,
    InvalidAction,
    MissingActor,
)

ActionName = Literal["start", "complete", "skip"]


# ---------------------------------------------------------------------------
# Fulfillment commands
# ---------------------------------------------------------------------------


class HandlingCommand(BaseModel):
    """Transition of the pickup or delivery stage."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["handling"] = "handling"
    stage: Literal["pickup", "delivery"]
    action: ActionName
    actor_id: str


class BasketCommand(BaseModel):
    """Transition of a basket's service progression.

    ``basket_ref`` matches either the basket's ``basket_number`` or its ``id``.
    """

    model_config = ConfigDict(frozen=True)

    kind: Literal["basket"] = "basket"
    basket_ref: Union[int, str]
    action: ActionName
    actor_id: str


FulfillmentCommand = Annotated[
    Union[HandlingCommand, BasketCommand], Field(discriminator="kind")
]


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def parse_fulfillment_command(payload: Mapping[str, Any]) -> FulfillmentCommand:
    """Build a typed command from the request payload.

    Checks run in a fixed order (actor, target, action) so that a command
    with several problems always reports the same one.

    Raises:
        MissingActor: ``staffId`` is absent or blank.
        AmbiguousOrMissingTarget: not exactly one of ``basketId`` /
            ``handlingType``, or an unknown ``handlingType``.
        InvalidAction: ``action`` is not start / complete / skip.
    """
    staff_id = payload.get("staffId")
    if _is_blank(staff_id):
        raise MissingActor("staffId (authenticated user) is required.")

    basket_id = payload.get("basketId")
    handling_type = payload.get("handlingType")
    has_basket = not _is_blank(basket_id)
    has_handling = not _is_blank(handling_type)
    if has_basket == has_handling:
        raise AmbiguousOrMissingTarget(
            "Exactly one of basketId or handlingType is required.",
            context={"basketId": basket_id, "handlingType": handling_type},
        )
    if has_handling and handling_type not in HandlingStage.values:
        raise AmbiguousOrMissingTarget(
            f"handlingType must be one of {HandlingStage.values}.",
            context={"handlingType": handling_type},
        )

    action = payload.get("action")
    if action not in FulfillmentAction.values:
        raise InvalidAction(
            f"action must be one of {FulfillmentAction.values}.",
            context={"action": action},
        )

    if has_handling:
        return HandlingCommand(
            stage=handling_type, action=action, actor_id=str(staff_id)
        )
    return BasketCommand(basket_ref=basket_id, action=action, actor_id=str(staff_id))


# ---------------------------------------------------------------------------
# Order creation
# ---------------------------------------------------------------------------


class CreateServiceDTO(BaseModel):
    """A laundry service inside a basket.

    ``service_type`` is optional: when omitted the Service Layer infers it
    from ``service_name`` and stores the result on the service.
    """

    model_config = ConfigDict(frozen=True)

    service_name: str
    service_type: Optional[str] = None
    service_id: Optional[str] = None
    multiplier: int = 1

    @field_validator("service_name")
    @classmethod
    def name_must_not_be_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("service_name must not be blank.")
        return v

    @field_validator("multiplier")
    @classmethod
    def multiplier_must_be_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("multiplier must be at least 1.")
        return v


class CreateBasketDTO(BaseModel):
    model_config = ConfigDict(frozen=True)

    basket_number: Optional[int] = None
    weight: Optional[float] = None
    basket_notes: Optional[str] = None
    services: List[CreateServiceDTO]


class CreateOrderDTO(BaseModel):
    """Immutable DTO for order creation requests.

    Validates:
    - ``baskets`` must contain at least one basket.
    - Explicit basket numbers must be unique.
    """

    model_config = ConfigDict(frozen=True)

    customer_id: Optional[UUID] = None
    source: Literal["store", "app"] = "store"
    pickup_address: Optional[str] = None
    delivery_address: Optional[str] = None
    baskets: List[CreateBasketDTO]
    notes: Optional[str] = ""
    created_by: Optional[str] = None
    idempotency_key: Optional[str] = None

    @field_validator("baskets")
    @classmethod
    def baskets_must_not_be_empty(
        cls, v: List[CreateBasketDTO]
    ) -> List[CreateBasketDTO]:
        if not v:
            raise ValueError("Order must have at least one basket.")
        return v

    @model_validator(mode="after")
    def no_duplicate_basket_numbers(self):
        numbers = [b.basket_number for b in self.baskets if b.basket_number]
        if len(numbers) != len(set(numbers)):
            raise ValueError("Duplicate basket numbers are not allowed.")
        return self


# ---------------------------------------------------------------------------
# Cancellation
# ---------------------------------------------------------------------------


class CancelOrderDTO(BaseModel):
    model_config = ConfigDict(frozen=True)

    staff_id: str
    reason: Literal["customer_request", "payment_failed", "damaged", "other"] = (
        "other"
    )
    notes: Optional[str] = ""
