"""Order domain constants.

Defines the order, stage, basket and service status vocabularies used by
the fulfillment state machine, plus the command actions it accepts.
"""

from django.db import models


class OrderStatus(models.TextChoices):
    PENDING = "pending", "Pending"
    FOR_PICK_UP = "for_pick-up", "For pick-up"
    PROCESSING = "processing", "Processing"
    FOR_DELIVERY = "for_delivery", "For delivery"
    COMPLETED = "completed", "Completed"
    CANCELLED = "cancelled", "Cancelled"


class OrderSource(models.TextChoices):
    STORE = "store", "Store (POS)"
    APP = "app", "Mobile app"


class StageStatus(models.TextChoices):
    """Status of a handling stage or of a single basket service."""

    PENDING = "pending", "Pending"
    IN_PROGRESS = "in_progress", "In progress"
    COMPLETED = "completed", "Completed"
    SKIPPED = "skipped", "Skipped"


class BasketStatus(models.TextChoices):
    PENDING = "pending", "Pending"
    PROCESSING = "processing", "Processing"
    COMPLETED = "completed", "Completed"


class HandlingStage(models.TextChoices):
    PICKUP = "pickup", "Pickup"
    DELIVERY = "delivery", "Delivery"


class FulfillmentAction(models.TextChoices):
    START = "start", "Start"
    COMPLETE = "complete", "Complete"
    SKIP = "skip", "Skip"


# Statuses that count as "done" for a stage or service.
FINISHED_STAGE_STATUSES: frozenset[str] = frozenset(
    {StageStatus.COMPLETED, StageStatus.SKIPPED}
)

TERMINAL_STATES: frozenset[str] = frozenset(
    {OrderStatus.COMPLETED, OrderStatus.CANCELLED}
)

# Order statuses in which pickup commands still drive the order status.
PICKUP_PHASE_STATUSES: frozenset[str] = frozenset(
    {OrderStatus.PENDING, OrderStatus.FOR_PICK_UP}
)

# Past-tense suffix used in audit actions (``service_started`` ...).
ACTION_PAST_TENSE: dict[str, str] = {
    "start": "started",
    "complete": "completed",
    "skip": "skipped",
}

ORDER_NUMBER_PREFIX = "LND"
ORDER_NUMBER_MAX_RETRIES = 5
