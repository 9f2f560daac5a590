"""Order domain exceptions.

Raised by the Service Layer and the fulfillment state machine when a
command is rejected.  The API layer (Views) catches these and translates
them into ``{code, message, context}`` responses using ``status_code``.

Every rejection is raised before the order document is touched, so a
caller may safely re-issue the same command.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class FulfillmentError(Exception):
    """Base class for rejected order commands."""

    code = "fulfillment_error"
    status_code = 400

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def as_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"code": self.code, "message": self.message}
        if self.context:
            payload["context"] = self.context
        return payload


# ---------------------------------------------------------------------------
# Malformed commands
# ---------------------------------------------------------------------------


class MissingActor(FulfillmentError):
    """``staffId`` was not supplied."""

    code = "missing_actor"


class AmbiguousOrMissingTarget(FulfillmentError):
    """Neither or both of ``basketId`` / ``handlingType`` were supplied."""

    code = "ambiguous_or_missing_target"


class InvalidAction(FulfillmentError):
    """``action`` is not one of start / complete / skip."""

    code = "invalid_action"


# ---------------------------------------------------------------------------
# Ordering / precondition violations
# ---------------------------------------------------------------------------


class DeliveryRequiresAddress(FulfillmentError):
    code = "delivery_requires_address"


class PickupAfterServicesStarted(FulfillmentError):
    code = "pickup_after_services_started"


class BasketsIncomplete(FulfillmentError):
    code = "baskets_incomplete"


class PickupNotDone(FulfillmentError):
    code = "pickup_not_done"


class InvalidOrderStatus(FulfillmentError):
    """The order is in a status that does not accept the command."""

    code = "invalid_order_status"
    status_code = 409


# ---------------------------------------------------------------------------
# State mismatch
# ---------------------------------------------------------------------------


class OrderNotFound(FulfillmentError):
    """The requested order does not exist or has been soft-deleted."""

    code = "order_not_found"
    status_code = 404


class BasketNotFound(FulfillmentError):
    code = "basket_not_found"
    status_code = 404


class UnknownServiceType(FulfillmentError):
    """A service name does not contain any catalog keyword."""

    code = "unknown_service_type"


class NoPendingServices(FulfillmentError):
    code = "no_pending_services"


class NoInProgressService(FulfillmentError):
    code = "no_in_progress_service"


# ---------------------------------------------------------------------------
# Store failures
# ---------------------------------------------------------------------------


class ConcurrentUpdate(FulfillmentError):
    """The order changed between read and write (version mismatch)."""

    code = "concurrent_update"
    status_code = 409


class StoreError(FulfillmentError):
    """The order store failed while loading or persisting."""

    code = "store_error"
    status_code = 500
