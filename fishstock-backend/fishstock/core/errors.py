"""Domain error taxonomy.

Every error carries a machine-readable ``code`` and the HTTP status it maps to.
Validation and feasibility errors are actionable for the caller; state and
consistency errors only ever expose a generic message, the detail goes to the
server log.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Any

GENERIC_FAILURE_MESSAGE = "Request could not be completed"


@dataclass(frozen=True)
class RuleViolation:
    rule: str
    field: str
    message: str


class DomainError(ValueError):
    code = "bad_request"
    status_code = 400
    actionable = True

    def __init__(self, message: str, *, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    @property
    def public_message(self) -> str:
        return self.message if self.actionable else GENERIC_FAILURE_MESSAGE

    def public_details(self) -> list[dict[str, Any]] | None:
        if not self.actionable or not self.details:
            return None
        return [
            {"field": key, "message": str(value), "type": self.code}
            for key, value in self.details.items()
        ]


class RequestValidationFailed(DomainError):
    code = "bad_request"


class MovementValidationError(DomainError):
    code = "invalid_movement"

    def __init__(self, violation: RuleViolation):
        super().__init__(
            violation.message,
            details={violation.field: f"{violation.rule}: {violation.message}"},
        )
        self.violation = violation


class NotFoundError(DomainError):
    code = "not_found"
    status_code = 404


class PermissionDenied(DomainError):
    code = "forbidden"
    status_code = 403


class InsufficientBoxes(DomainError):
    code = "insufficient_boxes"

    def __init__(self, *, requested: int, available: int):
        super().__init__(
            f"Only {available} boxes in stock, {requested} requested",
            details={"requested_boxes": requested, "available_boxes": available},
        )
        self.requested = requested
        self.available = available


class InsufficientInventory(DomainError):
    code = "insufficient_inventory"

    def __init__(self, *, requested_kg: Decimal, available_kg: Decimal, boxes_needed: int, boxes_available: int):
        super().__init__(
            f"Not enough stock for {requested_kg} kg: {boxes_needed} boxes must be opened "
            f"but only {boxes_available} remain after the boxed part of the sale",
            details={
                "requested_kg": requested_kg,
                "available_kg": available_kg,
                "boxes_to_unbox": boxes_needed,
                "boxes_available_for_unboxing": boxes_available,
            },
        )
        self.boxes_needed = boxes_needed
        self.boxes_available = boxes_available


class NotPending(DomainError):
    code = "not_pending"
    status_code = 409
    actionable = False

    def __init__(self, movement_id: str, status: str | None):
        super().__init__(
            f"Movement {movement_id} is {status}, not pending",
            details={"movement_id": movement_id, "status": status},
        )
        self.movement_id = movement_id
        self.status = status


class ConsistencyFault(DomainError):
    """Data or logic bug. Always logged, never shown to the caller."""

    actionable = False


class NegativeStockFault(ConsistencyFault):
    code = "negative_stock_fault"
    status_code = 409


class ParsePayloadError(ConsistencyFault):
    code = "invalid_payload"
    status_code = 409


class AllocationConsistencyFault(ConsistencyFault):
    code = "allocation_fault"
    status_code = 500
