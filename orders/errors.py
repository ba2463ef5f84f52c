"""Typed exceptions for order lifecycle failures.

Every failure is local to one operation on one order. Each exception class
carries a `kind` so callers (the UI) can switch on it without matching
message text.
"""

from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    """Discriminator for order failures."""

    INVALID_AMOUNT = "invalid_amount"
    INVALID_FIELD = "invalid_field"
    OVERPAYMENT_REJECTED = "overpayment_rejected"
    EXCEEDS_PAID_AMOUNT = "exceeds_paid_amount"
    MISSING_FIELD = "missing_field"
    NOT_FOUND = "not_found"
    MISSING_WORK_ORDER = "missing_work_order"
    ALREADY_PICKED_UP = "already_picked_up"
    ALREADY_ARCHIVED = "already_archived"
    ALREADY_EXCHANGED = "already_exchanged"
    INVALID_TRANSITION = "invalid_transition"
    PERSISTENCE_FAILURE = "persistence_failure"
    INVARIANT_VIOLATION = "invariant_violation"


class OrderError(Exception):
    """Base class for all order lifecycle errors."""

    kind: ErrorKind

    def to_dict(self) -> dict[str, Any]:
        """Shape handed to the UI for display."""
        return {"error": self.kind.value, "message": str(self)}


class InvalidAmount(OrderError):
    """Amount is zero, negative, non-numeric, or out of range for the field."""

    kind = ErrorKind.INVALID_AMOUNT


class OverpaymentRejected(OrderError):
    """Payment would exceed the remaining balance. Rejected, never clamped."""

    kind = ErrorKind.OVERPAYMENT_REJECTED

    def __init__(self, amount, remaining):
        self.amount = amount
        self.remaining = remaining
        super().__init__(f"Payment {amount} exceeds remaining balance {remaining}")


class ExceedsPaidAmount(OrderError):
    """Refund is larger than what was actually collected."""

    kind = ErrorKind.EXCEEDS_PAID_AMOUNT

    def __init__(self, amount, refundable):
        self.amount = amount
        self.refundable = refundable
        super().__init__(f"Refund {amount} exceeds refundable paid amount {refundable}")


class MissingField(OrderError):
    """A required field is empty."""

    kind = ErrorKind.MISSING_FIELD

    def __init__(self, field: str, message: str | None = None):
        self.field = field
        super().__init__(message or f"Field '{field}' is required")


class InvalidField(OrderError):
    """A field has the wrong type or breaks its bounds (e.g. too long)."""

    kind = ErrorKind.INVALID_FIELD

    def __init__(self, field: str, message: str | None = None):
        self.field = field
        super().__init__(message or f"Field '{field}' is invalid")


class NotFound(OrderError):
    """Invoice, work order or refund does not exist."""

    kind = ErrorKind.NOT_FOUND

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(f"{entity_type.replace('_', ' ').capitalize()} {entity_id} not found")


class MissingWorkOrder(OrderError):
    """Invoice exists without its paired work order, or the pair is mismatched."""

    kind = ErrorKind.MISSING_WORK_ORDER


class AlreadyPickedUp(OrderError):
    """Pickup was already recorded."""

    kind = ErrorKind.ALREADY_PICKED_UP


class AlreadyArchived(OrderError):
    """Order is archived and can no longer be changed."""

    kind = ErrorKind.ALREADY_ARCHIVED


class AlreadyExchanged(OrderError):
    """Order was exchanged; no further refund or exchange on it."""

    kind = ErrorKind.ALREADY_EXCHANGED


class InvalidTransition(OrderError):
    """Operation is not allowed from the order's current state."""

    kind = ErrorKind.INVALID_TRANSITION


class PersistenceFailure(OrderError):
    """
    The persistence collaborator failed.

    The original exception is chained as __cause__. Store state is rolled
    back to its pre-operation snapshot.
    """

    kind = ErrorKind.PERSISTENCE_FAILURE


class InvariantViolation(OrderError):
    """An order snapshot broke a consistency invariant. Indicates a bug."""

    kind = ErrorKind.INVARIANT_VIOLATION
