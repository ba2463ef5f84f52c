"""
Domain events for the order lifecycle.

Immutable event objects published after an operation has committed.
A service publishes what happened; handlers (printing, reporting sync)
react without the publisher knowing who's listening.

Event Categories:
- OrderEvent: order pair lifecycle (save, edit, pickup, exchange, archive)
- PaymentEvent: ledger (payment recorded, invoice paid)
- RefundEvent: refunds

Events carry detached deep copies of the committed models, so handlers
neither re-fetch state nor see later mutations by the caller.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any
from uuid import uuid4

from pydantic import BaseModel

from utils.timezone import now_utc


def _snapshot(value: Any) -> Any:
    """Detached deep copy of a model. Other values pass through."""
    if isinstance(value, BaseModel):
        return value.model_copy(deep=True)
    return value


@dataclass(frozen=True, kw_only=True)
class LifecycleEvent:
    """Base class for all order lifecycle events."""
    event_id: str = field(default_factory=lambda: str(uuid4()))
    occurred_at: datetime = field(default_factory=now_utc)


# =============================================================================
# ORDER EVENTS
# =============================================================================


@dataclass(frozen=True)
class OrderEvent(LifecycleEvent):
    """Events related to the invoice / work order pair."""
    pass


@dataclass(frozen=True)
class OrderSaved(OrderEvent):
    """Draft saved; invoice and work order now exist."""
    invoice: Any = None  # Invoice, using Any to avoid circular import
    work_order: Any = None

    @classmethod
    def create(cls, invoice: Any, work_order: Any) -> "OrderSaved":
        return cls(invoice=_snapshot(invoice), work_order=_snapshot(work_order))


@dataclass(frozen=True)
class InvoiceEdited(OrderEvent):
    """Priced fields changed (from either side of the pair)."""
    invoice: Any = None
    work_order: Any = None

    @classmethod
    def create(cls, invoice: Any, work_order: Any) -> "InvoiceEdited":
        return cls(invoice=_snapshot(invoice), work_order=_snapshot(work_order))


@dataclass(frozen=True)
class OrderPickedUp(OrderEvent):
    """Customer collected the order."""
    invoice: Any = None

    @classmethod
    def create(cls, invoice: Any) -> "OrderPickedUp":
        return cls(invoice=_snapshot(invoice))


@dataclass(frozen=True)
class OrderArchived(OrderEvent):
    """Order soft-deleted."""
    work_order: Any = None
    invoice: Any = None
    refund: Any = None

    @classmethod
    def create(cls, work_order: Any, invoice: Any, refund: Any = None) -> "OrderArchived":
        return cls(work_order=_snapshot(work_order), invoice=_snapshot(invoice), refund=_snapshot(refund))


@dataclass(frozen=True)
class OrderExchanged(OrderEvent):
    """Order exchanged; replacement_invoice_id is set once the new invoice is linked."""
    invoice: Any = None
    work_order: Any = None
    replacement_invoice_id: str | None = None

    @classmethod
    def create(cls, invoice: Any, work_order: Any) -> "OrderExchanged":
        return cls(
            invoice=_snapshot(invoice),
            work_order=_snapshot(work_order),
            replacement_invoice_id=getattr(invoice, "exchanged_for", None),
        )


# =============================================================================
# PAYMENT EVENTS
# =============================================================================


@dataclass(frozen=True)
class PaymentEvent(LifecycleEvent):
    """Events related to the payment ledger."""
    pass


@dataclass(frozen=True)
class PaymentRecorded(PaymentEvent):
    """One payment event (one or more ledger entries) committed."""
    invoice: Any = None
    entries: tuple = ()

    @classmethod
    def create(cls, invoice: Any, entries: list) -> "PaymentRecorded":
        return cls(invoice=_snapshot(invoice), entries=tuple(_snapshot(e) for e in entries))


@dataclass(frozen=True)
class InvoicePaid(PaymentEvent):
    """Remaining balance reached zero."""
    invoice: Any = None

    @classmethod
    def create(cls, invoice: Any) -> "InvoicePaid":
        return cls(invoice=_snapshot(invoice))


# =============================================================================
# REFUND EVENTS
# =============================================================================


@dataclass(frozen=True)
class RefundEvent(LifecycleEvent):
    """Events related to refunds."""
    pass


@dataclass(frozen=True)
class RefundProcessed(RefundEvent):
    """A refund record was created."""
    refund: Any = None
    invoice: Any = None

    @classmethod
    def create(cls, refund: Any, invoice: Any) -> "RefundProcessed":
        return cls(refund=_snapshot(refund), invoice=_snapshot(invoice))
