"""Refund domain model.

A refund is an immutable compensating fact. It never alters ledger entries;
a corrected refund is a new record.
"""

from datetime import datetime

from pydantic import BaseModel

from orders.money import Amount


class Refund(BaseModel):
    """Refund record as stored."""

    refund_id: str
    invoice_id: str
    amount: Amount
    method: str
    reason: str
    date: datetime
    staff_notes: str | None = None
    staff_id: str | None = None

    model_config = {"from_attributes": True, "frozen": True}
