"""Payment ledger models.

Ledger entries are append-only. The paid-to-date of an invoice is always the
sum of its entries and is never stored separately.
"""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field

from orders.money import Amount


class PaymentCreate(BaseModel):
    """One payment as entered at the counter."""

    amount: Amount
    method: str = Field("", max_length=50)
    auth_number: str | None = Field(None, max_length=100)


class PaymentEntry(BaseModel):
    """A recorded payment against an invoice."""

    entry_id: UUID
    invoice_id: str
    date: datetime
    amount: Amount
    method: str
    auth_number: str | None = None

    model_config = {"from_attributes": True, "frozen": True}
