"""Invoice domain models.

All amounts are 3-digit fixed-point Decimals (see orders.money).
Totals, paid-to-date and remaining are computed fields derived from the
priced components and the payment ledger; they are never stored on their own.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, computed_field

from orders import lifecycle
from orders.models.components import PricedComponents
from orders.models.ledger import PaymentEntry
from orders.money import Amount, NonNegativeAmount, ZERO, is_zero


class InvoiceType(str, Enum):
    """What the order is for."""

    GLASSES = "glasses"
    CONTACTS = "contacts"
    EXAM = "exam"
    REPAIR = "repair"


class InvoiceStatus(str, Enum):
    """Invoice payment lifecycle status."""

    DRAFT = "draft"
    SAVED = "saved"
    PARTIALLY_PAID = "partially_paid"
    PAID = "paid"


class OrderStage(str, Enum):
    """Most advanced stage of an order, for display and filtering."""

    DRAFT = "draft"
    SAVED = "saved"
    PARTIALLY_PAID = "partially_paid"
    PAID = "paid"
    PICKED_UP = "picked_up"
    REFUNDED = "refunded"
    EXCHANGED = "exchanged"
    ARCHIVED = "archived"


class OrderCreate(BaseModel):
    """Draft order data collected by the UI."""

    patient_id: str | None = None
    patient_name: str | None = Field(None, max_length=200)
    invoice_type: InvoiceType = InvoiceType.GLASSES
    components: PricedComponents = Field(default_factory=PricedComponents)
    discount: NonNegativeAmount = ZERO
    details: dict[str, Any] = Field(default_factory=dict)


class OrderEdit(BaseModel):
    """Repricing edit. Fields left as None keep their current value."""

    components: PricedComponents | None = None
    discount: NonNegativeAmount | None = None
    details: dict[str, Any] | None = None
    notes: str | None = Field(None, max_length=500)


class EditRecord(BaseModel):
    """One entry in an entity's append-only edit history."""

    edited_at: datetime
    staff_id: str
    notes: str
    changes: dict[str, Any] = Field(default_factory=dict)


class Invoice(BaseModel):
    """Full invoice entity as stored."""

    invoice_id: str
    work_order_id: str | None = None
    patient_id: str | None = None
    patient_name: str | None = None
    invoice_type: InvoiceType = InvoiceType.GLASSES
    status: InvoiceStatus = InvoiceStatus.DRAFT
    components: PricedComponents = Field(default_factory=PricedComponents)
    discount: NonNegativeAmount = ZERO
    payments: list[PaymentEntry] = Field(default_factory=list)
    details: dict[str, Any] = Field(default_factory=dict)

    is_picked_up: bool = False
    picked_up_at: datetime | None = None

    is_refunded: bool = False
    refund_id: str | None = None
    refund_amount: Amount | None = None
    refund_date: datetime | None = None
    refund_method: str | None = None
    refund_reason: str | None = None

    is_exchanged: bool = False
    exchanged_for: str | None = None
    exchange_reason: str | None = None
    exchange_date: datetime | None = None

    is_archived: bool = False
    archived_at: datetime | None = None
    archive_reason: str | None = None

    created_at: datetime
    last_edited_at: datetime | None = None
    edit_history: list[EditRecord] = Field(default_factory=list)

    model_config = {"from_attributes": True}

    @computed_field
    @property
    def line_item_total(self) -> Decimal:
        return lifecycle.line_item_total(self.components)

    @computed_field
    @property
    def total(self) -> Decimal:
        return lifecycle.invoice_total(self.components, self.discount)

    @computed_field
    @property
    def paid_to_date(self) -> Decimal:
        return lifecycle.paid_to_date(self.payments)

    @computed_field
    @property
    def deposit(self) -> Decimal:
        """Same as paid_to_date. Kept under the name receipts print."""
        return self.paid_to_date

    @computed_field
    @property
    def remaining(self) -> Decimal:
        return lifecycle.remaining(self.total, self.paid_to_date)

    @computed_field
    @property
    def is_paid(self) -> bool:
        return self.status != InvoiceStatus.DRAFT and is_zero(self.remaining)

    @property
    def stage(self) -> OrderStage:
        """Archived > exchanged > refunded > picked up > payment status."""
        if self.is_archived:
            return OrderStage.ARCHIVED
        if self.is_exchanged:
            return OrderStage.EXCHANGED
        if self.is_refunded:
            return OrderStage.REFUNDED
        if self.is_picked_up:
            return OrderStage.PICKED_UP
        return OrderStage(self.status.value)
