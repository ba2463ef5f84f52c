"""Work order (fulfilment) domain models.

A work order mirrors the priced components of its invoice and carries its
own production status. Payment state is only mirrored (is_paid), never owned.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, computed_field

from orders import lifecycle
from orders.models.components import PricedComponents
from orders.models.invoice import EditRecord, Invoice
from orders.money import NonNegativeAmount, ZERO


class WorkOrderStatus(str, Enum):
    """Fulfilment status."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETE = "complete"


class WorkOrder(BaseModel):
    """Full work order entity as stored."""

    work_order_id: str
    invoice_id: str | None = None
    patient_id: str | None = None
    is_contact_lens: bool = False
    status: WorkOrderStatus = WorkOrderStatus.PENDING
    completed_at: datetime | None = None
    components: PricedComponents = Field(default_factory=PricedComponents)
    discount: NonNegativeAmount = ZERO
    is_paid: bool = False
    details: dict[str, Any] = Field(default_factory=dict)
    is_exchanged: bool = False

    is_archived: bool = False
    archived_at: datetime | None = None
    archive_reason: str | None = None

    created_at: datetime
    updated_at: datetime
    last_edited_at: datetime | None = None
    edit_history: list[EditRecord] = Field(default_factory=list)

    model_config = {"from_attributes": True}

    @computed_field
    @property
    def total(self) -> Decimal:
        return lifecycle.invoice_total(self.components, self.discount)

    @property
    def is_complete(self) -> bool:
        return self.status == WorkOrderStatus.COMPLETE


class OrderPair(BaseModel):
    """An invoice with its linked work order. The unit every operation commits."""

    invoice: Invoice
    work_order: WorkOrder


class ArchiveResult(BaseModel):
    """Outcome of archiving an order."""

    work_order: WorkOrder
    invoice: Invoice | None = None
    refund_id: str | None = None
