"""
Work order service and invoice / work-order linkage.

Every invoice has exactly one work order and vice versa. The functions at
module level are the linkage rules every other service goes through:
loading a pair, checking the cross-references, and mirroring priced
fields from one side to the other inside the same transaction.
"""

import logging
from datetime import datetime

from orders.audit import AuditLogger, AuditAction, compute_changes
from orders.config import ShopConfig
from orders.errors import (
    AlreadyArchived, InvalidAmount, InvalidTransition, MissingField, MissingWorkOrder, NotFound,
)
from orders.event_bus import EventBus
from orders.events import InvoiceEdited
from orders.lifecycle import check_invariants, line_item_total, settle_status
from orders.models import (
    EditRecord, Invoice, OrderEdit, OrderPair, WorkOrder, WorkOrderStatus,
)
from orders.store import OrderLocks, OrderStore, atomic
from utils.staff_context import current_staff_id_or_system
from utils.timezone import now_utc

logger = logging.getLogger(__name__)

# Allowed fulfilment moves. COMPLETE is final.
_STATUS_TRANSITIONS = {
    WorkOrderStatus.PENDING: {WorkOrderStatus.IN_PROGRESS, WorkOrderStatus.COMPLETE},
    WorkOrderStatus.IN_PROGRESS: {WorkOrderStatus.COMPLETE},
    WorkOrderStatus.COMPLETE: set(),
}


def link(invoice: Invoice, work_order: WorkOrder | None) -> OrderPair:
    """
    Pair an invoice with its work order.

    Raises:
        MissingWorkOrder: If the work order is absent or the cross-references disagree
    """
    if work_order is None:
        raise MissingWorkOrder(f"Invoice {invoice.invoice_id} has no work order")

    if work_order.invoice_id != invoice.invoice_id or invoice.work_order_id != work_order.work_order_id:
        raise MissingWorkOrder(
            f"Invoice {invoice.invoice_id} and work order {work_order.work_order_id} "
            f"are not linked to each other"
        )

    return OrderPair(invoice=invoice, work_order=work_order)


def load_pair(store: OrderStore, invoice_id: str) -> OrderPair:
    """
    Load an invoice together with its work order.

    Raises:
        NotFound: If the invoice does not exist
        MissingWorkOrder: If its work order is missing
    """
    invoice = store.load_invoice(invoice_id)
    if invoice is None:
        raise NotFound("invoice", invoice_id)

    work_order = None
    if invoice.work_order_id:
        work_order = store.load_work_order(invoice.work_order_id)
    return link(invoice, work_order)


def mirror_invoice(pair: OrderPair, now: datetime) -> None:
    """Copy the invoice's priced fields and paid flag onto the work order."""
    invoice, work_order = pair.invoice, pair.work_order
    work_order.components = invoice.components.model_copy(deep=True)
    work_order.discount = invoice.discount
    work_order.is_paid = invoice.is_paid
    work_order.updated_at = now


def apply_priced_edit(pair: OrderPair, edit: OrderEdit, now: datetime, config: ShopConfig) -> dict:
    """
    Apply a repricing edit to both halves of a pair.

    Payments are never touched; only totals, remaining and the derived
    status move. Returns the invoice changes (empty when nothing changed).

    Raises:
        AlreadyArchived: If the order is archived
        MissingField: If the edit leaves no priced item
        InvalidAmount: If the discount would exceed the line item total
    """
    invoice = pair.invoice
    if invoice.is_archived or pair.work_order.is_archived:
        raise AlreadyArchived(f"Invoice {invoice.invoice_id} is archived and cannot be edited")

    components = edit.components if edit.components is not None else invoice.components
    discount = edit.discount if edit.discount is not None else invoice.discount

    if not components.has_priced_item():
        raise MissingField("components", "Order needs at least one priced item")

    new_line_total = line_item_total(components)
    if discount > new_line_total:
        raise InvalidAmount(f"Discount {discount} exceeds line item total {new_line_total}")

    before = invoice.model_dump(mode="json")

    invoice.components = components.model_copy(deep=True)
    invoice.discount = discount
    if edit.details is not None:
        invoice.details = dict(edit.details)
        pair.work_order.details = dict(edit.details)
    invoice.status = settle_status(invoice)

    changes = compute_changes(before, invoice.model_dump(mode="json"))
    if not changes:
        return {}

    record = EditRecord(
        edited_at=now,
        staff_id=current_staff_id_or_system(),
        notes=edit.notes or config.default_edit_note,
        changes=changes,
    )
    invoice.edit_history.append(record)
    invoice.last_edited_at = now
    pair.work_order.edit_history.append(record.model_copy(deep=True))
    pair.work_order.last_edited_at = now

    mirror_invoice(pair, now)
    return changes


class WorkOrderService:
    """Service for work order operations."""

    def __init__(
        self,
        store: OrderStore,
        audit: AuditLogger,
        event_bus: EventBus,
        locks: OrderLocks,
        config: ShopConfig | None = None,
    ):
        self.store = store
        self.audit = audit
        self.event_bus = event_bus
        self.locks = locks
        self.config = config or ShopConfig()

    def get_by_id(self, work_order_id: str) -> WorkOrder | None:
        """
        Get work order by ID.

        Returns:
            Work order if found (archived included), None otherwise.
        """
        return self.store.load_work_order(work_order_id)

    def _require(self, work_order_id: str) -> WorkOrder:
        work_order = self.store.load_work_order(work_order_id)
        if work_order is None:
            raise NotFound("work_order", work_order_id)
        return work_order

    def lock_key(self, work_order_id: str) -> str:
        """Lock key for a work order: its invoice id when linked."""
        work_order = self._require(work_order_id)
        return work_order.invoice_id or work_order.work_order_id

    def edit(self, work_order_id: str, edit: OrderEdit) -> OrderPair:
        """
        Edit priced fields from the work order side.

        The invoice is repriced in the same transaction so the two never
        disagree on totals.

        Args:
            work_order_id: Work order ID
            edit: New prices/discount/details

        Returns:
            Updated pair

        Raises:
            NotFound: If the work order does not exist
            MissingWorkOrder: If it is not linked to an invoice
            AlreadyArchived: If the order is archived
        """
        key = self.lock_key(work_order_id)
        with self.locks.hold(key), atomic(self.store, "edit_work_order", key):
            work_order = self._require(work_order_id)
            if work_order.invoice_id is None:
                raise MissingWorkOrder(f"Work order {work_order_id} has no invoice to reprice")

            pair = load_pair(self.store, work_order.invoice_id)
            now = now_utc()
            changes = apply_priced_edit(pair, edit, now, self.config)
            if not changes:
                return pair

            check_invariants(pair.invoice, pair.work_order)
            self.store.save_order(pair)

            self.audit.log_change(
                entity_type="invoice",
                entity_id=pair.invoice.invoice_id,
                action=AuditAction.UPDATE,
                changes=changes,
            )

        logger.info(
            f"Work order {work_order_id} repriced: total {pair.invoice.total}, "
            f"remaining {pair.invoice.remaining}"
        )
        self.event_bus.publish(InvoiceEdited.create(invoice=pair.invoice, work_order=pair.work_order))
        return pair

    def update_status(self, work_order_id: str, status: WorkOrderStatus) -> WorkOrder:
        """
        Move a work order through fulfilment.

        Args:
            work_order_id: Work order ID
            status: Target status

        Returns:
            Updated work order (unchanged if already in that status)

        Raises:
            NotFound: If the work order does not exist
            AlreadyArchived: If it is archived
            InvalidTransition: If the move is not allowed (e.g. out of COMPLETE)
        """
        key = self.lock_key(work_order_id)
        with self.locks.hold(key), atomic(self.store, "update_work_order_status", key):
            current = self._require(work_order_id)
            if current.is_archived:
                raise AlreadyArchived(f"Work order {work_order_id} is archived")

            if current.status == status:
                return current

            if status not in _STATUS_TRANSITIONS[current.status]:
                raise InvalidTransition(
                    f"Work order {work_order_id} cannot move from {current.status.value} to {status.value}"
                )

            now = now_utc()
            updated = current.model_copy(deep=True)
            updated.status = status
            updated.updated_at = now
            if status == WorkOrderStatus.COMPLETE:
                updated.completed_at = now

            self.store.save_work_order(updated)

            self.audit.log_change(
                entity_type="work_order",
                entity_id=work_order_id,
                action=AuditAction.UPDATE,
                changes=compute_changes(
                    current.model_dump(mode="json"),
                    updated.model_dump(mode="json"),
                ),
            )

        logger.info(f"Work order {work_order_id} moved to {status.value}")
        return updated

    def list_active(self) -> list[WorkOrder]:
        """Work orders still in production (not complete, not archived)."""
        return [
            wo for wo in self.store.list_work_orders()
            if not wo.is_archived and not wo.is_complete
        ]

    def list_completed(self) -> list[WorkOrder]:
        """Finished work orders that are not archived."""
        return [
            wo for wo in self.store.list_work_orders()
            if not wo.is_archived and wo.is_complete
        ]

    def list_archived(self) -> list[WorkOrder]:
        """Archive view."""
        return [wo for wo in self.store.list_work_orders() if wo.is_archived]
