"""
Invoice service: drafts, saving, pickup and repricing.

Drafts live in the UI and are never persisted. Saving a draft materializes
its work order and writes both in one transaction, together with any deposit
taken at the counter. After that the invoice's payment status is derived
from its ledger (see orders.lifecycle).
"""

import logging

from orders.audit import AuditLogger, AuditAction, compute_changes
from orders.config import ShopConfig
from orders.errors import (
    AlreadyArchived, AlreadyPickedUp, InvalidAmount, InvalidTransition, MissingField,
)
from orders.event_bus import EventBus
from orders.events import InvoiceEdited, InvoicePaid, OrderPickedUp, OrderSaved, PaymentRecorded
from orders.identifiers import generate_id
from orders.lifecycle import check_invariants, line_item_total, settle_status
from orders.models import (
    Invoice, InvoiceStatus, InvoiceType, OrderCreate, OrderEdit, OrderPair,
    PaymentCreate, WorkOrder, WorkOrderStatus,
)
from orders.services.ledger_service import PaymentLedger, validate_payments
from orders.services.work_order_service import apply_priced_edit, link, load_pair, mirror_invoice
from orders.store import OrderLocks, OrderStore, atomic
from utils.timezone import now_utc

logger = logging.getLogger(__name__)


class InvoiceService:
    """Service for invoice operations."""

    def __init__(
        self,
        store: OrderStore,
        audit: AuditLogger,
        event_bus: EventBus,
        ledger: PaymentLedger,
        locks: OrderLocks,
        config: ShopConfig | None = None,
    ):
        self.store = store
        self.audit = audit
        self.event_bus = event_bus
        self.ledger = ledger
        self.locks = locks
        self.config = config or ShopConfig()

    def start_draft(self, data: OrderCreate) -> Invoice:
        """
        Open a new draft invoice.

        Assigns the invoice ID and the ID its work order will get on save.
        Nothing is written to the store.

        Args:
            data: Order data collected so far

        Returns:
            Invoice in DRAFT status
        """
        return Invoice(
            invoice_id=generate_id(self.store, self.config.invoice_prefix),
            work_order_id=generate_id(self.store, self.config.work_order_prefix),
            patient_id=data.patient_id,
            patient_name=data.patient_name,
            invoice_type=data.invoice_type,
            status=InvoiceStatus.DRAFT,
            components=data.components.model_copy(deep=True),
            discount=data.discount,
            details=dict(data.details),
            created_at=now_utc(),
        )

    def _check_draft(self, draft: Invoice) -> None:
        if draft.status != InvoiceStatus.DRAFT:
            raise InvalidTransition(
                f"Invoice {draft.invoice_id} is {draft.status.value}; only drafts can be saved"
            )

        if not draft.invoice_id or not draft.invoice_id.strip():
            raise MissingField("invoice_id")

        if draft.payments:
            raise InvalidTransition("Drafts cannot carry payments; pass them as deposit_payments")

        if not draft.components.has_priced_item():
            raise MissingField("components", "Order needs at least one priced item")

        total = line_item_total(draft.components)
        if draft.discount > total:
            raise InvalidAmount(f"Discount {draft.discount} exceeds line item total {total}")

    def save(self, draft: Invoice, deposit_payments: list[PaymentCreate] | None = None) -> OrderPair:
        """
        Save a draft: Draft -> Saved.

        Creates the work order and persists both, plus any deposit, in one
        transaction.

        Args:
            draft: Draft from start_draft()
            deposit_payments: Payments taken when the order was placed

        Returns:
            The saved pair

        Raises:
            InvalidTransition: If the invoice is not a draft or was already saved
            MissingField: If the ID is blank or no component is priced
            InvalidAmount: If the discount exceeds the line item total
            OverpaymentRejected: If the deposit exceeds the total
        """
        self._check_draft(draft)
        if deposit_payments:
            validate_payments(deposit_payments)

        with self.locks.hold(draft.invoice_id):
            with atomic(self.store, "save_order", draft.invoice_id):
                if self.store.load_invoice(draft.invoice_id) is not None:
                    raise InvalidTransition(f"Invoice {draft.invoice_id} is already saved")

                now = now_utc()
                invoice = draft.model_copy(deep=True)
                invoice.status = InvoiceStatus.SAVED
                if not invoice.work_order_id:
                    invoice.work_order_id = generate_id(self.store, self.config.work_order_prefix)

                work_order = WorkOrder(
                    work_order_id=invoice.work_order_id,
                    invoice_id=invoice.invoice_id,
                    patient_id=invoice.patient_id,
                    is_contact_lens=(
                        invoice.invoice_type == InvoiceType.CONTACTS
                        or bool(invoice.components.contact_lens_items)
                    ),
                    status=WorkOrderStatus.PENDING,
                    details=dict(invoice.details),
                    created_at=now,
                    updated_at=now,
                )
                pair = link(invoice, work_order)
                invoice.status = settle_status(invoice)
                mirror_invoice(pair, now)

                # Entries reference the invoice row, so it goes in first
                self.store.save_order(pair)

                self.audit.log_change(
                    entity_type="invoice",
                    entity_id=invoice.invoice_id,
                    action=AuditAction.CREATE,
                    changes={"created": invoice.model_dump(mode="json", exclude={"edit_history"})}
                )
                self.audit.log_change(
                    entity_type="work_order",
                    entity_id=work_order.work_order_id,
                    action=AuditAction.CREATE,
                    changes={"created": work_order.model_dump(mode="json", exclude={"edit_history"})}
                )

                entries = []
                if deposit_payments:
                    entries = self.ledger.apply_payments(pair, deposit_payments, now)
                    self.store.save_order(pair)

                check_invariants(pair.invoice, pair.work_order)

            logger.info(
                f"Saved invoice {invoice.invoice_id} with work order {work_order.work_order_id}: "
                f"total {invoice.total}, deposit {invoice.deposit}"
            )

            self.event_bus.publish(OrderSaved.create(invoice=invoice, work_order=work_order))
            if entries:
                self.event_bus.publish(PaymentRecorded.create(invoice=invoice, entries=entries))
            if invoice.status == InvoiceStatus.PAID:
                self.event_bus.publish(InvoicePaid.create(invoice=invoice))

        return pair

    def get_by_id(self, invoice_id: str) -> Invoice | None:
        """
        Get invoice by ID.

        Returns:
            Invoice if found (archived included), None otherwise.
        """
        return self.store.load_invoice(invoice_id)

    def get_pair(self, invoice_id: str) -> OrderPair:
        """
        Get an invoice with its work order.

        Raises:
            NotFound: If the invoice does not exist
            MissingWorkOrder: If the invoice has no matching work order
        """
        return load_pair(self.store, invoice_id)

    def mark_picked_up(self, invoice_id: str) -> Invoice:
        """
        Record that the customer collected the order.

        Args:
            invoice_id: Invoice ID

        Returns:
            Updated invoice

        Raises:
            NotFound: If invoice not found
            AlreadyArchived: If the order is archived
            AlreadyPickedUp: If pickup was already recorded
            InvalidTransition: If money is owed and the shop requires full payment
        """
        with self.locks.hold(invoice_id):
            with atomic(self.store, "mark_picked_up", invoice_id):
                pair = load_pair(self.store, invoice_id)
                invoice = pair.invoice

                if invoice.is_archived:
                    raise AlreadyArchived(f"Invoice {invoice_id} is archived")
                if invoice.is_picked_up:
                    raise AlreadyPickedUp(f"Invoice {invoice_id} was already picked up")
                if not self.config.allow_pickup_with_balance and invoice.remaining > 0:
                    raise InvalidTransition(
                        f"Invoice {invoice_id} still owes {invoice.remaining} and cannot be picked up"
                    )

                before = invoice.model_dump(mode="json")
                now = now_utc()
                invoice.is_picked_up = True
                invoice.picked_up_at = now
                pair.work_order.updated_at = now

                check_invariants(invoice, pair.work_order)
                self.store.save_order(pair)

                self.audit.log_change(
                    entity_type="invoice",
                    entity_id=invoice_id,
                    action=AuditAction.UPDATE,
                    changes=compute_changes(before, invoice.model_dump(mode="json")),
                )

            if invoice.remaining > 0:
                logger.info(f"Invoice {invoice_id} picked up with {invoice.remaining} outstanding")
            else:
                logger.info(f"Invoice {invoice_id} picked up")

            self.event_bus.publish(OrderPickedUp.create(invoice=invoice))

        return invoice

    def reprice(self, invoice_id: str, edit: OrderEdit) -> Invoice:
        """
        Change prices, discount or details on a saved invoice.

        The ledger is never touched. Remaining is recomputed (floored at 0)
        and the status settles from the ledger: a price increase can move
        PAID back to PARTIALLY_PAID and a decrease the other way.

        Args:
            invoice_id: Invoice ID
            edit: Fields to change; None keeps the current value

        Returns:
            Updated invoice

        Raises:
            NotFound: If invoice not found
            AlreadyArchived: If the order is archived
            MissingField: If no priced item would remain
            InvalidAmount: If the discount exceeds the new line item total
        """
        with self.locks.hold(invoice_id):
            with atomic(self.store, "reprice_invoice", invoice_id):
                pair = load_pair(self.store, invoice_id)
                was_paid = pair.invoice.status == InvoiceStatus.PAID

                changes = apply_priced_edit(pair, edit, now_utc(), self.config)
                if not changes:
                    return pair.invoice

                check_invariants(pair.invoice, pair.work_order)
                self.store.save_order(pair)

                self.audit.log_change(
                    entity_type="invoice",
                    entity_id=invoice_id,
                    action=AuditAction.UPDATE,
                    changes=changes,
                )

            invoice = pair.invoice
            logger.info(
                f"Invoice {invoice_id} repriced: total {invoice.total}, "
                f"remaining {invoice.remaining}, status {invoice.status.value}"
            )

            self.event_bus.publish(InvoiceEdited.create(invoice=invoice, work_order=pair.work_order))
            if invoice.status == InvoiceStatus.PAID and not was_paid:
                self.event_bus.publish(InvoicePaid.create(invoice=invoice))

        return invoice

    def list_for_patient(self, patient_id: str, include_archived: bool = False) -> list[Invoice]:
        """Patient's invoices, newest first."""
        return [
            inv for inv in self.store.list_by_patient(patient_id)
            if include_archived or not inv.is_archived
        ]

    def list_unpaid(self) -> list[Invoice]:
        """Saved invoices with money still owed, archived excluded."""
        return [
            inv for inv in self.store.list_invoices()
            if not inv.is_archived and inv.status in (InvoiceStatus.SAVED, InvoiceStatus.PARTIALLY_PAID)
        ]

    def list_active(self) -> list[Invoice]:
        """All invoices that are not archived."""
        return [inv for inv in self.store.list_invoices() if not inv.is_archived]

    def list_archived(self) -> list[Invoice]:
        return self.store.list_archived()
