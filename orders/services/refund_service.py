"""
Refund processing.

A refund is a separate compensating record. Ledger entries, remaining and
the invoice's payment status are never altered by it: the ledger says what
was collected, refunds say what was given back. Refunds on one invoice are
bounded by what was collected, less earlier refunds.
"""

import logging
from datetime import datetime
from decimal import Decimal

from orders.audit import AuditLogger, AuditAction
from orders.config import ShopConfig
from orders.errors import AlreadyExchanged, ExceedsPaidAmount, InvalidAmount, MissingField, NotFound
from orders.event_bus import EventBus
from orders.events import RefundProcessed
from orders.identifiers import generate_id
from orders.lifecycle import check_invariants
from orders.models import Invoice, Refund
from orders.money import ZERO, add, subtract, to_amount
from orders.services.work_order_service import load_pair
from orders.store import OrderLocks, OrderStore, atomic
from utils.staff_context import current_staff_id_or_system
from utils.timezone import now_utc

logger = logging.getLogger(__name__)


def refundable_amount(invoice: Invoice) -> Decimal:
    """Collected amount not yet given back."""
    return subtract(invoice.paid_to_date, invoice.refund_amount or ZERO)


class RefundService:
    """Service for refunds."""

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

    def apply_refund(
        self,
        invoice: Invoice,
        amount: Decimal,
        method: str,
        reason: str,
        notes: str | None,
        now: datetime,
    ) -> Refund:
        """
        Write a refund for an already validated amount.

        Must run inside an open transaction. Updates the invoice's refund
        fields in place; the caller saves the pair.
        """
        refund = Refund(
            refund_id=generate_id(self.store, self.config.refund_prefix),
            invoice_id=invoice.invoice_id,
            amount=amount,
            method=method.strip(),
            reason=reason.strip(),
            date=now,
            staff_notes=notes,
            staff_id=current_staff_id_or_system(),
        )
        self.store.save_refund(refund)

        old_amount = invoice.refund_amount
        invoice.is_refunded = True
        invoice.refund_id = refund.refund_id
        invoice.refund_amount = add(old_amount or ZERO, amount)
        invoice.refund_date = now
        invoice.refund_method = refund.method
        invoice.refund_reason = refund.reason

        self.audit.log_change(
            entity_type="refund",
            entity_id=refund.refund_id,
            action=AuditAction.CREATE,
            changes={"created": refund.model_dump(mode="json")}
        )
        self.audit.log_change(
            entity_type="invoice",
            entity_id=invoice.invoice_id,
            action=AuditAction.UPDATE,
            changes={
                "refund_amount": {
                    "old": str(old_amount) if old_amount is not None else None,
                    "new": str(invoice.refund_amount),
                },
                "refund_id": {"old": None, "new": refund.refund_id},
            }
        )

        return refund

    def process_refund(
        self,
        invoice_id: str,
        amount,
        method: str,
        reason: str,
        notes: str | None = None
    ) -> Refund:
        """
        Refund money collected on an invoice.

        Args:
            invoice_id: Invoice ID
            amount: Amount to give back (3-digit fixed point)
            method: How the money is returned
            reason: Why
            notes: Optional staff notes

        Returns:
            The new refund record

        Raises:
            NotFound: If invoice not found
            AlreadyExchanged: If the order was exchanged
            InvalidAmount: If amount <= 0
            ExceedsPaidAmount: If amount is more than was collected (less earlier refunds)
            MissingField: If method or reason is blank
        """
        with self.locks.hold(invoice_id):
            with atomic(self.store, "process_refund", invoice_id):
                pair = load_pair(self.store, invoice_id)
                invoice = pair.invoice

                if invoice.is_exchanged:
                    raise AlreadyExchanged(f"Invoice {invoice_id} was exchanged and cannot be refunded")

                amount = to_amount(amount)
                if amount <= ZERO:
                    raise InvalidAmount(f"Refund amount must be greater than 0, got {amount}")

                refundable = refundable_amount(invoice)
                if amount > refundable:
                    logger.warning(
                        f"Refund of {amount} rejected on invoice {invoice_id}: "
                        f"only {refundable} refundable"
                    )
                    raise ExceedsPaidAmount(amount, refundable)

                if not method or not method.strip():
                    raise MissingField("method")
                if not reason or not reason.strip():
                    raise MissingField("reason")

                now = now_utc()
                refund = self.apply_refund(invoice, amount, method, reason, notes, now)
                pair.work_order.updated_at = now

                check_invariants(invoice, pair.work_order)
                self.store.save_order(pair)

            logger.info(f"Refund {refund.refund_id} of {amount} processed on invoice {invoice_id}")
            self.event_bus.publish(RefundProcessed.create(refund=refund, invoice=invoice))

        return refund

    def get_by_id(self, refund_id: str) -> Refund | None:
        """Get refund by ID."""
        return self.store.load_refund(refund_id)

    def list_for_invoice(self, invoice_id: str) -> list[Refund]:
        """
        All refunds on an invoice, oldest first.

        Raises:
            NotFound: If invoice not found
        """
        if self.store.load_invoice(invoice_id) is None:
            raise NotFound("invoice", invoice_id)
        return self.store.list_refunds(invoice_id)
