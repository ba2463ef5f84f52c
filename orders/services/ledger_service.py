"""
Payment ledger for invoices.

Payments are append-only ledger entries. Paid-to-date is the sum of the
entries and remaining is max(0, total - paid). A payment larger than the
remaining balance is rejected outright, never clamped. Several entries
(split payments, e.g. part cash, part card) are applied as one event.
"""

import logging
from datetime import datetime
from decimal import Decimal
from uuid import uuid4

from pydantic import ValidationError

from orders.audit import AuditLogger, AuditAction
from orders.errors import (
    AlreadyArchived, InvalidAmount, InvalidField, InvalidTransition, MissingField, OverpaymentRejected,
)
from orders.event_bus import EventBus
from orders.events import InvoicePaid, PaymentRecorded
from orders.lifecycle import check_invariants, settle_status
from orders.models import InvoiceStatus, OrderPair, PaymentCreate, PaymentEntry
from orders.money import ZERO, add
from orders.services.work_order_service import load_pair, mirror_invoice
from orders.store import OrderLocks, OrderStore, atomic
from utils.timezone import now_utc

logger = logging.getLogger(__name__)


def validate_payments(payments: list[PaymentCreate]) -> Decimal:
    """
    Check each payment on its own and return their sum.

    Raises:
        MissingField: If the list is empty or a method is blank
        InvalidAmount: If any amount is zero or negative
    """
    if not payments:
        raise MissingField("payments", "At least one payment is required")

    for payment in payments:
        if payment.amount <= ZERO:
            raise InvalidAmount(f"Payment amount must be greater than 0, got {payment.amount}")
        if not payment.method or not payment.method.strip():
            raise MissingField("method")

    return add(*(payment.amount for payment in payments))


def build_payment(amount, method, auth_number=None) -> PaymentCreate:
    """
    Build a PaymentCreate from raw counter input.

    A missing method is left blank so validate_payments reports it in order.

    Raises:
        InvalidAmount: If amount is not a number
        InvalidField: If method or auth_number is too long or not text
    """
    try:
        return PaymentCreate(amount=amount, method=method or "", auth_number=auth_number)
    except ValidationError as exc:
        error = exc.errors()[0]
        field = ".".join(str(part) for part in error["loc"])
        raise InvalidField(field, f"Invalid {field}: {error['msg']}") from exc


class PaymentLedger:
    """Service for recording payments."""

    def __init__(self, store: OrderStore, audit: AuditLogger, event_bus: EventBus, locks: OrderLocks):
        self.store = store
        self.audit = audit
        self.event_bus = event_bus
        self.locks = locks

    def apply_payments(
        self,
        pair: OrderPair,
        payments: list[PaymentCreate],
        now: datetime,
    ) -> list[PaymentEntry]:
        """
        Append payments to a loaded pair inside an open transaction.

        Mutates the pair (ledger, status, work order mirror) and writes the
        entries to the store. The caller saves the pair and commits.

        Raises:
            AlreadyArchived: If the order is archived
            InvalidTransition: If the invoice is still a draft
            OverpaymentRejected: If the combined amount exceeds remaining
        """
        invoice = pair.invoice
        amount = validate_payments(payments)

        if invoice.is_archived:
            raise AlreadyArchived(f"Invoice {invoice.invoice_id} is archived")

        if invoice.status == InvoiceStatus.DRAFT:
            raise InvalidTransition(f"Invoice {invoice.invoice_id} is a draft; save it before taking payments")

        if amount > invoice.remaining:
            logger.warning(
                f"Overpayment rejected on invoice {invoice.invoice_id}: "
                f"{amount} > remaining {invoice.remaining}"
            )
            raise OverpaymentRejected(amount, invoice.remaining)

        entries = [
            PaymentEntry(
                entry_id=uuid4(),
                invoice_id=invoice.invoice_id,
                date=now,
                amount=payment.amount,
                method=payment.method.strip(),
                auth_number=payment.auth_number,
            )
            for payment in payments
        ]

        old_paid = invoice.paid_to_date
        old_status = invoice.status

        invoice.payments.extend(entries)
        invoice.status = settle_status(invoice)
        mirror_invoice(pair, now)

        self.store.append_payment_entries(invoice.invoice_id, entries)

        self.audit.log_change(
            entity_type="invoice",
            entity_id=invoice.invoice_id,
            action=AuditAction.UPDATE,
            changes={
                "paid_to_date": {"old": str(old_paid), "new": str(invoice.paid_to_date)},
                "status": {"old": old_status.value, "new": invoice.status.value},
                "payments_recorded": [e.model_dump(mode="json") for e in entries],
            }
        )

        return entries

    def record_payment(
        self,
        invoice_id: str,
        amount,
        method: str,
        auth_number: str | None = None
    ) -> PaymentEntry:
        """
        Record a single payment on an invoice.

        Args:
            invoice_id: Invoice ID
            amount: Payment amount (3-digit fixed point)
            method: Payment method ("cash", "knet", "visa", ...)
            auth_number: Card authorization number, if any

        Returns:
            The new ledger entry

        Raises:
            InvalidAmount: If amount <= 0
            MissingField: If method is missing or blank
            InvalidField: If method or auth_number is too long or not text
            NotFound: If invoice not found
            AlreadyArchived: If invoice is archived
            OverpaymentRejected: If amount > remaining
        """
        payment = build_payment(amount, method, auth_number)
        return self.record_split_payment(invoice_id, [payment])[0]

    def record_split_payment(self, invoice_id: str, payments: list[PaymentCreate]) -> list[PaymentEntry]:
        """
        Record several payments as one atomic payment event.

        Each entry keeps its own method and auth number. Either all entries
        are recorded or none.

        Args:
            invoice_id: Invoice ID
            payments: Payments to apply together

        Returns:
            The new ledger entries, in the order given
        """
        validate_payments(payments)

        with self.locks.hold(invoice_id):
            with atomic(self.store, "record_payment", invoice_id):
                pair = load_pair(self.store, invoice_id)
                was_paid = pair.invoice.status == InvoiceStatus.PAID

                entries = self.apply_payments(pair, payments, now_utc())

                check_invariants(pair.invoice, pair.work_order)
                self.store.save_order(pair)

            invoice = pair.invoice
            logger.info(
                f"Recorded {len(entries)} payment(s) on invoice {invoice_id}: "
                f"paid {invoice.paid_to_date}, remaining {invoice.remaining}"
            )

            self.event_bus.publish(PaymentRecorded.create(invoice=invoice, entries=entries))
            if invoice.status == InvoiceStatus.PAID and not was_paid:
                self.event_bus.publish(InvoicePaid.create(invoice=invoice))

        return entries

    def entries(self, invoice_id: str) -> list[PaymentEntry]:
        """Ledger entries in recorded order."""
        return load_pair(self.store, invoice_id).invoice.payments

    def total_paid(self, invoice_id: str) -> Decimal:
        """Sum of ledger entries. Always equals the invoice's deposit."""
        return load_pair(self.store, invoice_id).invoice.paid_to_date

    def remaining(self, invoice_id: str) -> Decimal:
        """Unpaid balance, floored at zero."""
        return load_pair(self.store, invoice_id).invoice.remaining
