"""
Pure recompute functions for the invoice / work-order pair.

This is the only place totals, balances and payment status are computed.
Models expose them as computed fields; services call them after every
mutation and run check_invariants() before committing.
"""

from decimal import Decimal
from typing import TYPE_CHECKING, Iterable

from orders.errors import InvariantViolation
from orders.money import ZERO, add, clamp_zero, is_zero, subtract

if TYPE_CHECKING:
    from orders.models.components import PricedComponents
    from orders.models.invoice import Invoice, InvoiceStatus
    from orders.models.ledger import PaymentEntry
    from orders.models.work_order import WorkOrder


def line_item_total(components: "PricedComponents") -> Decimal:
    """Sum of every priced component."""
    return add(*components.priced_amounts())


def invoice_total(components: "PricedComponents", discount: Decimal) -> Decimal:
    """lineItemTotal - discount."""
    return subtract(line_item_total(components), discount)


def paid_to_date(payments: Iterable["PaymentEntry"]) -> Decimal:
    """Sum of ledger entry amounts."""
    return add(*(entry.amount for entry in payments))


def remaining(total: Decimal, paid: Decimal) -> Decimal:
    """max(0, total - paid)."""
    return clamp_zero(subtract(total, paid))


def settle_status(invoice: "Invoice") -> "InvoiceStatus":
    """
    Payment status implied by the ledger and current total.

    Drafts stay drafts. A saved invoice with nothing left to pay is PAID,
    with some payments PARTIALLY_PAID, otherwise SAVED.
    """
    from orders.models.invoice import InvoiceStatus

    if invoice.status == InvoiceStatus.DRAFT:
        return InvoiceStatus.DRAFT
    if is_zero(invoice.remaining):
        return InvoiceStatus.PAID
    if invoice.paid_to_date > ZERO:
        return InvoiceStatus.PARTIALLY_PAID
    return InvoiceStatus.SAVED


def check_invariants(invoice: "Invoice", work_order: "WorkOrder | None" = None) -> None:
    """
    Verify an order snapshot before it is committed or handed out.

    Raises:
        InvariantViolation: On any inconsistency
    """
    problems = []

    if invoice.discount < ZERO:
        problems.append("discount is negative")
    if invoice.discount > invoice.line_item_total:
        problems.append("discount exceeds line item total")
    if any(entry.amount <= ZERO for entry in invoice.payments):
        problems.append("ledger holds a non-positive entry")
    if any(entry.invoice_id != invoice.invoice_id for entry in invoice.payments):
        problems.append("ledger entry belongs to another invoice")
    if invoice.status != settle_status(invoice):
        problems.append(
            f"status {invoice.status.value} does not match ledger "
            f"(expected {settle_status(invoice).value})"
        )
    if invoice.is_refunded:
        if invoice.refund_amount is None or invoice.refund_id is None:
            problems.append("refunded invoice lacks refund metadata")
        elif invoice.refund_amount > invoice.paid_to_date:
            problems.append("refund amount exceeds paid to date")
    if invoice.is_exchanged and not invoice.exchange_reason:
        problems.append("exchanged invoice lacks exchange reason")
    if invoice.exchanged_for == invoice.invoice_id:
        problems.append("invoice exchanged for itself")

    if work_order is not None:
        if work_order.invoice_id != invoice.invoice_id:
            problems.append("work order points at another invoice")
        if invoice.work_order_id != work_order.work_order_id:
            problems.append("invoice points at another work order")
        if work_order.components != invoice.components or work_order.discount != invoice.discount:
            problems.append("work order prices differ from invoice")
        if work_order.is_paid != invoice.is_paid:
            problems.append("work order paid flag differs from invoice")
        if work_order.is_archived != invoice.is_archived:
            problems.append("archive flags differ between work order and invoice")
        if work_order.is_exchanged != invoice.is_exchanged:
            problems.append("exchange flags differ between work order and invoice")

    if problems:
        raise InvariantViolation(
            f"Invoice {invoice.invoice_id}: " + "; ".join(problems)
        )
