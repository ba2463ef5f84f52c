"""
Handler for print requests.

On OrderSaved: hands the invoice and work order snapshots to the printer
(customer receipt and lab ticket). On RefundProcessed: hands over the
refund slip. Rendering is the printer's job.
"""

import logging
from typing import Callable, Protocol

from orders.events import LifecycleEvent, OrderSaved, RefundProcessed
from orders.lifecycle import check_invariants

logger = logging.getLogger(__name__)


class Printer(Protocol):
    """Print/report collaborator."""

    def print_invoice(self, invoice) -> None: ...

    def print_work_order(self, work_order) -> None: ...

    def print_refund(self, refund, invoice) -> None: ...


def handle_print_request(printer: Printer) -> Callable:
    """
    Factory that returns a print handler.

    Subscribe the result to both OrderSaved and RefundProcessed.

    Args:
        printer: Print collaborator

    Returns:
        Handler callable that sends snapshots to the printer
    """

    def handler(event: LifecycleEvent):
        if isinstance(event, OrderSaved):
            # Never print a snapshot that breaks the pair invariants
            check_invariants(event.invoice, event.work_order)
            printer.print_invoice(event.invoice)
            printer.print_work_order(event.work_order)
            logger.debug(f"Printed invoice {event.invoice.invoice_id}")
        elif isinstance(event, RefundProcessed):
            printer.print_refund(event.refund, event.invoice)
            logger.debug(f"Printed refund {event.refund.refund_id}")

    return handler
