"""
Exchanges.

An exchange closes an order in favour of a replacement invoice. No money
moves here: ledger entries and refund fields are left alone, and an
exchanged order takes no further refund or exchange. The replacement can be
named when the exchange is made, or linked later once its invoice is saved.
"""

import logging

from orders.audit import AuditLogger, AuditAction
from orders.config import ShopConfig
from orders.errors import (
    AlreadyArchived, AlreadyExchanged, InvalidTransition, MissingField, NotFound,
)
from orders.event_bus import EventBus
from orders.events import OrderExchanged
from orders.lifecycle import check_invariants
from orders.models import Invoice, OrderPair
from orders.services.work_order_service import load_pair
from orders.store import OrderLocks, OrderStore, atomic
from utils.timezone import now_utc

logger = logging.getLogger(__name__)


class ExchangeService:
    """Service for exchanges."""

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

    def _check_replacement(self, invoice: Invoice, replacement_invoice_id: str) -> None:
        if replacement_invoice_id == invoice.invoice_id:
            raise InvalidTransition(f"Invoice {invoice.invoice_id} cannot be exchanged for itself")

        replacement = self.store.load_invoice(replacement_invoice_id)
        if replacement is None:
            raise NotFound("invoice", replacement_invoice_id)
        if replacement.is_archived:
            raise AlreadyArchived(f"Replacement invoice {replacement_invoice_id} is archived")

    def process_exchange(
        self,
        invoice_id: str,
        reason: str,
        replacement_invoice_id: str | None = None
    ) -> OrderPair:
        """
        Mark an order as exchanged.

        Args:
            invoice_id: Invoice being exchanged
            reason: Why
            replacement_invoice_id: New invoice, if it already exists

        Returns:
            Updated pair

        Raises:
            NotFound: If the invoice or the replacement does not exist
            AlreadyArchived: If the order (or the replacement) is archived
            AlreadyExchanged: If the order was exchanged before
            InvalidTransition: If the order was refunded, or is its own replacement
            MissingField: If reason is blank
        """
        with self.locks.hold(invoice_id):
            with atomic(self.store, "process_exchange", invoice_id):
                pair = load_pair(self.store, invoice_id)
                invoice = pair.invoice

                if invoice.is_archived:
                    raise AlreadyArchived(f"Invoice {invoice_id} is archived")
                if invoice.is_exchanged:
                    raise AlreadyExchanged(f"Invoice {invoice_id} was already exchanged")
                if invoice.is_refunded:
                    raise InvalidTransition(f"Invoice {invoice_id} was refunded and cannot be exchanged")
                if not reason or not reason.strip():
                    raise MissingField("reason")
                if replacement_invoice_id is not None:
                    self._check_replacement(invoice, replacement_invoice_id)

                now = now_utc()
                invoice.is_exchanged = True
                invoice.exchanged_for = replacement_invoice_id
                invoice.exchange_reason = reason.strip()
                invoice.exchange_date = now
                pair.work_order.is_exchanged = True
                pair.work_order.updated_at = now

                check_invariants(invoice, pair.work_order)
                self.store.save_order(pair)

                self.audit.log_change(
                    entity_type="invoice",
                    entity_id=invoice_id,
                    action=AuditAction.EXCHANGE,
                    changes={
                        "exchanged": {
                            "reason": invoice.exchange_reason,
                            "exchanged_for": replacement_invoice_id,
                        }
                    }
                )

            logger.info(
                f"Invoice {invoice_id} exchanged"
                + (f" for {replacement_invoice_id}" if replacement_invoice_id else "")
            )
            self.event_bus.publish(OrderExchanged.create(invoice=invoice, work_order=pair.work_order))

        return pair

    def link_replacement(self, invoice_id: str, replacement_invoice_id: str) -> Invoice:
        """
        Point an exchanged order at the invoice that replaced it.

        Raises:
            NotFound: If either invoice does not exist
            InvalidTransition: If the order was not exchanged, or is its own replacement
            AlreadyExchanged: If a replacement is already linked
            AlreadyArchived: If the replacement is archived
        """
        with self.locks.hold(invoice_id):
            with atomic(self.store, "link_exchange_replacement", invoice_id):
                pair = load_pair(self.store, invoice_id)
                invoice = pair.invoice

                if not invoice.is_exchanged:
                    raise InvalidTransition(f"Invoice {invoice_id} has not been exchanged")
                if invoice.exchanged_for is not None:
                    raise AlreadyExchanged(
                        f"Invoice {invoice_id} is already linked to {invoice.exchanged_for}"
                    )
                self._check_replacement(invoice, replacement_invoice_id)

                invoice.exchanged_for = replacement_invoice_id
                check_invariants(invoice, pair.work_order)
                self.store.save_order(pair)

                self.audit.log_change(
                    entity_type="invoice",
                    entity_id=invoice_id,
                    action=AuditAction.UPDATE,
                    changes={"exchanged_for": {"old": None, "new": replacement_invoice_id}}
                )

        logger.info(f"Exchanged invoice {invoice_id} linked to replacement {replacement_invoice_id}")
        return invoice

    def list_exchanged(self) -> list[Invoice]:
        """Exchanged invoices, newest first."""
        return [inv for inv in self.store.list_invoices() if inv.is_exchanged]

    def find_original(self, replacement_invoice_id: str) -> Invoice | None:
        """The exchanged invoice that replacement_invoice_id replaced, if any."""
        for invoice in self.store.list_invoices():
            if invoice.exchanged_for == replacement_invoice_id:
                return invoice
        return None
