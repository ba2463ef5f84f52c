"""
In-memory order store.

Reference implementation of the OrderStore contract. Every read returns a
deep copy and every write stores one, so callers never share mutable state
with the store. Writes made inside `transaction()` are buffered per thread
and published to the shared maps only when the outermost block exits
cleanly. Other threads never see them before that; a rollback just drops
the buffer.
"""

import logging
import threading
from collections import defaultdict
from contextlib import contextmanager
from typing import Dict, Iterator, List

from orders.audit import AuditEntry
from orders.models import Invoice, OrderPair, PaymentEntry, Refund, WorkOrder

logger = logging.getLogger(__name__)


class _PendingWrites:
    """Writes buffered by one thread's open transaction."""

    def __init__(self):
        self.invoices: Dict[str, Invoice] = {}
        self.work_orders: Dict[str, WorkOrder] = {}
        self.payments: Dict[str, List[PaymentEntry]] = defaultdict(list)
        self.refunds: Dict[str, Refund] = {}
        self.audit: List[AuditEntry] = []


class InMemoryOrderStore:
    """Dictionary-backed OrderStore."""

    def __init__(self):
        self._invoices: Dict[str, Invoice] = {}
        self._work_orders: Dict[str, WorkOrder] = {}
        self._payments: Dict[str, List[PaymentEntry]] = defaultdict(list)
        self._refunds: Dict[str, Refund] = {}
        self._sequences: Dict[str, int] = {}
        self._audit: List[AuditEntry] = []
        self._lock = threading.RLock()
        self._local = threading.local()

    # -------------------------------------------------------------------------
    # Transactions
    # -------------------------------------------------------------------------

    def _pending(self) -> _PendingWrites | None:
        return getattr(self._local, "pending", None)

    @contextmanager
    def transaction(self) -> Iterator[None]:
        """Publish all writes inside on success, drop them on error. Nested calls join."""
        if self._pending() is not None:
            yield
            return

        pending = _PendingWrites()
        self._local.pending = pending
        try:
            yield
        except BaseException:
            logger.debug("In-memory transaction rolled back")
            raise
        else:
            self._publish(pending)
        finally:
            self._local.pending = None

    def lock_order(self, key: str) -> None:
        """Nothing to do: one process, and OrderLocks already serialize writers."""

    def _publish(self, pending: _PendingWrites) -> None:
        with self._lock:
            self._invoices.update(pending.invoices)
            self._work_orders.update(pending.work_orders)
            for invoice_id, entries in pending.payments.items():
                self._payments[invoice_id] = self._payments.get(invoice_id, []) + entries
            self._refunds.update(pending.refunds)
            self._audit.extend(pending.audit)

    # Views merge this thread's pending writes over the committed maps.

    def _invoice_map(self) -> Dict[str, Invoice]:
        pending = self._pending()
        return {**self._invoices, **pending.invoices} if pending else self._invoices

    def _work_order_map(self) -> Dict[str, WorkOrder]:
        pending = self._pending()
        return {**self._work_orders, **pending.work_orders} if pending else self._work_orders

    def _refund_map(self) -> Dict[str, Refund]:
        pending = self._pending()
        return {**self._refunds, **pending.refunds} if pending else self._refunds

    def _payments_for(self, invoice_id: str) -> List[PaymentEntry]:
        committed = self._payments.get(invoice_id, [])
        pending = self._pending()
        if pending and invoice_id in pending.payments:
            return committed + pending.payments[invoice_id]
        return committed

    # -------------------------------------------------------------------------
    # Invoices and work orders
    # -------------------------------------------------------------------------

    def _assemble(self, stored: Invoice) -> Invoice:
        payments = [entry.model_copy() for entry in self._payments_for(stored.invoice_id)]
        return stored.model_copy(update={"payments": payments}, deep=True)

    def load_invoice(self, invoice_id: str) -> Invoice | None:
        with self._lock:
            stored = self._invoice_map().get(invoice_id)
            return self._assemble(stored) if stored is not None else None

    def load_work_order(self, work_order_id: str) -> WorkOrder | None:
        with self._lock:
            stored = self._work_order_map().get(work_order_id)
            return stored.model_copy(deep=True) if stored is not None else None

    def load_work_order_for_invoice(self, invoice_id: str) -> WorkOrder | None:
        with self._lock:
            for work_order in self._work_order_map().values():
                if work_order.invoice_id == invoice_id:
                    return work_order.model_copy(deep=True)
            return None

    def save_order(self, pair: OrderPair) -> None:
        """Upsert both halves of the pair. Payments are ignored here."""
        with self.transaction():
            self.save_invoice(pair.invoice)
            self.save_work_order(pair.work_order)

    def save_invoice(self, invoice: Invoice) -> None:
        stored = invoice.model_copy(update={"payments": []}, deep=True)
        pending = self._pending()
        if pending is not None:
            pending.invoices[invoice.invoice_id] = stored
            return
        with self._lock:
            self._invoices[invoice.invoice_id] = stored

    def save_work_order(self, work_order: WorkOrder) -> None:
        stored = work_order.model_copy(deep=True)
        pending = self._pending()
        if pending is not None:
            pending.work_orders[work_order.work_order_id] = stored
            return
        with self._lock:
            self._work_orders[work_order.work_order_id] = stored

    # -------------------------------------------------------------------------
    # Ledger
    # -------------------------------------------------------------------------

    def append_payment_entries(self, invoice_id: str, entries: list[PaymentEntry]) -> None:
        copies = [entry.model_copy() for entry in entries]
        pending = self._pending()
        if pending is not None:
            pending.payments[invoice_id].extend(copies)
            return
        with self._lock:
            self._payments[invoice_id] = self._payments.get(invoice_id, []) + copies

    # -------------------------------------------------------------------------
    # Refunds
    # -------------------------------------------------------------------------

    def save_refund(self, refund: Refund) -> None:
        with self._lock:
            if refund.refund_id in self._refund_map():
                raise ValueError(f"Refund {refund.refund_id} already exists and is immutable")
            pending = self._pending()
            if pending is not None:
                pending.refunds[refund.refund_id] = refund.model_copy()
            else:
                self._refunds[refund.refund_id] = refund.model_copy()

    def load_refund(self, refund_id: str) -> Refund | None:
        with self._lock:
            refund = self._refund_map().get(refund_id)
            return refund.model_copy() if refund is not None else None

    def list_refunds(self, invoice_id: str | None = None) -> list[Refund]:
        with self._lock:
            refunds = [
                r.model_copy() for r in self._refund_map().values()
                if invoice_id is None or r.invoice_id == invoice_id
            ]
        return sorted(refunds, key=lambda r: r.date)

    # -------------------------------------------------------------------------
    # Listings
    # -------------------------------------------------------------------------

    def list_invoices(self) -> list[Invoice]:
        with self._lock:
            invoices = [self._assemble(inv) for inv in self._invoice_map().values()]
        return sorted(invoices, key=lambda inv: inv.created_at, reverse=True)

    def list_work_orders(self) -> list[WorkOrder]:
        with self._lock:
            work_orders = [wo.model_copy(deep=True) for wo in self._work_order_map().values()]
        return sorted(work_orders, key=lambda wo: wo.created_at, reverse=True)

    def list_by_patient(self, patient_id: str) -> list[Invoice]:
        return [inv for inv in self.list_invoices() if inv.patient_id == patient_id]

    def list_archived(self) -> list[Invoice]:
        return [inv for inv in self.list_invoices() if inv.is_archived]

    # -------------------------------------------------------------------------
    # Sequences and audit
    # -------------------------------------------------------------------------

    def next_sequence(self, prefix: str) -> int:
        """Counters are not rolled back; a failed operation leaves a gap."""
        with self._lock:
            value = self._sequences.get(prefix, 0) + 1
            self._sequences[prefix] = value
            return value

    def append_audit_entry(self, entry: AuditEntry) -> None:
        stored = entry.model_copy(deep=True)
        pending = self._pending()
        if pending is not None:
            pending.audit.append(stored)
            return
        with self._lock:
            self._audit.append(stored)

    def list_audit_entries(self, entity_type: str, entity_id: str) -> list[AuditEntry]:
        with self._lock:
            entries = list(self._audit)
            pending = self._pending()
            if pending is not None:
                entries.extend(pending.audit)
            return [
                e.model_copy(deep=True) for e in entries
                if e.entity_type == entity_type and e.entity_id == entity_id
            ]
