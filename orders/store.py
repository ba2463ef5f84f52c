"""
Persistence contract for the order lifecycle engine.

The engine never performs I/O itself. It talks to an OrderStore, which is
either the in-memory store (tests, local runs) or the PostgreSQL store.
Every store call is synchronous; any failure propagates and is surfaced as
PersistenceFailure with the store's state rolled back.

Ledger entries are written only through append_payment_entries(). save_order()
never touches them, so a concurrent descriptive save can never drop a payment.
"""

import logging
import threading
from contextlib import contextmanager
from typing import ContextManager, Dict, Iterator, Protocol

from orders.audit import AuditEntry
from orders.errors import OrderError, PersistenceFailure
from orders.models import Invoice, OrderPair, PaymentEntry, Refund, WorkOrder

logger = logging.getLogger(__name__)


class OrderStore(Protocol):
    """What the engine needs from a persistence collaborator."""

    def transaction(self) -> ContextManager[None]:
        """All writes inside commit together or not at all. May nest."""
        ...

    def lock_order(self, key: str) -> None:
        """Hold the order against writers in other processes until the transaction ends."""
        ...

    def load_invoice(self, invoice_id: str) -> Invoice | None: ...

    def load_work_order(self, work_order_id: str) -> WorkOrder | None: ...

    def load_work_order_for_invoice(self, invoice_id: str) -> WorkOrder | None: ...

    def save_order(self, pair: OrderPair) -> None: ...

    def save_work_order(self, work_order: WorkOrder) -> None: ...

    def append_payment_entries(self, invoice_id: str, entries: list[PaymentEntry]) -> None: ...

    def save_refund(self, refund: Refund) -> None: ...

    def load_refund(self, refund_id: str) -> Refund | None: ...

    def list_refunds(self, invoice_id: str | None = None) -> list[Refund]: ...

    def list_invoices(self) -> list[Invoice]: ...

    def list_work_orders(self) -> list[WorkOrder]: ...

    def list_by_patient(self, patient_id: str) -> list[Invoice]: ...

    def list_archived(self) -> list[Invoice]: ...

    def next_sequence(self, prefix: str) -> int: ...

    def append_audit_entry(self, entry: AuditEntry) -> None: ...

    def list_audit_entries(self, entity_type: str, entity_id: str) -> list[AuditEntry]:
        """Entries for one entity, oldest first."""
        ...


@contextmanager
def atomic(store: OrderStore, operation: str, lock_key: str | None = None) -> Iterator[None]:
    """
    Run one engine operation as a single store transaction.

    Order errors (validation, invariants) roll back and propagate as-is.
    Anything else raised by the store rolls back and becomes
    PersistenceFailure.

    Args:
        store: Store to run against
        operation: Short name for log lines (e.g. "record_payment")
        lock_key: Order key (invoice id) to lock in the store before any read
    """
    try:
        with store.transaction():
            if lock_key is not None:
                store.lock_order(lock_key)
            yield
    except OrderError:
        raise
    except Exception as exc:
        logger.error(f"Store failure during {operation}: {exc}")
        raise PersistenceFailure(f"Could not complete {operation}: {exc}") from exc


class OrderLocks:
    """
    One re-entrant lock per order.

    Operations on the same order are serialized; operations on different
    orders never wait on each other.
    """

    def __init__(self):
        self._locks: Dict[str, threading.RLock] = {}
        self._guard = threading.Lock()

    def _lock_for(self, key: str) -> threading.RLock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.RLock()
                self._locks[key] = lock
            return lock

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        """Hold the lock for one order (keyed by invoice id)."""
        with self._lock_for(key):
            yield
