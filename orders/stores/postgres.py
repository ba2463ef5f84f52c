"""
PostgreSQL order store.

Invoices and work orders are stored as JSONB documents next to the columns
the listings filter on. Ledger entries, refunds and audit rows are
append-only tables; nothing here issues UPDATE or DELETE against them.

Every engine write starts its transaction with lock_order(), a
transaction-scoped advisory lock on the order key. Engines in separate
processes serialize on one order the way OrderLocks does within a process.
"""

import logging
from contextlib import contextmanager
from typing import Any, Dict, Iterator

from clients.postgres_client import PostgresClient
from orders.audit import AuditEntry
from orders.models import Invoice, OrderPair, PaymentEntry, Refund, WorkOrder

logger = logging.getLogger(__name__)

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS invoices (
    invoice_id      TEXT PRIMARY KEY,
    work_order_id   TEXT,
    patient_id      TEXT,
    status          TEXT NOT NULL,
    is_archived     BOOLEAN NOT NULL DEFAULT false,
    created_at      TIMESTAMPTZ NOT NULL,
    data            JSONB NOT NULL
);
CREATE INDEX IF NOT EXISTS invoices_patient_idx ON invoices (patient_id);

CREATE TABLE IF NOT EXISTS work_orders (
    work_order_id   TEXT PRIMARY KEY,
    invoice_id      TEXT,
    is_archived     BOOLEAN NOT NULL DEFAULT false,
    created_at      TIMESTAMPTZ NOT NULL,
    data            JSONB NOT NULL
);
CREATE INDEX IF NOT EXISTS work_orders_invoice_idx ON work_orders (invoice_id);

CREATE TABLE IF NOT EXISTS payment_entries (
    position        BIGSERIAL PRIMARY KEY,
    entry_id        UUID NOT NULL UNIQUE,
    invoice_id      TEXT NOT NULL REFERENCES invoices (invoice_id),
    date            TIMESTAMPTZ NOT NULL,
    amount          NUMERIC(14, 3) NOT NULL CHECK (amount > 0),
    method          TEXT NOT NULL,
    auth_number     TEXT
);
CREATE INDEX IF NOT EXISTS payment_entries_invoice_idx ON payment_entries (invoice_id);

CREATE TABLE IF NOT EXISTS refunds (
    refund_id       TEXT PRIMARY KEY,
    invoice_id      TEXT NOT NULL REFERENCES invoices (invoice_id),
    amount          NUMERIC(14, 3) NOT NULL CHECK (amount > 0),
    method          TEXT NOT NULL,
    reason          TEXT NOT NULL,
    date            TIMESTAMPTZ NOT NULL,
    staff_notes     TEXT,
    staff_id        TEXT
);

CREATE TABLE IF NOT EXISTS order_sequences (
    prefix          TEXT PRIMARY KEY,
    value           BIGINT NOT NULL
);

CREATE TABLE IF NOT EXISTS audit_log (
    id              UUID PRIMARY KEY,
    staff_id        TEXT NOT NULL,
    entity_type     TEXT NOT NULL,
    entity_id       TEXT NOT NULL,
    action          TEXT NOT NULL,
    changes         JSONB NOT NULL,
    created_at      TIMESTAMPTZ NOT NULL
);
CREATE INDEX IF NOT EXISTS audit_log_entity_idx ON audit_log (entity_type, entity_id);
"""


class PostgresOrderStore:
    """OrderStore backed by PostgresClient."""

    def __init__(self, postgres: PostgresClient):
        self.postgres = postgres

    def create_schema(self) -> None:
        """Create tables if they don't exist."""
        self.postgres.execute(SCHEMA_SQL)
        logger.info("Order schema ensured")

    @contextmanager
    def transaction(self) -> Iterator[None]:
        with self.postgres.transaction():
            yield

    def lock_order(self, key: str) -> None:
        """
        Block until no other transaction holds this order, then hold it.

        Released on commit or rollback. Works for ids that have no row yet.
        """
        self.postgres.execute(
            "SELECT pg_advisory_xact_lock(hashtextextended(%s, 0))",
            (f"order:{key}",)
        )

    # -------------------------------------------------------------------------
    # Invoices and work orders
    # -------------------------------------------------------------------------

    def _entries_for(self, invoice_id: str) -> list[PaymentEntry]:
        rows = self.postgres.execute(
            """
            SELECT entry_id, invoice_id, date, amount, method, auth_number
            FROM payment_entries
            WHERE invoice_id = %s
            ORDER BY position ASC
            """,
            (invoice_id,)
        )
        return [PaymentEntry.model_validate(row) for row in rows]

    def _invoice_from_row(self, row: Dict[str, Any]) -> Invoice:
        data = dict(row["data"])
        data["payments"] = self._entries_for(row["invoice_id"])
        return Invoice.model_validate(data)

    def load_invoice(self, invoice_id: str) -> Invoice | None:
        row = self.postgres.execute_single(
            "SELECT invoice_id, data FROM invoices WHERE invoice_id = %s",
            (invoice_id,)
        )
        if row is None:
            return None
        return self._invoice_from_row(row)

    def load_work_order(self, work_order_id: str) -> WorkOrder | None:
        row = self.postgres.execute_single(
            "SELECT data FROM work_orders WHERE work_order_id = %s",
            (work_order_id,)
        )
        if row is None:
            return None
        return WorkOrder.model_validate(row["data"])

    def load_work_order_for_invoice(self, invoice_id: str) -> WorkOrder | None:
        row = self.postgres.execute_single(
            "SELECT data FROM work_orders WHERE invoice_id = %s",
            (invoice_id,)
        )
        if row is None:
            return None
        return WorkOrder.model_validate(row["data"])

    def save_order(self, pair: OrderPair) -> None:
        with self.postgres.transaction():
            self.save_invoice(pair.invoice)
            self.save_work_order(pair.work_order)

    def save_invoice(self, invoice: Invoice) -> None:
        data = invoice.model_dump(mode="json", exclude={"payments"})
        self.postgres.execute(
            """
            INSERT INTO invoices (invoice_id, work_order_id, patient_id, status, is_archived, created_at, data)
            VALUES (%s, %s, %s, %s, %s, %s, %s)
            ON CONFLICT (invoice_id) DO UPDATE SET
                work_order_id = EXCLUDED.work_order_id,
                patient_id = EXCLUDED.patient_id,
                status = EXCLUDED.status,
                is_archived = EXCLUDED.is_archived,
                data = EXCLUDED.data
            """,
            (
                invoice.invoice_id, invoice.work_order_id, invoice.patient_id,
                invoice.status.value, invoice.is_archived, invoice.created_at, data
            )
        )

    def save_work_order(self, work_order: WorkOrder) -> None:
        data = work_order.model_dump(mode="json")
        self.postgres.execute(
            """
            INSERT INTO work_orders (work_order_id, invoice_id, is_archived, created_at, data)
            VALUES (%s, %s, %s, %s, %s)
            ON CONFLICT (work_order_id) DO UPDATE SET
                invoice_id = EXCLUDED.invoice_id,
                is_archived = EXCLUDED.is_archived,
                data = EXCLUDED.data
            """,
            (
                work_order.work_order_id, work_order.invoice_id,
                work_order.is_archived, work_order.created_at, data
            )
        )

    # -------------------------------------------------------------------------
    # Ledger
    # -------------------------------------------------------------------------

    def append_payment_entries(self, invoice_id: str, entries: list[PaymentEntry]) -> None:
        with self.postgres.transaction():
            for entry in entries:
                self.postgres.execute(
                    """
                    INSERT INTO payment_entries (entry_id, invoice_id, date, amount, method, auth_number)
                    VALUES (%s, %s, %s, %s, %s, %s)
                    """,
                    (
                        entry.entry_id, invoice_id, entry.date,
                        entry.amount, entry.method, entry.auth_number
                    )
                )

    # -------------------------------------------------------------------------
    # Refunds
    # -------------------------------------------------------------------------

    def save_refund(self, refund: Refund) -> None:
        self.postgres.execute(
            """
            INSERT INTO refunds (refund_id, invoice_id, amount, method, reason, date, staff_notes, staff_id)
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
            """,
            (
                refund.refund_id, refund.invoice_id, refund.amount, refund.method,
                refund.reason, refund.date, refund.staff_notes, refund.staff_id
            )
        )

    def load_refund(self, refund_id: str) -> Refund | None:
        row = self.postgres.execute_single(
            "SELECT * FROM refunds WHERE refund_id = %s",
            (refund_id,)
        )
        if row is None:
            return None
        return Refund.model_validate(row)

    def list_refunds(self, invoice_id: str | None = None) -> list[Refund]:
        if invoice_id is None:
            rows = self.postgres.execute("SELECT * FROM refunds ORDER BY date ASC")
        else:
            rows = self.postgres.execute(
                "SELECT * FROM refunds WHERE invoice_id = %s ORDER BY date ASC",
                (invoice_id,)
            )
        return [Refund.model_validate(row) for row in rows]

    # -------------------------------------------------------------------------
    # Listings
    # -------------------------------------------------------------------------

    def list_invoices(self) -> list[Invoice]:
        rows = self.postgres.execute(
            "SELECT invoice_id, data FROM invoices ORDER BY created_at DESC"
        )
        return [self._invoice_from_row(row) for row in rows]

    def list_work_orders(self) -> list[WorkOrder]:
        rows = self.postgres.execute(
            "SELECT data FROM work_orders ORDER BY created_at DESC"
        )
        return [WorkOrder.model_validate(row["data"]) for row in rows]

    def list_by_patient(self, patient_id: str) -> list[Invoice]:
        rows = self.postgres.execute(
            """
            SELECT invoice_id, data FROM invoices
            WHERE patient_id = %s
            ORDER BY created_at DESC
            """,
            (patient_id,)
        )
        return [self._invoice_from_row(row) for row in rows]

    def list_archived(self) -> list[Invoice]:
        rows = self.postgres.execute(
            """
            SELECT invoice_id, data FROM invoices
            WHERE is_archived
            ORDER BY created_at DESC
            """
        )
        return [self._invoice_from_row(row) for row in rows]

    # -------------------------------------------------------------------------
    # Sequences and audit
    # -------------------------------------------------------------------------

    def next_sequence(self, prefix: str) -> int:
        """Atomically increment and return the counter for a prefix."""
        return self.postgres.execute_scalar(
            """
            INSERT INTO order_sequences (prefix, value) VALUES (%s, 1)
            ON CONFLICT (prefix) DO UPDATE SET value = order_sequences.value + 1
            RETURNING value
            """,
            (prefix,)
        )

    def append_audit_entry(self, entry: AuditEntry) -> None:
        self.postgres.execute(
            """
            INSERT INTO audit_log (id, staff_id, entity_type, entity_id, action, changes, created_at)
            VALUES (%s, %s, %s, %s, %s, %s, %s)
            """,
            (
                entry.id, entry.staff_id, entry.entity_type, entry.entity_id,
                entry.action, entry.changes, entry.created_at
            )
        )

    def list_audit_entries(self, entity_type: str, entity_id: str) -> list[AuditEntry]:
        rows = self.postgres.execute(
            """
            SELECT id, staff_id, entity_type, entity_id, action, changes, created_at
            FROM audit_log
            WHERE entity_type = %s AND entity_id = %s
            ORDER BY created_at ASC
            """,
            (entity_type, entity_id)
        )
        return [AuditEntry.model_validate(row) for row in rows]


def connect_postgres_store(database_url: str | None = None, create_schema: bool = False) -> PostgresOrderStore:
    """
    Open a PostgresOrderStore.

    Args:
        database_url: DSN; read from Vault when None
        create_schema: Create missing tables first
    """
    if database_url is None:
        from clients.vault_client import get_database_url
        database_url = get_database_url()

    store = PostgresOrderStore(PostgresClient(database_url))
    if create_schema:
        store.create_schema()
    return store
