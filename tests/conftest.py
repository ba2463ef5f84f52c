"""Shared test fixtures for the order engine test suite."""

import os
from decimal import Decimal
from pathlib import Path
from typing import Callable
from unittest.mock import Mock

import pytest
from dotenv import load_dotenv

# Load .env file BEFORE any other imports that might use env vars
load_dotenv(Path(__file__).parent.parent / ".env", override=True)

# Reset vault client singleton to pick up env vars
import clients.vault_client as vault_module
vault_module._vault_client_instance = None
vault_module._secret_cache.clear()

from orders.config import ShopConfig
from orders.engine import build_engine
from orders.event_bus import EventBus
from orders.models import OrderCreate, PaymentCreate, PricedComponents
from orders.stores.memory import InMemoryOrderStore
from utils.staff_context import clear_current_staff_id, staff_context


# =============================================================================
# STAFF CONTEXT FIXTURES
# =============================================================================

TEST_STAFF_ID = "counter-1"


@pytest.fixture(autouse=True)
def reset_staff_context():
    """Ensure clean staff context before and after each test."""
    clear_current_staff_id()
    yield
    clear_current_staff_id()


@pytest.fixture
def as_staff():
    """Run the test as the counter staff member."""
    with staff_context(TEST_STAFF_ID):
        yield TEST_STAFF_ID


# =============================================================================
# STORE AND ENGINE FIXTURES
# =============================================================================


class FailingStore(InMemoryOrderStore):
    """
    In-memory store whose writes can be switched to fail.

    Set fail_on to a method name ("save_order", "append_payment_entries",
    "save_refund", ...) to make that call raise after the earlier writes
    in the same transaction have happened. before_fail, if set, runs just
    before the failure is raised.
    """

    def __init__(self):
        super().__init__()
        self.fail_on: str | None = None
        self.before_fail: Callable[[], None] | None = None

    def _maybe_fail(self, name: str) -> None:
        if self.fail_on == name:
            if self.before_fail is not None:
                self.before_fail()
            raise ConnectionError(f"database unavailable during {name}")

    def save_order(self, pair):
        super().save_order(pair)
        self._maybe_fail("save_order")

    def append_payment_entries(self, invoice_id, entries):
        super().append_payment_entries(invoice_id, entries)
        self._maybe_fail("append_payment_entries")

    def save_refund(self, refund):
        super().save_refund(refund)
        self._maybe_fail("save_refund")

    def append_audit_entry(self, entry):
        super().append_audit_entry(entry)
        self._maybe_fail("append_audit_entry")


@pytest.fixture
def config():
    return ShopConfig()


@pytest.fixture
def store():
    return InMemoryOrderStore()


@pytest.fixture
def failing_store():
    return FailingStore()


@pytest.fixture
def event_bus():
    return EventBus()


@pytest.fixture
def published(event_bus):
    """Every event published on the bus, in order."""
    events = []
    event_bus.subscribe("LifecycleEvent", events.append)
    return events


@pytest.fixture
def printer():
    """Print collaborator stub - external boundary."""
    return Mock()


@pytest.fixture
def engine(store, config, event_bus):
    return build_engine(store, config=config, event_bus=event_bus)


@pytest.fixture
def failing_engine(failing_store, config, event_bus):
    return build_engine(failing_store, config=config, event_bus=event_bus)


# =============================================================================
# ORDER FACTORIES
# =============================================================================


def glasses_order(frame="30.000", lens="20.000", discount="0", **kwargs) -> OrderCreate:
    """Glasses order data with frame and lens prices."""
    return OrderCreate(
        patient_id=kwargs.pop("patient_id", "P-100"),
        patient_name=kwargs.pop("patient_name", "Test Patient"),
        components=PricedComponents(frame_price=frame, lens_price=lens, **kwargs),
        discount=discount,
    )


@pytest.fixture
def make_order(engine):
    """
    Factory that saves an order and returns the pair.

    Usage:
        pair = make_order(frame="60.000", lens="40.000", discount="10.000")
        pair = make_order(deposit="25.000")
    """

    def _make(deposit: str | Decimal | None = None, method: str = "cash", **kwargs):
        draft = engine.invoices.start_draft(glasses_order(**kwargs))
        deposits = [PaymentCreate(amount=deposit, method=method)] if deposit is not None else None
        return engine.invoices.save(draft, deposit_payments=deposits)

    return _make


# =============================================================================
# DATABASE FIXTURES
# =============================================================================


@pytest.fixture(scope="session")
def db():
    """
    Session-scoped PostgresClient for a scratch database.

    Skipped unless ORDERS_TEST_DATABASE_URL is set (e.g. in .env).
    """
    database_url = os.getenv("ORDERS_TEST_DATABASE_URL")
    if not database_url:
        pytest.skip("ORDERS_TEST_DATABASE_URL not set")

    from clients.postgres_client import PostgresClient

    client = PostgresClient(database_url)
    yield client
    client.close()


@pytest.fixture
def pg_store(db):
    """PostgresOrderStore over freshly truncated tables."""
    from orders.stores.postgres import PostgresOrderStore

    store = PostgresOrderStore(db)
    store.create_schema()
    db.execute("TRUNCATE payment_entries, refunds, work_orders, invoices, order_sequences, audit_log")
    return store
