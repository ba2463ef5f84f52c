"""Tests for engine wiring."""

from orders.config import ShopConfig
from orders.engine import build_engine
from orders.event_bus import EventBus
from orders.events import OrderSaved, RefundProcessed
from orders.models import OrderCreate


class TestBuildEngine:

    def test_services_share_collaborators(self, store):
        engine = build_engine(store)

        for service in (
            engine.invoices, engine.ledger, engine.work_orders, engine.refunds, engine.exchanges, engine.archive,
        ):
            assert service.store is store
            assert service.locks is engine.locks
            assert service.event_bus is engine.event_bus
        assert engine.invoices.ledger is engine.ledger
        assert engine.archive.refunds is engine.refunds
        assert engine.reports.store is store

    def test_defaults(self, store):
        engine = build_engine(store)
        assert engine.config == ShopConfig()
        assert isinstance(engine.event_bus, EventBus)

    def test_custom_config_reaches_services(self, store):
        config = ShopConfig(invoice_prefix="INV", allow_pickup_with_balance=False)
        engine = build_engine(store, config=config)

        assert engine.invoices.config is config
        assert engine.archive.config is config
        assert engine.invoices.start_draft(OrderCreate()).invoice_id.startswith("INV-")

    def test_printer_subscribed_only_when_given(self, store, printer):
        bus = EventBus()
        build_engine(store, event_bus=bus)
        saved = OrderSaved.create(invoice=None, work_order=None)
        assert bus.handlers_for(saved) == []

        build_engine(store, event_bus=bus, printer=printer)
        assert len(bus.handlers_for(saved)) == 1
        assert len(bus.handlers_for(RefundProcessed.create(refund=None, invoice=None))) == 1
