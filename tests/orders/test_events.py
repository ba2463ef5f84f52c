"""Tests for lifecycle event objects."""

import dataclasses
from datetime import timezone

import pytest

from orders.events import (
    InvoiceEdited, InvoicePaid, LifecycleEvent, OrderArchived, OrderEvent, OrderPickedUp,
    OrderSaved, PaymentEvent, PaymentRecorded, RefundEvent, RefundProcessed,
)


class TestEventBase:

    def test_each_event_gets_unique_id(self):
        a = InvoicePaid.create(invoice=None)
        b = InvoicePaid.create(invoice=None)
        assert a.event_id != b.event_id

    def test_occurred_at_is_utc(self):
        event = OrderPickedUp.create(invoice=None)
        assert event.occurred_at.tzinfo == timezone.utc

    def test_events_are_frozen(self):
        event = OrderPickedUp.create(invoice=None)
        with pytest.raises(dataclasses.FrozenInstanceError):
            event.invoice = "other"


class TestCategories:

    @pytest.mark.parametrize("event_cls", [OrderSaved, InvoiceEdited, OrderPickedUp, OrderArchived])
    def test_order_events(self, event_cls):
        assert issubclass(event_cls, OrderEvent)
        assert issubclass(event_cls, LifecycleEvent)

    @pytest.mark.parametrize("event_cls", [PaymentRecorded, InvoicePaid])
    def test_payment_events(self, event_cls):
        assert issubclass(event_cls, PaymentEvent)

    def test_refund_events(self):
        assert issubclass(RefundProcessed, RefundEvent)


class TestFactories:

    def test_payment_recorded_freezes_entries(self):
        entries = ["e1", "e2"]
        event = PaymentRecorded.create(invoice="inv", entries=entries)
        entries.append("e3")

        assert event.entries == ("e1", "e2")

    def test_order_archived_refund_optional(self):
        event = OrderArchived.create(work_order="wo", invoice="inv")
        assert event.refund is None

    def test_order_saved_carries_both_snapshots(self):
        event = OrderSaved.create(invoice="inv", work_order="wo")
        assert (event.invoice, event.work_order) == ("inv", "wo")

    def test_snapshots_detached_from_caller(self, make_order, published):
        pair = make_order(deposit="10.000")
        saved = next(e for e in published if isinstance(e, OrderSaved))
        recorded = next(e for e in published if isinstance(e, PaymentRecorded))

        pair.invoice.details["frame_brand"] = "changed after publish"
        pair.work_order.details["lab"] = "changed after publish"

        assert saved.invoice == recorded.invoice
        assert saved.invoice is not pair.invoice
        assert "frame_brand" not in saved.invoice.details
        assert "lab" not in saved.work_order.details
