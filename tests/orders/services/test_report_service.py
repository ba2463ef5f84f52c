"""Tests for daily and monthly sales summaries."""

from datetime import date, datetime, timezone
from decimal import Decimal
from uuid import uuid4

import pytest

from orders.models import Invoice, InvoiceStatus, InvoiceType, PaymentEntry, PricedComponents, Refund
from orders.services.report_service import ReportService
from utils.timezone import to_local


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


def put_invoice(store, invoice_id, created_at, price="50.000", invoice_type=InvoiceType.GLASSES, payments=()):
    """Store an invoice with a fixed creation time and its ledger entries."""
    store.save_invoice(Invoice(
        invoice_id=invoice_id,
        invoice_type=invoice_type,
        status=InvoiceStatus.SAVED,
        components=PricedComponents(frame_price=price),
        created_at=created_at,
    ))
    entries = [
        PaymentEntry(entry_id=uuid4(), invoice_id=invoice_id, date=paid_at, amount=amount, method=method)
        for paid_at, amount, method in payments
    ]
    if entries:
        store.append_payment_entries(invoice_id, entries)


def put_refund(store, refund_id, invoice_id, amount, when):
    store.save_refund(Refund(
        refund_id=refund_id, invoice_id=invoice_id, amount=amount,
        method="cash", reason="Cancelled", date=when,
    ))


@pytest.fixture
def reports(store, config):
    return ReportService(store, config)


class TestDailySummary:

    def test_totals_and_breakdowns(self, store, reports):
        put_invoice(store, "IN-1", utc(2026, 3, 11, 8), price="50.000", payments=[
            (utc(2026, 3, 11, 8), "20.000", "cash"),
            (utc(2026, 3, 11, 9), "30.000", "knet"),
        ])
        put_invoice(store, "IN-2", utc(2026, 3, 11, 10), price="15.000", invoice_type=InvoiceType.EXAM, payments=[
            (utc(2026, 3, 11, 10), "15.000", "cash"),
        ])
        put_refund(store, "RF-1", "IN-2", "15.000", utc(2026, 3, 11, 12))

        summary = reports.daily_summary(date(2026, 3, 11))

        assert summary.total_sales == Decimal("65.000")
        assert summary.invoice_count == 2
        assert summary.collected == Decimal("65.000")
        assert summary.total_refunds == Decimal("15.000")
        assert summary.refund_count == 1
        assert summary.net_sales == Decimal("50.000")
        assert summary.by_payment_method["cash"].amount == Decimal("35.000")
        assert summary.by_payment_method["cash"].count == 2
        assert summary.by_payment_method["knet"].count == 1
        assert summary.by_invoice_type["glasses"].amount == Decimal("50.000")
        assert summary.by_invoice_type["exam"].count == 1

    def test_grouped_by_local_business_day(self, store, reports):
        # 22:30 UTC is 01:30 the next morning in Kuwait (UTC+3)
        put_invoice(store, "IN-late", utc(2026, 3, 10, 22, 30))

        assert reports.daily_summary(date(2026, 3, 10)).invoice_count == 0
        assert reports.daily_summary(date(2026, 3, 11)).invoice_count == 1

    def test_payments_counted_on_the_day_collected(self, store, reports):
        put_invoice(store, "IN-1", utc(2026, 3, 11, 8), payments=[
            (utc(2026, 3, 11, 8), "10.000", "cash"),
            (utc(2026, 3, 14, 8), "40.000", "cash"),
        ])

        assert reports.daily_summary(date(2026, 3, 11)).collected == Decimal("10.000")
        assert reports.daily_summary(date(2026, 3, 14)).collected == Decimal("40.000")
        assert reports.daily_summary(date(2026, 3, 14)).total_sales == Decimal("0.000")

    def test_empty_day(self, reports):
        summary = reports.daily_summary(date(2026, 3, 11))
        assert summary.total_sales == Decimal("0.000")
        assert summary.by_payment_method == {}

    def test_archived_orders_still_count_as_sales(self, engine, make_order):
        pair = make_order(frame="30.000", lens="20.000", deposit="25.000")
        engine.archive.archive_order(pair.work_order.work_order_id, "Cancelled")

        local_day = to_local(pair.invoice.created_at, engine.config.timezone).date()
        summary = engine.reports.daily_summary(local_day)

        assert summary.total_sales == Decimal("50.000")
        assert summary.total_refunds == Decimal("25.000")
        assert summary.net_sales == Decimal("25.000")


class TestMonthlySummary:

    def test_rolls_up_days(self, store, reports):
        put_invoice(store, "IN-1", utc(2026, 2, 3, 9), price="40.000")
        put_invoice(store, "IN-2", utc(2026, 2, 27, 9), price="60.000")
        put_invoice(store, "IN-3", utc(2026, 3, 1, 9), price="99.000")
        put_refund(store, "RF-1", "IN-1", "10.000", utc(2026, 2, 4, 9))

        summary = reports.monthly_summary(2026, 2)

        assert len(summary.days) == 28
        assert summary.total_sales == Decimal("100.000")
        assert summary.invoice_count == 2
        assert summary.total_refunds == Decimal("10.000")
        assert summary.net_sales == Decimal("90.000")
        assert summary.days[2].total_sales == Decimal("40.000")

    def test_leap_february(self, reports):
        assert len(reports.monthly_summary(2028, 2).days) == 29

    @pytest.mark.parametrize("month", [0, 13])
    def test_invalid_month(self, reports, month):
        with pytest.raises(ValueError):
            reports.monthly_summary(2026, month)


class TestRangeSummary:

    def test_days_in_order_with_totals(self, store, reports):
        put_invoice(store, "IN-1", utc(2026, 3, 9, 9), price="40.000")
        put_invoice(store, "IN-2", utc(2026, 3, 11, 9), price="60.000")
        put_invoice(store, "IN-3", utc(2026, 3, 12, 9), price="99.000")
        put_refund(store, "RF-1", "IN-2", "10.000", utc(2026, 3, 11, 10))

        summary = reports.range_summary(date(2026, 3, 9), date(2026, 3, 11))

        assert [d.day for d in summary.days] == [date(2026, 3, 9), date(2026, 3, 10), date(2026, 3, 11)]
        assert [d.total_sales for d in summary.days] == [
            Decimal("40.000"), Decimal("0.000"), Decimal("60.000"),
        ]
        assert summary.total_sales == Decimal("100.000")
        assert summary.net_sales == Decimal("90.000")
        assert summary.invoice_count == 2

    def test_single_day_matches_daily_summary(self, store, reports):
        put_invoice(store, "IN-1", utc(2026, 3, 11, 9), payments=[(utc(2026, 3, 11, 9), "20.000", "cash")])

        summary = reports.range_summary(date(2026, 3, 11), date(2026, 3, 11))

        assert summary.days == [reports.daily_summary(date(2026, 3, 11))]
        assert summary.collected == Decimal("20.000")

    def test_end_before_start(self, reports):
        with pytest.raises(ValueError):
            reports.range_summary(date(2026, 3, 11), date(2026, 3, 10))


class TestDailyDetail:

    def test_lists_day_records_newest_first(self, store, reports):
        put_invoice(store, "IN-1", utc(2026, 3, 11, 8))
        put_invoice(store, "IN-2", utc(2026, 3, 11, 12))
        put_invoice(store, "IN-3", utc(2026, 3, 12, 9))
        put_refund(store, "RF-1", "IN-1", "5.000", utc(2026, 3, 11, 9))
        put_refund(store, "RF-2", "IN-2", "5.000", utc(2026, 3, 11, 13))
        put_refund(store, "RF-3", "IN-3", "5.000", utc(2026, 3, 12, 10))

        detail = reports.daily_detail(date(2026, 3, 11))

        assert [inv.invoice_id for inv in detail.invoices] == ["IN-2", "IN-1"]
        assert [r.refund_id for r in detail.refunds] == ["RF-2", "RF-1"]
        assert detail.summary == reports.daily_summary(date(2026, 3, 11))

    def test_uses_local_day(self, store, reports):
        put_invoice(store, "IN-late", utc(2026, 3, 11, 22, 30))

        assert reports.daily_detail(date(2026, 3, 11)).invoices == []
        assert [i.invoice_id for i in reports.daily_detail(date(2026, 3, 12)).invoices] == ["IN-late"]
