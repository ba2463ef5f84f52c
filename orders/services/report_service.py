"""
Sales reporting.

Days are the shop's local business days (ShopConfig.timezone); everything
stored is UTC. Archived orders still count as sales; their automatic
refunds count as refunds, so net sales reflect the cancellation.
"""

import calendar
import logging
from datetime import date, timedelta

from orders.config import ShopConfig
from orders.models import (
    BreakdownLine, DailyDetail, DailySalesSummary, Invoice, MonthlySalesSummary, RangeSalesSummary, Refund,
)
from orders.money import add
from orders.store import OrderStore
from utils.timezone import local_day_bounds

logger = logging.getLogger(__name__)


def _bump(breakdown: dict[str, BreakdownLine], key: str, amount) -> None:
    line = breakdown.setdefault(key, BreakdownLine())
    line.amount = add(line.amount, amount)
    line.count += 1


def summarize_day(
    day: date,
    invoices: list[Invoice],
    refunds: list[Refund],
    tz_name: str
) -> DailySalesSummary:
    """Build one day's summary from already loaded invoices and refunds."""
    start, end = local_day_bounds(day, tz_name)
    summary = DailySalesSummary(day=day)

    for invoice in invoices:
        if start <= invoice.created_at < end:
            summary.total_sales = add(summary.total_sales, invoice.total)
            summary.invoice_count += 1
            _bump(summary.by_invoice_type, invoice.invoice_type.value, invoice.total)

        for entry in invoice.payments:
            if start <= entry.date < end:
                summary.collected = add(summary.collected, entry.amount)
                _bump(summary.by_payment_method, entry.method, entry.amount)

    for refund in refunds:
        if start <= refund.date < end:
            summary.total_refunds = add(summary.total_refunds, refund.amount)
            summary.refund_count += 1

    return summary


def _roll_up(summary: MonthlySalesSummary | RangeSalesSummary, daily: DailySalesSummary) -> None:
    summary.days.append(daily)
    summary.total_sales = add(summary.total_sales, daily.total_sales)
    summary.total_refunds = add(summary.total_refunds, daily.total_refunds)
    summary.collected = add(summary.collected, daily.collected)
    summary.invoice_count += daily.invoice_count
    summary.refund_count += daily.refund_count


class ReportService:
    """Read-only sales summaries."""

    def __init__(self, store: OrderStore, config: ShopConfig | None = None):
        self.store = store
        self.config = config or ShopConfig()

    def daily_summary(self, day: date) -> DailySalesSummary:
        """
        Sales, refunds and collections for one local day.

        Args:
            day: Local calendar date in the shop's timezone
        """
        return summarize_day(
            day,
            self.store.list_invoices(),
            self.store.list_refunds(),
            self.config.timezone,
        )

    def monthly_summary(self, year: int, month: int) -> MonthlySalesSummary:
        """
        Daily summaries for a calendar month, with month totals.

        Raises:
            ValueError: If month is not 1-12
        """
        if not 1 <= month <= 12:
            raise ValueError(f"Invalid month: {month}")

        invoices = self.store.list_invoices()
        refunds = self.store.list_refunds()
        _, days_in_month = calendar.monthrange(year, month)

        summary = MonthlySalesSummary(year=year, month=month)
        for day_number in range(1, days_in_month + 1):
            daily = summarize_day(date(year, month, day_number), invoices, refunds, self.config.timezone)
            _roll_up(summary, daily)

        logger.debug(
            f"Monthly summary {year}-{month:02d}: {summary.invoice_count} invoices, "
            f"net {summary.net_sales}"
        )
        return summary

    def range_summary(self, start: date, end: date) -> RangeSalesSummary:
        """
        Daily summaries from start to end inclusive, for comparing days.

        Raises:
            ValueError: If end is before start
        """
        if end < start:
            raise ValueError(f"Range ends before it starts: {start} to {end}")

        invoices = self.store.list_invoices()
        refunds = self.store.list_refunds()

        summary = RangeSalesSummary(start=start, end=end)
        day = start
        while day <= end:
            _roll_up(summary, summarize_day(day, invoices, refunds, self.config.timezone))
            day += timedelta(days=1)

        return summary

    def daily_detail(self, day: date) -> DailyDetail:
        """The day's summary plus the invoices saved and refunds made that day, newest first."""
        invoices = self.store.list_invoices()
        refunds = self.store.list_refunds()
        start, end = local_day_bounds(day, self.config.timezone)

        day_invoices = [inv for inv in invoices if start <= inv.created_at < end]
        day_refunds = [r for r in refunds if start <= r.date < end]
        day_invoices.sort(key=lambda inv: inv.created_at, reverse=True)
        day_refunds.sort(key=lambda r: r.date, reverse=True)

        return DailyDetail(
            summary=summarize_day(day, invoices, refunds, self.config.timezone),
            invoices=day_invoices,
            refunds=day_refunds,
        )
