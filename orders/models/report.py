"""Sales report models."""

from datetime import date
from decimal import Decimal

from pydantic import BaseModel, Field, computed_field

from orders.models.invoice import Invoice
from orders.models.refund import Refund
from orders.money import Amount, ZERO


class BreakdownLine(BaseModel):
    """Amount and count for one payment method or invoice type."""

    amount: Amount = ZERO
    count: int = 0


class DailySalesSummary(BaseModel):
    """Sales and refunds for one local business day."""

    day: date
    total_sales: Amount = ZERO
    total_refunds: Amount = ZERO
    collected: Amount = ZERO
    invoice_count: int = 0
    refund_count: int = 0
    by_invoice_type: dict[str, BreakdownLine] = Field(default_factory=dict)
    by_payment_method: dict[str, BreakdownLine] = Field(default_factory=dict)

    @computed_field
    @property
    def net_sales(self) -> Decimal:
        return self.total_sales - self.total_refunds


class MonthlySalesSummary(BaseModel):
    """Daily summaries rolled up for a calendar month."""

    year: int
    month: int
    total_sales: Amount = ZERO
    total_refunds: Amount = ZERO
    collected: Amount = ZERO
    invoice_count: int = 0
    refund_count: int = 0
    days: list[DailySalesSummary] = Field(default_factory=list)

    @computed_field
    @property
    def net_sales(self) -> Decimal:
        return self.total_sales - self.total_refunds


class RangeSalesSummary(BaseModel):
    """Daily summaries for an inclusive date range, oldest day first."""

    start: date
    end: date
    total_sales: Amount = ZERO
    total_refunds: Amount = ZERO
    collected: Amount = ZERO
    invoice_count: int = 0
    refund_count: int = 0
    days: list[DailySalesSummary] = Field(default_factory=list)

    @computed_field
    @property
    def net_sales(self) -> Decimal:
        return self.total_sales - self.total_refunds


class DailyDetail(BaseModel):
    """One day's summary with the invoices and refunds behind it, newest first."""

    summary: DailySalesSummary
    invoices: list[Invoice] = Field(default_factory=list)
    refunds: list[Refund] = Field(default_factory=list)
