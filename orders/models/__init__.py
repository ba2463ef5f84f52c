"""Order domain models."""

from orders.models.components import ContactLensItem, PricedComponents
from orders.models.ledger import PaymentCreate, PaymentEntry
from orders.models.invoice import (
    EditRecord, Invoice, InvoiceStatus, InvoiceType, OrderCreate, OrderEdit, OrderStage,
)
from orders.models.work_order import ArchiveResult, OrderPair, WorkOrder, WorkOrderStatus
from orders.models.refund import Refund
from orders.models.report import (
    BreakdownLine, DailyDetail, DailySalesSummary, MonthlySalesSummary, RangeSalesSummary,
)

__all__ = [
    # Components
    "ContactLensItem", "PricedComponents",
    # Ledger
    "PaymentCreate", "PaymentEntry",
    # Invoice
    "EditRecord", "Invoice", "InvoiceStatus", "InvoiceType", "OrderCreate", "OrderEdit", "OrderStage",
    # WorkOrder
    "ArchiveResult", "OrderPair", "WorkOrder", "WorkOrderStatus",
    # Refund
    "Refund",
    # Reports
    "BreakdownLine", "DailyDetail", "DailySalesSummary", "MonthlySalesSummary", "RangeSalesSummary",
]
