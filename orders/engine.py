"""
Wiring for the order lifecycle engine.

All services share one store, audit logger, event bus and lock registry.
The UI builds one engine per process and calls the services on it.
"""

import logging
from dataclasses import dataclass

from orders.audit import AuditLogger
from orders.config import ShopConfig
from orders.event_bus import EventBus
from orders.events import OrderSaved, RefundProcessed
from orders.handlers.print_handler import Printer, handle_print_request
from orders.services.archive_service import ArchiveService
from orders.services.exchange_service import ExchangeService
from orders.services.invoice_service import InvoiceService
from orders.services.ledger_service import PaymentLedger
from orders.services.refund_service import RefundService
from orders.services.report_service import ReportService
from orders.services.work_order_service import WorkOrderService
from orders.store import OrderLocks, OrderStore

logger = logging.getLogger(__name__)


@dataclass
class Engine:
    """Services sharing one store and one set of per-order locks."""
    store: OrderStore
    config: ShopConfig
    event_bus: EventBus
    audit: AuditLogger
    locks: OrderLocks
    ledger: PaymentLedger
    invoices: InvoiceService
    work_orders: WorkOrderService
    refunds: RefundService
    exchanges: ExchangeService
    archive: ArchiveService
    reports: ReportService


def build_engine(
    store: OrderStore,
    config: ShopConfig | None = None,
    event_bus: EventBus | None = None,
    printer: Printer | None = None,
) -> Engine:
    """
    Build every service over one store.

    Args:
        store: Persistence collaborator
        config: Shop settings (defaults if None)
        event_bus: Bus to publish on (a new one if None)
        printer: Optional print collaborator; subscribed to OrderSaved and RefundProcessed

    Returns:
        Engine with all services wired
    """
    config = config or ShopConfig()
    event_bus = event_bus or EventBus()
    audit = AuditLogger(store)
    locks = OrderLocks()

    ledger = PaymentLedger(store, audit, event_bus, locks)
    refunds = RefundService(store, audit, event_bus, locks, config)

    if printer is not None:
        handler = handle_print_request(printer)
        event_bus.subscribe(OrderSaved, handler)
        event_bus.subscribe(RefundProcessed, handler)

    logger.info(f"Order engine ready ({type(store).__name__}, {config.currency_code})")

    return Engine(
        store=store,
        config=config,
        event_bus=event_bus,
        audit=audit,
        locks=locks,
        ledger=ledger,
        invoices=InvoiceService(store, audit, event_bus, ledger, locks, config),
        work_orders=WorkOrderService(store, audit, event_bus, locks, config),
        refunds=refunds,
        exchanges=ExchangeService(store, audit, event_bus, locks, config),
        archive=ArchiveService(store, audit, event_bus, refunds, locks, config),
        reports=ReportService(store, config),
    )
