"""
Archive (soft delete) workflow.

Orders are never hard-deleted. Archiving hides the pair from active views,
refunds whatever was collected if no refund was made yet, and cannot be
undone by any operation here.
"""

import logging

from orders.audit import AuditLogger, AuditAction
from orders.config import ShopConfig
from orders.errors import AlreadyArchived, MissingField, NotFound
from orders.event_bus import EventBus
from orders.events import OrderArchived, RefundProcessed
from orders.lifecycle import check_invariants
from orders.models import ArchiveResult
from orders.money import ZERO
from orders.services.refund_service import RefundService
from orders.services.work_order_service import load_pair
from orders.store import OrderLocks, OrderStore, atomic
from utils.timezone import now_utc

logger = logging.getLogger(__name__)


class ArchiveService:
    """Service for archiving orders."""

    def __init__(
        self,
        store: OrderStore,
        audit: AuditLogger,
        event_bus: EventBus,
        refunds: RefundService,
        locks: OrderLocks,
        config: ShopConfig | None = None,
    ):
        self.store = store
        self.audit = audit
        self.event_bus = event_bus
        self.refunds = refunds
        self.locks = locks
        self.config = config or ShopConfig()

    def archive_order(self, work_order_id: str, reason: str) -> ArchiveResult:
        """
        Archive a work order and its invoice.

        If the invoice has a deposit and was neither refunded nor exchanged,
        the full deposit is refunded with the configured method and reason.
        Both entities get the same archived_at and archive_reason.

        Args:
            work_order_id: Work order ID
            reason: Why the order is being archived

        Returns:
            ArchiveResult with the archived entities and the auto-refund ID, if any

        Raises:
            NotFound: If the work order (or its invoice) does not exist
            AlreadyArchived: If it was archived before (no second refund)
            MissingField: If reason is blank
        """
        work_order = self.store.load_work_order(work_order_id)
        if work_order is None:
            raise NotFound("work_order", work_order_id)

        lock_key = work_order.invoice_id or work_order.work_order_id
        with self.locks.hold(lock_key):
            with atomic(self.store, "archive_order", lock_key):
                work_order = self.store.load_work_order(work_order_id)
                if work_order is None:
                    raise NotFound("work_order", work_order_id)
                if work_order.is_archived:
                    raise AlreadyArchived(f"Work order {work_order_id} is already archived")
                if not reason or not reason.strip():
                    raise MissingField("reason")

                now = now_utc()
                invoice = None
                refund = None

                if work_order.invoice_id is not None:
                    pair = load_pair(self.store, work_order.invoice_id)
                    invoice, work_order = pair.invoice, pair.work_order

                    if invoice.deposit > ZERO and not invoice.is_refunded and not invoice.is_exchanged:
                        refund = self.refunds.apply_refund(
                            invoice,
                            invoice.deposit,
                            self.config.auto_refund_method,
                            self.config.auto_refund_reason,
                            None,
                            now,
                        )

                    invoice.is_archived = True
                    invoice.archived_at = now
                    invoice.archive_reason = reason.strip()

                work_order.is_archived = True
                work_order.archived_at = now
                work_order.archive_reason = reason.strip()
                work_order.updated_at = now

                archived = {
                    "archived": {
                        "reason": reason.strip(),
                        "refund_id": refund.refund_id if refund else None,
                    }
                }

                if invoice is not None:
                    check_invariants(invoice, work_order)
                    self.store.save_order(pair)
                    self.audit.log_change(
                        entity_type="invoice",
                        entity_id=invoice.invoice_id,
                        action=AuditAction.ARCHIVE,
                        changes=archived,
                    )
                else:
                    self.store.save_work_order(work_order)

                self.audit.log_change(
                    entity_type="work_order",
                    entity_id=work_order_id,
                    action=AuditAction.ARCHIVE,
                    changes=archived,
                )

            if refund is not None:
                logger.info(
                    f"Work order {work_order_id} archived with automatic refund "
                    f"{refund.refund_id} of {refund.amount}"
                )
            else:
                logger.info(f"Work order {work_order_id} archived")

            self.event_bus.publish(OrderArchived.create(work_order=work_order, invoice=invoice, refund=refund))
            if refund is not None:
                self.event_bus.publish(RefundProcessed.create(refund=refund, invoice=invoice))

        return ArchiveResult(
            work_order=work_order,
            invoice=invoice,
            refund_id=refund.refund_id if refund else None,
        )
