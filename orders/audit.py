"""
Universal audit trail for invoice, work order and refund changes.

Every mutation is logged here. The audit log is:
- Append-only (entries never modified or deleted)
- Staff-attributed (who made the change, 'system' for automatic actions)
- Detailed (captures old and new values)

Entries are written through the order store inside the operation's
transaction, so a rolled-back operation leaves no audit row behind.
"""

from datetime import datetime
from enum import Enum
from typing import Any, TYPE_CHECKING
from uuid import UUID, uuid4

from pydantic import BaseModel

from utils.staff_context import current_staff_id_or_system
from utils.timezone import now_utc

if TYPE_CHECKING:
    from orders.store import OrderStore


class AuditAction(Enum):
    """Type of change made to an entity."""

    CREATE = "create"
    UPDATE = "update"
    ARCHIVE = "archive"
    EXCHANGE = "exchange"


class AuditEntry(BaseModel):
    """One audit row."""

    id: UUID
    staff_id: str
    entity_type: str
    entity_id: str
    action: str
    changes: dict[str, Any]
    created_at: datetime


def compute_changes(
    old: dict[str, Any],
    new: dict[str, Any],
    exclude_fields: set[str] | None = None
) -> dict[str, dict[str, Any]]:
    """
    Compute changes between two entity states.

    Args:
        old: Previous state of entity
        new: New state of entity
        exclude_fields: Fields to ignore (defaults to timestamps and edit history)

    Returns:
        Dict of {field: {"old": old_val, "new": new_val}} for changed fields.
        Empty dict if no changes.
    """
    exclude = exclude_fields or {"updated_at", "last_edited_at", "edit_history"}
    changes = {}

    all_keys = set(old.keys()) | set(new.keys())
    for key in sorted(all_keys):
        if key in exclude:
            continue

        old_val = old.get(key)
        new_val = new.get(key)

        if old_val != new_val:
            changes[key] = {"old": old_val, "new": new_val}

    return changes


class AuditLogger:
    """
    Audit trail writer.

    Always pass model_dump(mode="json") output so amounts, UUIDs and
    datetimes are stored as JSON-compatible strings.

    Usage:
        audit = AuditLogger(store)

        audit.log_change(
            entity_type="invoice",
            entity_id=invoice.invoice_id,
            action=AuditAction.UPDATE,
            changes=compute_changes(
                old.model_dump(mode="json"),
                new.model_dump(mode="json"),
            ),
        )

        history = audit.get_entity_history("invoice", invoice.invoice_id)
    """

    def __init__(self, store: "OrderStore"):
        self.store = store

    def log_change(
        self,
        entity_type: str,
        entity_id: str,
        action: AuditAction,
        changes: dict[str, Any],
        staff_id: str | None = None
    ) -> AuditEntry:
        """
        Log an entity change.

        Args:
            entity_type: "invoice", "work_order" or "refund"
            entity_id: ID of the entity
            action: The action performed
            changes: The changes made (format depends on action)
            staff_id: Staff member who made change (defaults to current context)

        Changes format by action:
        - CREATE: {"created": {full entity data}}
        - UPDATE: {"field": {"old": old_val, "new": new_val}, ...}
        - ARCHIVE: {"archived": {"reason": ..., "refund_id": ...}}
        """
        entry = AuditEntry(
            id=uuid4(),
            staff_id=staff_id or current_staff_id_or_system(),
            entity_type=entity_type,
            entity_id=entity_id,
            action=action.value,
            changes=changes,
            created_at=now_utc(),
        )
        self.store.append_audit_entry(entry)
        return entry

    def get_entity_history(self, entity_type: str, entity_id: str) -> list[AuditEntry]:
        """
        Get full audit history for an entity.

        Returns:
            List of audit entries, newest first.
        """
        entries = sorted(self.store.list_audit_entries(entity_type, entity_id), key=lambda e: e.created_at)
        return entries[::-1]
