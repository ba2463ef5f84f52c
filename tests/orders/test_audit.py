"""Tests for the audit trail."""

from datetime import timedelta

from orders.audit import AuditAction, AuditLogger, compute_changes
from utils.staff_context import SYSTEM_STAFF_ID
from utils.timezone import now_utc


class TestComputeChanges:

    def test_reports_changed_fields(self):
        changes = compute_changes({"total": "90.000", "status": "saved"}, {"total": "80.000", "status": "saved"})
        assert changes == {"total": {"old": "90.000", "new": "80.000"}}

    def test_added_and_removed_keys(self):
        changes = compute_changes({"a": 1}, {"b": 2})
        assert changes == {"a": {"old": 1, "new": None}, "b": {"old": None, "new": 2}}

    def test_default_excludes_timestamps_and_history(self):
        old = {"updated_at": "t1", "last_edited_at": "t1", "edit_history": [], "discount": "0.000"}
        new = {"updated_at": "t2", "last_edited_at": "t2", "edit_history": [{}], "discount": "0.000"}
        assert compute_changes(old, new) == {}

    def test_custom_exclude(self):
        assert compute_changes({"a": 1, "b": 1}, {"a": 2, "b": 2}, exclude_fields={"a"}) == {
            "b": {"old": 1, "new": 2}
        }


class TestAuditLogger:

    def test_defaults_to_system_staff(self, store):
        audit = AuditLogger(store)
        entry = audit.log_change("invoice", "IN-1", AuditAction.UPDATE, {"x": {"old": 1, "new": 2}})
        assert entry.staff_id == SYSTEM_STAFF_ID

    def test_uses_staff_context(self, store, as_staff):
        audit = AuditLogger(store)
        entry = audit.log_change("invoice", "IN-1", AuditAction.CREATE, {"created": {}})
        assert entry.staff_id == as_staff
        assert entry.action == "create"

    def test_explicit_staff_wins(self, store, as_staff):
        audit = AuditLogger(store)
        entry = audit.log_change("refund", "RF-1", AuditAction.CREATE, {}, staff_id="manager")
        assert entry.staff_id == "manager"

    def test_history_newest_first_and_scoped(self, store, monkeypatch):
        start = now_utc()
        ticks = iter([start, start + timedelta(seconds=1), start + timedelta(seconds=2)])
        monkeypatch.setattr("orders.audit.now_utc", lambda: next(ticks))

        audit = AuditLogger(store)
        first = audit.log_change("invoice", "IN-1", AuditAction.CREATE, {"created": {}})
        second = audit.log_change("invoice", "IN-1", AuditAction.UPDATE, {"x": {}})
        audit.log_change("invoice", "IN-2", AuditAction.CREATE, {"created": {}})

        history = audit.get_entity_history("invoice", "IN-1")
        assert [e.id for e in history] == [second.id, first.id]

    def test_rolled_back_transaction_leaves_no_entry(self, store):
        audit = AuditLogger(store)
        try:
            with store.transaction():
                audit.log_change("invoice", "IN-1", AuditAction.UPDATE, {})
                raise RuntimeError("abort")
        except RuntimeError:
            pass

        assert audit.get_entity_history("invoice", "IN-1") == []
