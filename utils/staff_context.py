"""Propagate the acting staff member through the call stack using contextvars."""

from contextvars import ContextVar
from contextlib import contextmanager

SYSTEM_STAFF_ID = "system"

_current_staff_id: ContextVar[str | None] = ContextVar("current_staff_id", default=None)


def get_current_staff_id() -> str:
    """
    Get current staff ID from context.

    Raises RuntimeError if no staff context is set. Use this in code paths
    that must be attributed to a person (manual refunds, edits from the UI).
    """
    staff_id = _current_staff_id.get()
    if staff_id is None:
        raise RuntimeError(
            "No staff context set. This usually means you're calling "
            "staff-attributed code outside of a UI request."
        )
    return staff_id


def current_staff_id_or_system() -> str:
    """Staff ID from context, or 'system' for automatic actions."""
    return _current_staff_id.get() or SYSTEM_STAFF_ID


def set_current_staff_id(staff_id: str) -> None:
    """Set current staff ID in context."""
    _current_staff_id.set(staff_id)


def clear_current_staff_id() -> None:
    """
    Clear staff context.

    Must be called in finally block to prevent context leakage.
    """
    _current_staff_id.set(None)


@contextmanager
def staff_context(staff_id: str):
    """
    Context manager for temporarily setting the acting staff member.

    Example:
        with staff_context("counter-1"):
            refund_service.process_refund(...)
    """
    previous = _current_staff_id.get()
    set_current_staff_id(staff_id)
    try:
        yield
    finally:
        if previous is None:
            clear_current_staff_id()
        else:
            set_current_staff_id(previous)
