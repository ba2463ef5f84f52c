"""Tests for utils/staff_context.py - staff attribution via contextvars."""

import threading

import pytest

from utils.staff_context import (
    SYSTEM_STAFF_ID,
    clear_current_staff_id,
    current_staff_id_or_system,
    get_current_staff_id,
    set_current_staff_id,
    staff_context,
)


class TestGetCurrentStaffId:

    def test_raises_without_set(self):
        """Staff-attributed code must not run anonymously."""
        with pytest.raises(RuntimeError, match="No staff context"):
            get_current_staff_id()

    def test_set_then_get(self):
        set_current_staff_id("optician-2")
        assert get_current_staff_id() == "optician-2"


class TestSystemFallback:

    def test_without_context_is_system(self):
        assert current_staff_id_or_system() == SYSTEM_STAFF_ID

    def test_with_context_is_staff(self):
        with staff_context("counter-1"):
            assert current_staff_id_or_system() == "counter-1"

    def test_cleared_context_is_system(self):
        set_current_staff_id("counter-1")
        clear_current_staff_id()
        assert current_staff_id_or_system() == SYSTEM_STAFF_ID


class TestStaffContextManager:

    def test_sets_and_clears(self):
        with staff_context("counter-1"):
            assert get_current_staff_id() == "counter-1"

        with pytest.raises(RuntimeError):
            get_current_staff_id()

    def test_restores_previous(self):
        with staff_context("outer"):
            with staff_context("inner"):
                assert get_current_staff_id() == "inner"
            assert get_current_staff_id() == "outer"

    def test_clears_on_exception(self):
        with pytest.raises(ValueError):
            with staff_context("counter-1"):
                raise ValueError("boom")

        assert current_staff_id_or_system() == SYSTEM_STAFF_ID

    def test_threads_do_not_share_context(self):
        """A new thread starts without the parent's staff member."""
        seen = []

        with staff_context("counter-1"):
            worker = threading.Thread(target=lambda: seen.append(current_staff_id_or_system()))
            worker.start()
            worker.join()

        assert seen == [SYSTEM_STAFF_ID]
