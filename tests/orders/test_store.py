"""Tests for the store helpers: atomic(), OrderLocks and identifiers."""

import re
import threading
import time
from unittest.mock import MagicMock

import pytest

from orders.errors import MissingField, PersistenceFailure
from orders.identifiers import generate_id
from orders.models import Refund
from orders.store import OrderLocks, atomic
from utils.timezone import now_utc


class TestAtomic:

    def test_wraps_store_errors(self, store):
        with pytest.raises(PersistenceFailure) as exc_info:
            with atomic(store, "record_payment"):
                raise ConnectionError("connection reset")

        assert isinstance(exc_info.value.__cause__, ConnectionError)
        assert "record_payment" in str(exc_info.value)

    def test_order_errors_pass_through(self, store):
        with pytest.raises(MissingField):
            with atomic(store, "save_order"):
                raise MissingField("method")

    def test_rolls_back_writes(self, store):
        refund = Refund(
            refund_id="RF-1", invoice_id="IN-1", amount="5.000", method="cash",
            reason="Scratched lens", date=now_utc(),
        )
        with pytest.raises(PersistenceFailure):
            with atomic(store, "process_refund"):
                store.save_refund(refund)
                raise OSError("disk full")

        assert store.load_refund("RF-1") is None

    def test_locks_order_inside_transaction(self):
        store = MagicMock()

        with atomic(store, "record_payment", "IN-1"):
            store.transaction.return_value.__enter__.assert_called_once()
            store.lock_order.assert_called_once_with("IN-1")

        store.transaction.return_value.__exit__.assert_called_once()

    def test_no_lock_without_key(self):
        store = MagicMock()

        with atomic(store, "list"):
            pass

        store.lock_order.assert_not_called()


class TestOrderLocks:

    def test_same_key_is_serialized(self):
        locks = OrderLocks()
        inside = []
        overlap = []

        def work():
            with locks.hold("IN-1"):
                if inside:
                    overlap.append(True)
                inside.append(True)
                time.sleep(0.01)
                inside.pop()

        threads = [threading.Thread(target=work) for _ in range(5)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert overlap == []

    def test_different_keys_do_not_block(self):
        locks = OrderLocks()
        acquired = threading.Event()

        def other():
            with locks.hold("IN-2"):
                acquired.set()

        with locks.hold("IN-1"):
            worker = threading.Thread(target=other)
            worker.start()
            assert acquired.wait(timeout=2)
            worker.join()

    def test_reentrant(self):
        locks = OrderLocks()
        with locks.hold("IN-1"):
            with locks.hold("IN-1"):
                pass


class TestGenerateId:

    def test_format(self, store):
        assert re.fullmatch(r"IN-\d{8}-0001", generate_id(store, "IN"))

    def test_sequences_per_prefix(self, store):
        generate_id(store, "IN")
        second = generate_id(store, "IN")
        first_wo = generate_id(store, "WO")

        assert second.endswith("-0002")
        assert first_wo.endswith("-0001")

    def test_ids_are_unique_across_threads(self, store):
        ids = []
        guard = threading.Lock()

        def grab():
            for _ in range(20):
                new_id = generate_id(store, "RF")
                with guard:
                    ids.append(new_id)

        threads = [threading.Thread(target=grab) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(set(ids)) == 80
