"""
Unit tests for the in-memory order store.
"""

import threading
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from core.exceptions import OrderNotFoundError
from models.order import Order, PaymentStatus


def make_order(order_id="ORD-000001", session_id="cs_test_1", **kw):
    values = dict(
        order_id=order_id,
        provider_session_id=session_id,
        customer_email="jane@example.com",
        amount=Decimal("80.00"),
        currency="usd",
        payment_status=PaymentStatus.PAID,
    )
    values.update(kw)
    return Order(**values)


class TestSave:
    """Insert-if-absent semantics."""

    def test_save_and_get(self, order_store):
        order = make_order()

        stored = order_store.save(order)

        assert stored is order
        assert order_store.get_by_id("ORD-000001") is order
        assert order_store.get_by_session_id("cs_test_1") is order

    def test_second_order_for_same_session_is_not_stored(self, order_store):
        first = order_store.save(make_order("ORD-000001", "cs_test_1"))

        second = order_store.save(make_order("ORD-000002", "cs_test_1"))

        assert second is first
        assert order_store.count() == 1
        with pytest.raises(OrderNotFoundError):
            order_store.get_by_id("ORD-000002")

    def test_duplicate_order_id_never_overwrites(self, order_store):
        first = order_store.save(make_order("ORD-000001", "cs_test_1"))

        result = order_store.save(make_order("ORD-000001", "cs_test_2"))

        assert result is first
        assert order_store.get_by_session_id("cs_test_2") is None

    def test_concurrent_saves_for_one_session_store_one_order(self, order_store):
        barrier = threading.Barrier(8)
        results = []
        lock = threading.Lock()

        def save(n):
            order = make_order(f"ORD-{n:06d}", "cs_test_race")
            barrier.wait()
            stored = order_store.save(order)
            with lock:
                results.append(stored)

        threads = [threading.Thread(target=save, args=(n,)) for n in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert order_store.count() == 1
        assert len({r.order_id for r in results}) == 1


class TestLookups:
    """get_by_id / get_by_session_id / get_by_payment_ref / list_all."""

    def test_unknown_id_raises(self, order_store):
        with pytest.raises(OrderNotFoundError) as exc_info:
            order_store.get_by_id("ORD-404")

        assert exc_info.value.order_id == "ORD-404"

    def test_unknown_session_is_none(self, order_store):
        assert order_store.get_by_session_id("cs_missing") is None

    def test_get_by_payment_ref(self, order_store):
        order = order_store.save(make_order(provider_payment_ref="pi_123"))
        order_store.save(make_order("ORD-000002", "cs_2"))

        assert order_store.get_by_payment_ref("pi_123") is order
        assert order_store.get_by_payment_ref("pi_missing") is None

    def test_list_all_oldest_first(self, order_store):
        now = datetime.now(timezone.utc)
        order_store.save(make_order("ORD-000002", "cs_2", created_at=now))
        order_store.save(make_order("ORD-000001", "cs_1", created_at=now - timedelta(hours=1)))

        assert [o.order_id for o in order_store.list_all()] == ["ORD-000001", "ORD-000002"]

    def test_clear(self, order_store):
        order_store.save(make_order())

        assert order_store.clear() == 1
        assert order_store.count() == 0
        assert order_store.get_by_session_id("cs_test_1") is None


class TestUpdateStatus:
    """Status updates."""

    def test_update_status(self, order_store):
        order = make_order(updated_at=datetime(2020, 1, 1, tzinfo=timezone.utc))
        order_store.save(order)

        updated = order_store.update_status("ORD-000001", PaymentStatus.REFUNDED)

        assert updated.payment_status == PaymentStatus.REFUNDED
        assert updated.updated_at.year > 2020
        assert order_store.get_by_id("ORD-000001").payment_status == PaymentStatus.REFUNDED

    def test_update_unknown_order_raises(self, order_store):
        with pytest.raises(OrderNotFoundError):
            order_store.update_status("ORD-404", PaymentStatus.REFUNDED)
