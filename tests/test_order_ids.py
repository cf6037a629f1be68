"""
Unit tests for order id strategies.
"""

import re
import threading

import pytest

from core.exceptions import IdGenerationError
from services.order_ids import SequentialOrderIdGenerator, TimestampOrderIdGenerator


TIMESTAMP_ID = re.compile(r"^ORD-\d{13}-[0-9A-Z]{7}$")


class TestTimestampOrderIdGenerator:
    """ORD-{ms}-{suffix} ids."""

    def test_format(self):
        generator = TimestampOrderIdGenerator(clock=lambda: 1718031234.567)

        order_id = generator.generate()

        assert TIMESTAMP_ID.match(order_id)
        assert order_id.startswith("ORD-1718031234567-")

    def test_ids_are_unique_under_concurrency(self):
        generator = TimestampOrderIdGenerator(clock=lambda: 1718031234.567)
        ids = []
        lock = threading.Lock()

        def worker():
            for _ in range(200):
                order_id = generator.generate()
                with lock:
                    ids.append(order_id)

        threads = [threading.Thread(target=worker) for _ in range(5)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(ids) == 1000
        assert len(set(ids)) == 1000

    def test_collision_is_rerolled(self):
        suffixes = iter(["AAAAAAA", "AAAAAAA", "BBBBBBB"])
        generator = TimestampOrderIdGenerator(
            clock=lambda: 1.0, random_suffix=lambda n: next(suffixes)
        )

        first = generator.generate()
        second = generator.generate()

        assert first == "ORD-1000-AAAAAAA"
        assert second == "ORD-1000-BBBBBBB"

    def test_gives_up_after_max_rerolls(self):
        generator = TimestampOrderIdGenerator(
            clock=lambda: 1.0, random_suffix=lambda n: "AAAAAAA", max_rerolls=3
        )
        generator.generate()

        with pytest.raises(IdGenerationError) as exc_info:
            generator.generate()

        assert exc_info.value.details == {"timestamp_ms": 1000}

    def test_history_is_bounded(self):
        suffixes = iter(["AAAAAAA", "BBBBBBB", "AAAAAAA"])
        generator = TimestampOrderIdGenerator(
            clock=lambda: 1.0, random_suffix=lambda n: next(suffixes), history_size=1
        )

        generator.generate()
        generator.generate()

        # AAAAAAA fell out of the history, so it may be issued again
        assert generator.generate() == "ORD-1000-AAAAAAA"


class TestSequentialOrderIdGenerator:
    """ORD-{n:06d} ids."""

    def test_counts_up(self):
        generator = SequentialOrderIdGenerator()

        assert [generator.generate() for _ in range(3)] == [
            "ORD-000001", "ORD-000002", "ORD-000003",
        ]

    def test_custom_start(self):
        assert SequentialOrderIdGenerator(start=42).generate() == "ORD-000042"

    def test_exhaustion_raises(self):
        generator = SequentialOrderIdGenerator(start=999999)

        assert generator.generate() == "ORD-999999"
        with pytest.raises(IdGenerationError):
            generator.generate()

    def test_invalid_start(self):
        with pytest.raises(ValueError):
            SequentialOrderIdGenerator(start=0)
