"""
Order id generation strategies.

Order ids are shown to customers and used by support to find orders, so
they must be unique and carry some information at a glance.

Strategies:
    TimestampOrderIdGenerator (default)
        ORD-1718031234567-K3J9X2A - creation time in ms plus 7 random
        base-36 characters. Collisions are re-rolled; see generate().
    SequentialOrderIdGenerator
        ORD-000042 - a process-local counter. Exhausts at max_value.
"""

from __future__ import annotations

import secrets
import threading
import time
from abc import ABC, abstractmethod
from collections import deque
from typing import Callable, Deque, Optional, Set

from core.exceptions import IdGenerationError
from logging_config import get_logger


logger = get_logger(__name__)

_BASE36 = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ"


class OrderIdGenerator(ABC):
    """Allocates order ids."""

    @abstractmethod
    def generate(self) -> str:
        """
        Allocate a new order id.

        Raises:
            IdGenerationError: If no unique id could be allocated
        """
        ...


class TimestampOrderIdGenerator(OrderIdGenerator):
    """
    ``ORD-{epoch_ms}-{7 base-36 chars}``.

    Remembers the last ``history_size`` ids it issued. A candidate that
    matches one of them is re-rolled with a new random suffix, up to
    ``max_rerolls`` times before giving up with IdGenerationError.
    36^7 suffixes per millisecond makes that practically unreachable
    unless the random source is broken.
    """

    SUFFIX_LENGTH = 7

    def __init__(
        self,
        clock: Callable[[], float] = time.time,
        random_suffix: Optional[Callable[[int], str]] = None,
        max_rerolls: int = 5,
        history_size: int = 10000
    ):
        self._clock = clock
        self._random_suffix = random_suffix or _random_base36
        self._max_rerolls = max_rerolls
        self._history_size = history_size

        self._issued: Set[str] = set()
        self._issued_order: Deque[str] = deque()
        self._lock = threading.Lock()

    def generate(self) -> str:
        timestamp_ms = int(self._clock() * 1000)

        with self._lock:
            for attempt in range(self._max_rerolls + 1):
                candidate = f"ORD-{timestamp_ms}-{self._random_suffix(self.SUFFIX_LENGTH)}"
                if candidate not in self._issued:
                    self._remember(candidate)
                    return candidate
                logger.warning(f"Order id collision on {candidate} (attempt {attempt + 1})")

        raise IdGenerationError(
            f"Could not allocate a unique order id after {self._max_rerolls} re-rolls",
            {"timestamp_ms": timestamp_ms},
        )

    def _remember(self, order_id: str) -> None:
        self._issued.add(order_id)
        self._issued_order.append(order_id)
        if len(self._issued_order) > self._history_size:
            self._issued.discard(self._issued_order.popleft())


class SequentialOrderIdGenerator(OrderIdGenerator):
    """
    ``ORD-{n:06d}`` from a process-local counter.

    Only unique within one process lifetime. Raises IdGenerationError once
    the counter passes ``max_value`` instead of wrapping around.
    """

    def __init__(self, start: int = 1, max_value: int = 999999):
        if start < 1:
            raise ValueError("start must be >= 1")
        self._next = start
        self._max_value = max_value
        self._lock = threading.Lock()

    def generate(self) -> str:
        with self._lock:
            if self._next > self._max_value:
                raise IdGenerationError(
                    "Sequential order ids exhausted",
                    {"max_value": self._max_value},
                )
            value = self._next
            self._next += 1
        return f"ORD-{value:06d}"


def _random_base36(length: int) -> str:
    return "".join(secrets.choice(_BASE36) for _ in range(length))
