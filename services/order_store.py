"""
Order persistence.

OrderStore is the storage contract used by the fulfillment pipeline and the
order routes. InMemoryOrderStore is the default backing store.

Uniqueness:
    save() is the final arbiter of "one order per provider session". The
    fulfillment pipeline checks get_by_session_id() first, but two triggers
    for the same session can both pass that check. save() resolves the race
    with an atomic insert-if-absent keyed by provider_session_id: the loser
    gets the winner's Order back instead of creating a duplicate.

Thread Safety:
    - InMemoryOrderStore guards all indexes with one threading.Lock
    - Only whole-record inserts and status updates are exposed

Usage:
    store = InMemoryOrderStore()

    stored = store.save(order)
    if stored is not order:
        # Another trigger created the order first
        pass

    order = store.get_by_id("ORD-1718031234567-K3J9X2A")
"""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Dict, List, Optional

from core.exceptions import OrderNotFoundError
from models.order import Order, PaymentStatus
from logging_config import get_logger


# Module logger
logger = get_logger(__name__)


class OrderStore(ABC):
    """Abstract order persistence interface."""

    @abstractmethod
    def save(self, order: Order) -> Order:
        """
        Insert an order unless one already exists for its session.

        Returns:
            The stored Order - either ``order`` or the existing record
        """
        ...

    @abstractmethod
    def get_by_id(self, order_id: str) -> Order:
        """
        Get an order by id.

        Raises:
            OrderNotFoundError: If no order has this id
        """
        ...

    @abstractmethod
    def get_by_session_id(self, session_id: str) -> Optional[Order]:
        """Get the order created from a provider session, or None."""
        ...

    @abstractmethod
    def get_by_payment_ref(self, payment_ref: str) -> Optional[Order]:
        """Get the order paid by a provider payment (payment intent id), or None."""
        ...

    @abstractmethod
    def update_status(self, order_id: str, status: PaymentStatus) -> Order:
        """
        Change an order's payment status.

        Raises:
            OrderNotFoundError: If no order has this id
        """
        ...

    @abstractmethod
    def list_all(self) -> List[Order]:
        """All orders, oldest first."""
        ...


class InMemoryOrderStore(OrderStore):
    """
    Thread-safe in-memory order store.

    Keeps indexes by order id, provider session id and payment reference
    that are only ever written together under the same lock.
    """

    def __init__(self):
        """Initialize empty store."""
        self._by_id: Dict[str, Order] = {}
        self._by_session: Dict[str, Order] = {}
        self._by_payment_ref: Dict[str, Order] = {}
        self._lock = threading.Lock()

    def save(self, order: Order) -> Order:
        with self._lock:
            existing = self._by_session.get(order.provider_session_id)
            if existing is not None:
                logger.info(
                    f"Order for session {order.provider_session_id[-12:]} already exists "
                    f"({existing.order_id}), keeping existing record"
                )
                return existing

            existing = self._by_id.get(order.order_id)
            if existing is not None:
                # Same id, different session: never overwrite
                logger.warning(
                    f"Order id {order.order_id} already stored, returning existing record"
                )
                return existing

            self._by_id[order.order_id] = order
            self._by_session[order.provider_session_id] = order
            if order.provider_payment_ref:
                self._by_payment_ref[order.provider_payment_ref] = order

        logger.info(f"Order saved: {order.order_id}")
        return order

    def get_by_id(self, order_id: str) -> Order:
        with self._lock:
            order = self._by_id.get(order_id)
        if order is None:
            raise OrderNotFoundError(order_id)
        return order

    def get_by_session_id(self, session_id: str) -> Optional[Order]:
        with self._lock:
            return self._by_session.get(session_id)

    def get_by_payment_ref(self, payment_ref: str) -> Optional[Order]:
        with self._lock:
            return self._by_payment_ref.get(payment_ref)

    def update_status(self, order_id: str, status: PaymentStatus) -> Order:
        with self._lock:
            order = self._by_id.get(order_id)
            if order is None:
                raise OrderNotFoundError(order_id)
            previous = order.payment_status
            order.payment_status = status
            order.updated_at = datetime.now(timezone.utc)

        logger.info(f"Order {order_id} status: {previous.value} -> {status.value}")
        return order

    def list_all(self) -> List[Order]:
        with self._lock:
            orders = list(self._by_id.values())
        return sorted(orders, key=lambda o: o.created_at)

    def count(self) -> int:
        """Number of stored orders."""
        with self._lock:
            return len(self._by_id)

    def clear(self) -> int:
        """
        Remove all stored orders.

        Returns:
            Number of orders removed
        """
        with self._lock:
            count = len(self._by_id)
            self._by_id.clear()
            self._by_session.clear()
            self._by_payment_ref.clear()
        if count:
            logger.info(f"Cleared {count} orders from store")
        return count
