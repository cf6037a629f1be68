"""
Order fulfillment pipeline.

Turns a settled provider checkout session into exactly one persisted Order,
no matter which trigger fires first (the client's verify call or the
provider's completion webhook) and no matter how often either repeats.

Flow for fulfill(session_id):
    1. Existing order for the session? Return it unchanged.
    2. Fetch the session (line items, customer, payment intent expanded).
    3. Not settled? Raise PaymentNotCompleteError - nothing is created.
    4. Generate an order id and build the Order.
    5. store.save() - insert-if-absent by session id. The stored record wins.
       If the id already belongs to another session, a new id is drawn and
       the save repeated, up to MAX_ID_ATTEMPTS times.
    6. Only the caller whose insert created the record sends notifications.

Concurrency:
    A per-session lock serializes concurrent calls for one session inside
    this process, so the second caller finds the first caller's order at
    step 1. Across processes the store's atomic save() is the arbiter.

Failure semantics:
    Provider and store failures raise FulfillmentError and are not retried
    here; the provider redelivers webhooks and the client can re-verify.
    Notification failures are logged and swallowed.
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, List, Optional, Set, Tuple

from core.exceptions import (
    FulfillmentError,
    IdGenerationError,
    PaymentNotCompleteError,
    ProviderError,
)
from core.provider_client import PaymentProviderClient
from models.money import cents_to_money
from models.order import FulfillmentState, Order, OrderItem, PaymentStatus, ShippingAddress
from services.checkout_builder import decode_cart_metadata
from services.notification_service import NotificationDispatcher
from services.order_ids import OrderIdGenerator, TimestampOrderIdGenerator
from services.order_store import OrderStore
from logging_config import get_logger, get_session_logger


# Module logger
logger = get_logger(__name__)


SESSION_EXPAND = ("line_items", "customer", "payment_intent")

# Saves attempted with fresh ids when an id is already taken by another session
MAX_ID_ATTEMPTS = 5


class FulfillmentService:
    """
    Idempotent order creation from provider checkout sessions.

    Usage:
        service = FulfillmentService(provider, store, notifier)

        order = service.fulfill("cs_test_a1b2c3")     # verify route
        order = service.fulfill_from_event(session)   # webhook
        counts = service.sync_paid_sessions()         # backfill, no emails
    """

    def __init__(
        self,
        provider: PaymentProviderClient,
        store: OrderStore,
        notifier: NotificationDispatcher,
        id_generator: Optional[OrderIdGenerator] = None
    ):
        self._provider = provider
        self._store = store
        self._notifier = notifier
        self._id_generator = id_generator or TimestampOrderIdGenerator()

        # session id -> [lock, number of callers holding or waiting]
        self._session_locks: Dict[str, List[Any]] = {}
        self._in_progress: Set[str] = set()
        self._guard = threading.Lock()

    def fulfill(self, session_id: str) -> Order:
        """
        Produce the Order for a settled checkout session.

        Args:
            session_id: Provider checkout session id

        Returns:
            The persisted Order (the same one on every call for this session)

        Raises:
            PaymentNotCompleteError: Session is not settled; no order created
            FulfillmentError: Provider or store failure
        """
        return self._fulfill(session_id, notify=True)

    def fulfill_from_event(self, session_object: Dict[str, Any]) -> Order:
        """
        Fulfill from a checkout session object carried by a webhook event.

        Only the session id is trusted; everything else is re-fetched.
        """
        session_id = (session_object or {}).get("id")
        if not session_id:
            raise FulfillmentError("Webhook session object has no id")
        return self.fulfill(session_id)

    def sync_paid_sessions(self, limit: int = 100) -> Dict[str, int]:
        """
        Backfill orders for recent settled sessions.

        Sessions that already have an order are left alone. Orders created
        here send no notifications; the customers were charged long ago.

        Args:
            limit: Number of most recent provider sessions to inspect

        Returns:
            {"synced": n, "existing": n, "skipped": n, "failed": n, "total": n}

        Raises:
            FulfillmentError: If the session list cannot be fetched
        """
        try:
            sessions = self._provider.list_sessions(limit=limit)
        except ProviderError as e:
            raise FulfillmentError(f"Could not list checkout sessions: {e.message}") from e

        counts = {"synced": 0, "existing": 0, "skipped": 0, "failed": 0, "total": len(sessions)}
        for session in sessions:
            session_id = session.get("id")
            if not session_id or not PaymentStatus.parse(session.get("payment_status")).is_settled:
                counts["skipped"] += 1
                continue
            if self._store.get_by_session_id(session_id) is not None:
                counts["existing"] += 1
                continue
            try:
                self._fulfill(session_id, notify=False)
                counts["synced"] += 1
            except (FulfillmentError, PaymentNotCompleteError) as e:
                logger.error(f"Sync failed for session {session_id}: {e}")
                counts["failed"] += 1

        logger.info(
            f"Session sync: {counts['synced']} synced, {counts['existing']} existing, "
            f"{counts['skipped']} skipped, {counts['failed']} failed"
        )
        return counts

    def state(self, session_id: str) -> FulfillmentState:
        """Current fulfillment state of a session."""
        if self._store.get_by_session_id(session_id) is not None:
            return FulfillmentState.FULFILLED
        with self._guard:
            if session_id in self._in_progress:
                return FulfillmentState.FULFILLING
        return FulfillmentState.UNSEEN

    def _fulfill(self, session_id: str, notify: bool) -> Order:
        session_log = get_session_logger(session_id)

        existing = self._store.get_by_session_id(session_id)
        if existing is not None:
            session_log.info(f"Already fulfilled as {existing.order_id}")
            return existing

        with self._session_lock(session_id):
            # A concurrent caller may have finished while we waited
            existing = self._store.get_by_session_id(session_id)
            if existing is not None:
                session_log.info(f"Fulfilled concurrently as {existing.order_id}")
                return existing

            order = self._build_order(session_id)
            stored, created = self._persist(order)

        if not created:
            # Lost the race to another process; the winner notifies
            session_log.info(f"Order already created by another trigger: {stored.order_id}")
            return stored

        session_log.info(f"Order created: {stored.order_id} (${stored.amount})")
        if notify:
            self._notify(stored)
        return stored

    def _persist(self, order: Order) -> Tuple[Order, bool]:
        """
        Save an order, drawing a new id whenever its id belongs to another session.

        Returns:
            (stored order, whether this call created it)
        """
        session_id = order.provider_session_id
        session_log = get_session_logger(session_id)

        attempt = 1
        while True:
            try:
                stored = self._store.save(order)
            except Exception as e:
                session_log.error(f"Order store failed: {e}")
                raise FulfillmentError(f"Could not persist order: {e}", session_id) from e

            if stored.provider_session_id == session_id:
                return stored, stored is order

            session_log.warning(
                f"Order id {order.order_id} already belongs to session "
                f"{stored.provider_session_id} (attempt {attempt}/{MAX_ID_ATTEMPTS})"
            )
            if attempt >= MAX_ID_ATTEMPTS:
                raise FulfillmentError(
                    f"Could not allocate an unused order id after {MAX_ID_ATTEMPTS} attempts",
                    session_id,
                )
            attempt += 1
            order = replace(order, order_id=self._next_order_id(session_id))

    # -------------------------------------------------------------------------
    # Order construction
    # -------------------------------------------------------------------------

    def _build_order(self, session_id: str) -> Order:
        session = self._fetch_session(session_id)

        payment_status = PaymentStatus.parse(session.get("payment_status"))
        if not payment_status.is_settled:
            logger.info(
                f"Session {session_id} not settled (payment_status={session.get('payment_status')})"
            )
            raise PaymentNotCompleteError(session_id, session.get("payment_status"))

        line_items = self._line_items(session)
        return order_from_session(self._next_order_id(session_id), session, line_items)

    def _next_order_id(self, session_id: str) -> str:
        try:
            return self._id_generator.generate()
        except IdGenerationError as e:
            raise FulfillmentError(f"Could not allocate order id: {e.message}", session_id) from e

    def _fetch_session(self, session_id: str) -> Dict[str, Any]:
        try:
            return self._provider.get_session(session_id, expand=SESSION_EXPAND)
        except ProviderError as e:
            raise FulfillmentError(
                f"Could not retrieve checkout session: {e.message}", session_id
            ) from e

    def _line_items(self, session: Dict[str, Any]) -> List[Dict[str, Any]]:
        expanded = session.get("line_items")
        if isinstance(expanded, dict) and expanded.get("data") is not None:
            return list(expanded["data"])

        try:
            return self._provider.list_line_items(session["id"])
        except ProviderError as e:
            raise FulfillmentError(
                f"Could not list session line items: {e.message}", session.get("id")
            ) from e

    # -------------------------------------------------------------------------
    # Notifications and locking
    # -------------------------------------------------------------------------

    def _notify(self, order: Order) -> None:
        """Send both notifications. A failure in one never stops the other."""
        for send in (
            self._notifier.send_customer_confirmation,
            self._notifier.send_owner_notification,
        ):
            try:
                send(order)
            except Exception as e:
                logger.error(f"Notification {send.__name__} failed for {order.order_id}: {e}")

    @contextmanager
    def _session_lock(self, session_id: str) -> Iterator[None]:
        with self._guard:
            entry = self._session_locks.setdefault(session_id, [threading.Lock(), 0])
            entry[1] += 1
        lock = entry[0]

        lock.acquire()
        with self._guard:
            self._in_progress.add(session_id)
        try:
            yield
        finally:
            with self._guard:
                self._in_progress.discard(session_id)
                entry[1] -= 1
                if entry[1] == 0:
                    del self._session_locks[session_id]
            lock.release()


def order_from_session(
    order_id: str,
    session: Dict[str, Any],
    line_items: List[Dict[str, Any]]
) -> Order:
    """
    Build an Order from a provider checkout session.

    Item identity, size and color come from the cart metadata written at
    checkout. Lines without metadata fall back to the line description.
    """
    metadata = session.get("metadata") or {}
    cart_items = decode_cart_metadata(metadata)

    items = []
    for index, line in enumerate(line_items, start=1):
        meta = cart_items.get(index)
        items.append(OrderItem(
            product_id=meta.product_id if meta else "unknown",
            name=(meta.name if meta and meta.name else None) or line.get("description") or "",
            quantity=int(line.get("quantity") or 0),
            price=cents_to_money(line.get("amount_total") or 0),
            color=(meta.color if meta and meta.color else None) or "Unknown",
            size=meta.size if meta else None,
        ))

    customer = session.get("customer_details") or {}
    expanded_customer = session.get("customer") if isinstance(session.get("customer"), dict) else {}

    payment_intent = session.get("payment_intent")
    if isinstance(payment_intent, dict):
        payment_intent = payment_intent.get("id")

    created = session.get("created")
    created_at = (
        datetime.fromtimestamp(created, tz=timezone.utc) if created else datetime.now(timezone.utc)
    )

    return Order(
        order_id=order_id,
        provider_session_id=session["id"],
        customer_email=(
            customer.get("email")
            or session.get("customer_email")
            or expanded_customer.get("email")
            or ""
        ),
        customer_name=customer.get("name") or expanded_customer.get("name"),
        amount=cents_to_money(session.get("amount_total") or 0),
        currency=session.get("currency") or "usd",
        payment_status=PaymentStatus.parse(session.get("payment_status")),
        items=items,
        provider_payment_ref=payment_intent,
        shipping_address=ShippingAddress.from_provider(_shipping_details(session)),
        metadata=dict(metadata),
        created_at=created_at,
        updated_at=datetime.now(timezone.utc),
    )


def _shipping_details(session: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    # Newer API versions nest shipping under collected_information
    collected = session.get("collected_information") or {}
    return collected.get("shipping_details") or session.get("shipping_details")
