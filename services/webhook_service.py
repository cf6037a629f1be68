"""
Provider webhook handling.

Every event is authenticated with the shared signing secret before any of
its content is read. Missing or invalid signatures are rejected.

Routing:
    checkout.session.completed                 -> fulfillment
    checkout.session.async_payment_succeeded   -> fulfillment
    product.* / price.*                        -> catalog invalidation
    payment_intent.succeeded                   -> order status PAID
    payment_intent.payment_failed              -> order status FAILED
    charge.refunded (full refund)              -> order status REFUNDED
    anything else                              -> logged as unhandled

Status events find the order by its payment intent id. An event for a
payment with no order yet is acknowledged and ignored; the order is built
from the live session when checkout completes. REFUNDED is final.

Handler failures propagate so the route answers 5xx and the provider
redelivers the event. Fulfillment is idempotent, so redelivery is safe.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from core.exceptions import (
    PaymentNotCompleteError,
    SignatureVerificationError,
    WebhookConfigurationError,
)
from core.provider_client import PaymentProviderClient
from models.order import PaymentStatus
from services.catalog_service import CatalogService
from services.fulfillment_service import FulfillmentService
from services.order_store import OrderStore
from logging_config import get_logger


logger = get_logger(__name__)


FULFILLMENT_EVENTS = frozenset({
    "checkout.session.completed",
    "checkout.session.async_payment_succeeded",
})

CATALOG_EVENT_PREFIXES = ("product.", "price.")

PAYMENT_INTENT_STATUSES = {
    "payment_intent.succeeded": PaymentStatus.PAID,
    "payment_intent.payment_failed": PaymentStatus.FAILED,
}


class WebhookService:
    """Verifies and routes provider events."""

    def __init__(
        self,
        provider: PaymentProviderClient,
        fulfillment: FulfillmentService,
        catalog: CatalogService,
        store: OrderStore,
        signing_secret: str
    ):
        self._provider = provider
        self._fulfillment = fulfillment
        self._catalog = catalog
        self._store = store
        self._secret = signing_secret

    def handle(self, payload: bytes, signature: Optional[str]) -> Dict[str, Any]:
        """
        Verify and dispatch one webhook delivery.

        Args:
            payload: Raw request body (must be the exact bytes signed)
            signature: Value of the Stripe-Signature header

        Returns:
            {"received": True, "type": <event type>}

        Raises:
            WebhookConfigurationError: Signing secret not configured
            SignatureVerificationError: Missing or invalid signature
            FulfillmentError: Fulfillment failed (provider should redeliver)
        """
        if not self._secret:
            logger.error("STRIPE_WEBHOOK_SECRET not configured - rejecting webhook")
            raise WebhookConfigurationError()

        if not signature:
            raise SignatureVerificationError("Missing signature")

        event = self._provider.verify_event_signature(payload, signature, self._secret)

        event_type = event.get("type", "")
        obj = (event.get("data") or {}).get("object") or {}
        logger.info(f"Webhook received: {event_type} ({event.get('id')})")

        if event_type in FULFILLMENT_EVENTS:
            self._handle_checkout_completed(event_type, obj)

        elif event_type.startswith(CATALOG_EVENT_PREFIXES):
            logger.info(f"Catalog changed ({event_type}: {obj.get('id')}), invalidating cache")
            self._catalog.invalidate()

        elif event_type in PAYMENT_INTENT_STATUSES:
            self._update_payment_status(obj.get("id"), PAYMENT_INTENT_STATUSES[event_type])

        elif event_type == "charge.refunded":
            self._handle_refund(obj)

        else:
            logger.info(f"Unhandled event type: {event_type}")

        return {"received": True, "type": event_type}

    def _handle_checkout_completed(self, event_type: str, session: Dict[str, Any]) -> None:
        try:
            order = self._fulfillment.fulfill_from_event(session)
        except PaymentNotCompleteError as e:
            # Delayed payment methods complete the session before settling;
            # async_payment_succeeded follows when the funds arrive.
            logger.info(f"{event_type} for unsettled session {e.session_id}, waiting for payment")
            return

        logger.info(f"Order fulfilled from webhook: {order.order_id}")

    def _handle_refund(self, charge: Dict[str, Any]) -> None:
        if not charge.get("refunded"):
            logger.info(
                f"Partial refund on {charge.get('payment_intent')} "
                f"({charge.get('amount_refunded')} of {charge.get('amount')}), status unchanged"
            )
            return
        self._update_payment_status(charge.get("payment_intent"), PaymentStatus.REFUNDED)

    def _update_payment_status(self, payment_ref: Optional[str], status: PaymentStatus) -> None:
        if not payment_ref:
            logger.warning(f"Payment event without a payment intent id ({status.value})")
            return

        order = self._store.get_by_payment_ref(payment_ref)
        if order is None:
            logger.info(f"No order for payment {payment_ref} yet, ignoring {status.value}")
            return

        if order.payment_status == status:
            return
        if order.payment_status == PaymentStatus.REFUNDED:
            logger.warning(
                f"Order {order.order_id} already refunded, ignoring {status.value} for {payment_ref}"
            )
            return

        self._store.update_status(order.order_id, status)
