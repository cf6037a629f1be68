"""
Payment provider client.

Defines the contract every payment provider adapter implements, plus the
production adapter built on the Stripe SDK.

The rest of the application only ever sees plain dictionaries shaped like
provider objects, never SDK types. Errors are translated at this boundary:

    - Timeouts, connection failures, rate limiting, provider 5xx
        -> ProviderTransientError (retryable)
    - Everything else the SDK raises
        -> ProviderError (not retryable)
    - Webhook signature failures
        -> SignatureVerificationError

Usage:
    client = StripeProviderClient(api_key, timeout_seconds=10.0)

    products = client.list_active_products()
    price = client.get_price(product["default_price"])
    session = client.create_session(session_request)
    event = client.verify_event_signature(payload, header, secret)
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Sequence

import stripe

from models.checkout import ProviderSessionRequest
from .exceptions import (
    ProviderError,
    ProviderTransientError,
    SignatureVerificationError,
)


class PaymentProviderClient(ABC):
    """Abstract payment provider interface."""

    @abstractmethod
    def list_active_products(self) -> List[Dict[str, Any]]:
        """List active products with their default price expanded."""
        ...

    @abstractmethod
    def get_product(self, product_id: str) -> Dict[str, Any]:
        """Retrieve a single product."""
        ...

    @abstractmethod
    def get_price(self, price_id: str) -> Dict[str, Any]:
        """Retrieve a single price."""
        ...

    @abstractmethod
    def create_session(self, request: ProviderSessionRequest) -> Dict[str, Any]:
        """Create a hosted checkout session. Returns at least ``id`` and ``url``."""
        ...

    @abstractmethod
    def get_session(
        self,
        session_id: str,
        expand: Sequence[str] = ()
    ) -> Dict[str, Any]:
        """Retrieve a checkout session, optionally expanding nested objects."""
        ...

    @abstractmethod
    def list_line_items(self, session_id: str) -> List[Dict[str, Any]]:
        """List the line items of a checkout session."""
        ...

    @abstractmethod
    def list_sessions(self, limit: int = 100) -> List[Dict[str, Any]]:
        """List the most recent checkout sessions, newest first."""
        ...

    @abstractmethod
    def verify_event_signature(
        self,
        payload: bytes,
        signature_header: str,
        secret: str
    ) -> Dict[str, Any]:
        """Verify a webhook payload and return the parsed event."""
        ...


class StripeProviderClient(PaymentProviderClient):
    """
    Stripe implementation of the payment provider interface.

    Every call is bounded by ``timeout_seconds``. The SDK's own network
    retries are disabled; retry policy belongs to the callers (the cart
    validator retries transient failures, fulfillment does not).
    """

    # Failures worth retrying with backoff
    _TRANSIENT_ERRORS = (
        stripe.APIConnectionError,
        stripe.RateLimitError,
        stripe.APIError,
    )

    def __init__(
        self,
        api_key: str,
        timeout_seconds: float = 10.0,
        logger: Optional[logging.Logger] = None
    ):
        """
        Initialize the Stripe client.

        Args:
            api_key: Stripe secret key
            timeout_seconds: Upper bound for each HTTP call
            logger: Logger instance (creates default if not provided)

        Raises:
            ValueError: If api_key is empty
        """
        if not api_key:
            raise ValueError("api_key is required - set STRIPE_SECRET_KEY")

        self._api_key = api_key
        self._timeout = timeout_seconds
        self._logger = logger or logging.getLogger("core.provider_client")

        stripe.max_network_retries = 0
        stripe.default_http_client = stripe.RequestsClient(timeout=timeout_seconds)

        self._logger.debug(f"StripeProviderClient initialized (timeout={timeout_seconds}s)")

    # -------------------------------------------------------------------------
    # Catalog
    # -------------------------------------------------------------------------

    def list_active_products(self) -> List[Dict[str, Any]]:
        def fetch_all():
            # Expand default_price to get price details in one call
            products = stripe.Product.list(
                active=True,
                limit=100,
                expand=["data.default_price"],
                api_key=self._api_key,
            )
            # auto_paging_iter issues follow-up page requests lazily
            return [self._to_plain(p) for p in products.auto_paging_iter()]

        result = self._call("list_active_products", fetch_all)
        self._logger.debug(f"Fetched {len(result)} active products")
        return result

    def get_product(self, product_id: str) -> Dict[str, Any]:
        product = self._call(
            "get_product", stripe.Product.retrieve, product_id, api_key=self._api_key
        )
        return self._to_plain(product)

    def get_price(self, price_id: str) -> Dict[str, Any]:
        price = self._call(
            "get_price", stripe.Price.retrieve, price_id, api_key=self._api_key
        )
        return self._to_plain(price)

    # -------------------------------------------------------------------------
    # Checkout sessions
    # -------------------------------------------------------------------------

    def create_session(self, request: ProviderSessionRequest) -> Dict[str, Any]:
        session = self._call(
            "create_session",
            stripe.checkout.Session.create,
            api_key=self._api_key,
            **request.to_params(),
        )
        self._logger.info(f"Checkout session created: {session.id}")
        return self._to_plain(session)

    def get_session(
        self,
        session_id: str,
        expand: Sequence[str] = ()
    ) -> Dict[str, Any]:
        session = self._call(
            "get_session",
            stripe.checkout.Session.retrieve,
            session_id,
            expand=list(expand),
            api_key=self._api_key,
        )
        return self._to_plain(session)

    def list_line_items(self, session_id: str) -> List[Dict[str, Any]]:
        line_items = self._call(
            "list_line_items",
            stripe.checkout.Session.list_line_items,
            session_id,
            limit=100,
            api_key=self._api_key,
        )
        return [self._to_plain(item) for item in line_items.data]

    def list_sessions(self, limit: int = 100) -> List[Dict[str, Any]]:
        # One page only; the API caps a page at 100 sessions
        sessions = self._call(
            "list_sessions",
            stripe.checkout.Session.list,
            limit=max(1, min(limit, 100)),
            api_key=self._api_key,
        )
        return [self._to_plain(session) for session in sessions.data]

    # -------------------------------------------------------------------------
    # Webhooks
    # -------------------------------------------------------------------------

    def verify_event_signature(
        self,
        payload: bytes,
        signature_header: str,
        secret: str
    ) -> Dict[str, Any]:
        # CRITICAL: verify signature BEFORE trusting any payload content
        try:
            event = stripe.Webhook.construct_event(payload, signature_header, secret)
        except stripe.SignatureVerificationError as e:
            self._logger.warning(f"Webhook signature verification failed: {e}")
            raise SignatureVerificationError()
        except ValueError as e:
            self._logger.warning(f"Webhook payload could not be parsed: {e}")
            raise SignatureVerificationError("Invalid webhook payload")

        return self._to_plain(event)

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _call(self, operation: str, fn, *args, **kwargs):
        """Run an SDK call, translating SDK errors into provider errors."""
        try:
            return fn(*args, **kwargs)
        except self._TRANSIENT_ERRORS as e:
            self._logger.warning(f"Stripe {operation} failed transiently: {e}")
            raise ProviderTransientError(
                f"Payment provider unavailable: {e}", operation=operation
            ) from e
        except stripe.StripeError as e:
            self._logger.error(f"Stripe {operation} failed: {e}")
            raise ProviderError(
                f"Payment provider error: {e}",
                operation=operation,
                details={"code": getattr(e, "code", None)},
            ) from e

    @staticmethod
    def _to_plain(obj) -> Dict[str, Any]:
        """Convert an SDK object into plain nested dicts/lists."""
        # str() on a StripeObject renders the full object as JSON
        return json.loads(str(obj))
