"""
Custom exceptions for the checkout backend.

Exception Hierarchy:
    CheckoutError (base)
    ├── CartValidationError         - Cart lines failed structural/price checks (user-correctable)
    ├── CatalogFetchError           - Catalog refresh failed (non-fatal, stale data served)
    ├── PaymentNotCompleteError     - Fulfillment attempted before settlement
    ├── FulfillmentError            - Provider/store failure while building an order
    ├── OrderNotFoundError          - Lookup by id with no match
    ├── SignatureVerificationError  - Webhook payload failed authenticity check
    ├── WebhookConfigurationError   - Signing secret not configured
    ├── IdGenerationError           - Order id strategy could not allocate an id
    └── ProviderError               - Payment provider call failed (not retryable)
        └── ProviderTransientError  - Timeout / connection failure (retryable)

Usage:
    Validation errors are returned to the client with every collected reason.
    Transient provider errors are retried locally before surfacing.
    Everything else is surfaced to the caller as a generic failure.
"""

from typing import Optional, Dict, Any, List


class CheckoutError(Exception):
    """
    Base exception for all checkout backend errors.

    All custom exceptions inherit from this class, allowing callers to catch
    all application-specific errors with a single except clause if needed.
    """

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        """
        Initialize the exception.

        Args:
            message: Human-readable error message
            details: Optional dictionary with additional context for debugging
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


# =============================================================================
# VALIDATION ERRORS - Returned to the client, user can correct and retry
# =============================================================================

class CartValidationError(CheckoutError):
    """
    One or more cart lines failed validation.

    Carries ALL collected reasons, not just the first, so a single response
    can tell the client everything wrong with the cart.

    Codes:
        PRICE_MISMATCH   - at least one claimed price differs from the provider
        INVALID_PRODUCT  - at least one product is unknown or unavailable
        VALIDATION_ERROR - structural problems (empty cart, bad quantity, ...)
    """

    PRICE_MISMATCH = "PRICE_MISMATCH"
    INVALID_PRODUCT = "INVALID_PRODUCT"
    VALIDATION_ERROR = "VALIDATION_ERROR"

    def __init__(self, reasons: List[str], code: str = VALIDATION_ERROR):
        message = f"Validation failed: {'; '.join(reasons)}"
        details = {
            "reasons": list(reasons),
            "code": code,
        }
        super().__init__(message, details)
        self.reasons = list(reasons)
        self.code = code


class CatalogFetchError(CheckoutError):
    """
    The provider could not be reached while refreshing the catalog.

    Non-fatal: the cache keeps serving the previous snapshot until the next
    successful refresh.
    """

    def __init__(self, message: str = "Failed to fetch catalog from provider"):
        details = {
            "resolution": "Cached catalog is served until the next successful refresh"
        }
        super().__init__(message, details)


# =============================================================================
# FULFILLMENT ERRORS
# =============================================================================

class PaymentNotCompleteError(CheckoutError):
    """
    Fulfillment was attempted before the provider reported settlement.

    No order is created. The caller should retry later or show a
    "payment pending" state.
    """

    def __init__(self, session_id: str, payment_status: Optional[str]):
        message = f"Payment not completed for session {session_id}"
        details = {
            "session_id": session_id,
            "payment_status": payment_status,
        }
        super().__init__(message, details)
        self.session_id = session_id
        self.payment_status = payment_status


class FulfillmentError(CheckoutError):
    """
    Unexpected provider or store failure while constructing an order.

    Safe to retry: fulfillment is idempotent per session.
    """

    def __init__(self, message: str, session_id: Optional[str] = None):
        details = {"resolution": "Retry fulfillment; it is idempotent per session"}
        if session_id:
            details["session_id"] = session_id
        super().__init__(message, details)
        self.session_id = session_id


class OrderNotFoundError(CheckoutError):
    """No order exists with the requested id."""

    def __init__(self, order_id: str):
        super().__init__(f"Order not found: {order_id}", {"order_id": order_id})
        self.order_id = order_id


class IdGenerationError(CheckoutError):
    """The order id strategy could not allocate a unique id."""


# =============================================================================
# WEBHOOK ERRORS
# =============================================================================

class SignatureVerificationError(CheckoutError):
    """
    Inbound event payload failed the authenticity check.

    Always rejected, never processed.
    """

    def __init__(self, message: str = "Invalid webhook signature"):
        super().__init__(message)


class WebhookConfigurationError(CheckoutError):
    """The webhook signing secret is not configured."""

    def __init__(self, message: str = "Webhook signing secret is not configured"):
        details = {"resolution": "Set STRIPE_WEBHOOK_SECRET in .env"}
        super().__init__(message, details)


# =============================================================================
# PROVIDER ERRORS
# =============================================================================

class ProviderError(CheckoutError):
    """
    A payment provider call failed with an authoritative error.

    Not retryable - e.g. unknown object, invalid request, auth failure.
    """

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        error_details = details or {}
        if operation:
            error_details["operation"] = operation
        super().__init__(message, error_details)
        self.operation = operation


class ProviderTransientError(ProviderError):
    """
    A payment provider call failed transiently.

    Timeouts, connection resets and rate limiting land here. Callers may
    retry with backoff.
    """
