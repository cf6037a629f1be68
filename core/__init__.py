"""
Core module for the checkout backend.

Contains fundamental infrastructure components:
- exceptions: Custom exception hierarchy
- provider_client: Payment provider port and Stripe adapter
"""

from .exceptions import (
    CheckoutError,
    CartValidationError,
    CatalogFetchError,
    PaymentNotCompleteError,
    FulfillmentError,
    OrderNotFoundError,
    IdGenerationError,
    SignatureVerificationError,
    WebhookConfigurationError,
    ProviderError,
    ProviderTransientError,
)
from .provider_client import PaymentProviderClient, StripeProviderClient

__all__ = [
    "CheckoutError",
    "CartValidationError",
    "CatalogFetchError",
    "PaymentNotCompleteError",
    "FulfillmentError",
    "OrderNotFoundError",
    "IdGenerationError",
    "SignatureVerificationError",
    "WebhookConfigurationError",
    "ProviderError",
    "ProviderTransientError",
    "PaymentProviderClient",
    "StripeProviderClient",
]
