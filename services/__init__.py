"""
Services layer for the checkout backend.

This module contains the business logic services:
- CatalogService: Cached provider catalog with optional refresh thread
- CartValidator: Live price validation of client carts
- CheckoutSessionBuilder: Validated cart -> provider session request
- CheckoutService: Validate, build and submit a checkout
- FulfillmentService: Idempotent order creation from settled sessions
- OrderStore / InMemoryOrderStore: Order persistence
- NotificationDispatcher: Order emails
- WebhookService: Signed provider event routing

Thread Model:
    Main Thread (Flask request handling)
    ├── Catalog thread (optional background refresh)
    └── Validate_N threads (per-checkout line validation pool)
"""

from .catalog_service import CatalogService
from .cart_validator import CartValidator
from .checkout_builder import CheckoutSessionBuilder, calculate_order_total, decode_cart_metadata
from .checkout_service import CheckoutService
from .fulfillment_service import FulfillmentService
from .notification_service import (
    NotificationDispatcher,
    SmtpNotificationDispatcher,
    LoggingNotificationDispatcher,
    create_dispatcher,
)
from .order_ids import OrderIdGenerator, TimestampOrderIdGenerator, SequentialOrderIdGenerator
from .order_store import OrderStore, InMemoryOrderStore
from .webhook_service import WebhookService

__all__ = [
    "CatalogService",
    "CartValidator",
    "CheckoutSessionBuilder",
    "calculate_order_total",
    "decode_cart_metadata",
    "CheckoutService",
    "FulfillmentService",
    "NotificationDispatcher",
    "SmtpNotificationDispatcher",
    "LoggingNotificationDispatcher",
    "create_dispatcher",
    "OrderIdGenerator",
    "TimestampOrderIdGenerator",
    "SequentialOrderIdGenerator",
    "OrderStore",
    "InMemoryOrderStore",
    "WebhookService",
]
