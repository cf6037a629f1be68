"""
Data models for the checkout backend.

This module contains dataclasses for:
- CatalogEntry / CatalogSnapshot: Cached provider catalog
- CartLine / ValidatedLine / ValidatedCart: A cart through validation
- ProviderSessionRequest / CheckoutResult: Checkout session creation
- Order / OrderItem / ShippingAddress: Persisted orders

Thread safety:
- Catalog, validated cart and session request models are frozen
- Order is mutable, but only the order store mutates it (under its lock)
"""

from .catalog import CatalogEntry, CatalogSnapshot, ProductMapping
from .cart import CartLine, ValidatedLine, ValidatedCart
from .checkout import (
    CartMetadataItem,
    CheckoutResult,
    OrderTotals,
    ProviderSessionRequest,
    SessionLineItem,
)
from .order import Order, OrderItem, ShippingAddress, PaymentStatus, FulfillmentState

__all__ = [
    # Catalog models
    "CatalogEntry",
    "CatalogSnapshot",
    "ProductMapping",
    # Cart models
    "CartLine",
    "ValidatedLine",
    "ValidatedCart",
    # Checkout models
    "CartMetadataItem",
    "CheckoutResult",
    "OrderTotals",
    "ProviderSessionRequest",
    "SessionLineItem",
    # Order models
    "Order",
    "OrderItem",
    "ShippingAddress",
    "PaymentStatus",
    "FulfillmentState",
]
