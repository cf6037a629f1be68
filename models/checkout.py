"""
Checkout session data models.

ProviderSessionRequest is what the checkout builder produces and the
provider client submits. CheckoutResult is what the create-checkout
route returns to the storefront.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, Any, Optional, Tuple


@dataclass(frozen=True)
class OrderTotals:
    """Subtotal / tax / shipping breakdown for a cart."""

    subtotal: Decimal
    tax: Decimal
    shipping: Decimal
    total: Decimal

    def to_dict(self) -> Dict[str, float]:
        return {
            "subtotal": float(self.subtotal),
            "tax": float(self.tax),
            "shipping": float(self.shipping),
            "total": float(self.total),
        }


@dataclass(frozen=True)
class SessionLineItem:
    """One provider line item, priced from the verified price only."""

    name: str
    description: str
    unit_amount: int
    """Verified unit price in cents."""

    quantity: int
    currency: str
    images: Tuple[str, ...] = ()
    metadata: Dict[str, str] = field(default_factory=dict)

    def to_params(self) -> Dict[str, Any]:
        """Provider API shape (inline price_data)."""
        return {
            "price_data": {
                "currency": self.currency,
                "product_data": {
                    "name": self.name,
                    "description": self.description,
                    "images": list(self.images),
                    "metadata": dict(self.metadata),
                },
                "unit_amount": self.unit_amount,
            },
            "quantity": self.quantity,
        }


@dataclass(frozen=True)
class ProviderSessionRequest:
    """
    A complete, ready-to-submit checkout session request.

    Built without any network call. The caller submits it via
    PaymentProviderClient.create_session().
    """

    line_items: Tuple[SessionLineItem, ...]
    customer_email: str
    success_url: str
    cancel_url: str
    currency: str = "usd"
    metadata: Dict[str, str] = field(default_factory=dict)
    allowed_countries: Tuple[str, ...] = ()
    shipping_amount: int = 0
    """Shipping charge in cents (0 = free shipping)."""

    shipping_display_name: str = "Free Shipping"
    payment_intent_metadata: Dict[str, str] = field(default_factory=dict)

    def to_params(self) -> Dict[str, Any]:
        """Provider API shape for checkout session creation."""
        params: Dict[str, Any] = {
            "payment_method_types": ["card"],
            "mode": "payment",
            "line_items": [item.to_params() for item in self.line_items],
            "success_url": self.success_url,
            "cancel_url": self.cancel_url,
            "customer_email": self.customer_email,
            "metadata": dict(self.metadata),
            "shipping_options": [
                {
                    "shipping_rate_data": {
                        "type": "fixed_amount",
                        "fixed_amount": {
                            "amount": self.shipping_amount,
                            "currency": self.currency,
                        },
                        "display_name": self.shipping_display_name,
                        "delivery_estimate": {
                            "minimum": {"unit": "business_day", "value": 5},
                            "maximum": {"unit": "business_day", "value": 7},
                        },
                    },
                },
            ],
            "payment_intent_data": {"metadata": dict(self.payment_intent_metadata)},
            "billing_address_collection": "required",
            "allow_promotion_codes": True,
        }
        if self.allowed_countries:
            params["shipping_address_collection"] = {
                "allowed_countries": list(self.allowed_countries)
            }
        return params


@dataclass(frozen=True)
class CheckoutResult:
    """Result of a successful create-checkout call."""

    session_id: str
    url: str
    validated_amount: Decimal
    totals: OrderTotals

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": True,
            "sessionId": self.session_id,
            "url": self.url,
            "validatedAmount": float(self.validated_amount),
            "totals": self.totals.to_dict(),
        }


@dataclass(frozen=True)
class CartMetadataItem:
    """One cart line recovered from session metadata."""

    product_id: str
    name: Optional[str] = None
    color: Optional[str] = None
    size: Optional[int] = None
    quantity: Optional[int] = None
    price: Optional[Decimal] = None
    verified_at: Optional[str] = None
