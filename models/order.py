"""
Order data models.

An Order is created exactly once per settled provider session by the
fulfillment service, then stored in the order store.

Lifecycle:
    1. Client pays on the provider-hosted checkout page
    2. Client verify call OR provider webhook triggers fulfillment
    3. Fulfillment builds the Order from the provider session
    4. Order store inserts it (insert-if-absent by session id)
    5. Later status updates mutate payment_status / updated_at only
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Dict, Any, List, Optional


class PaymentStatus(Enum):
    """
    Payment status of a provider session / order.

    Values mirror the provider's payment_status strings.
    """

    PAID = "paid"
    """Funds captured."""

    UNPAID = "unpaid"
    """Session exists but payment has not completed."""

    NO_PAYMENT_REQUIRED = "no_payment_required"
    """Settled without a charge (e.g., 100% promotion code)."""

    REFUNDED = "refunded"
    """Payment was refunded after fulfillment."""

    FAILED = "failed"
    """Payment failed after fulfillment (e.g., async method declined)."""

    @property
    def is_settled(self) -> bool:
        """Whether an order may be created for this status."""
        return self in (PaymentStatus.PAID, PaymentStatus.NO_PAYMENT_REQUIRED)

    @classmethod
    def parse(cls, value: Optional[str]) -> "PaymentStatus":
        """Parse a provider status string. Unknown values count as UNPAID."""
        try:
            return cls(value)
        except ValueError:
            return cls.UNPAID


class FulfillmentState(Enum):
    """
    Fulfillment status of a provider session.

    Lifecycle:
        UNSEEN -> FULFILLING -> FULFILLED
    """

    UNSEEN = "unseen"
    """No order exists and no fulfillment is running."""

    FULFILLING = "fulfilling"
    """A fulfillment call for this session is in progress."""

    FULFILLED = "fulfilled"
    """An order exists for this session (terminal)."""


@dataclass(frozen=True)
class ShippingAddress:
    """Shipping address collected by the provider checkout page."""

    name: str
    line1: str
    city: str
    state: str
    postal_code: str
    country: str
    line2: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "line1": self.line1,
            "line2": self.line2,
            "city": self.city,
            "state": self.state,
            "postal_code": self.postal_code,
            "country": self.country,
        }

    @classmethod
    def from_provider(cls, details: Optional[Dict[str, Any]]) -> Optional["ShippingAddress"]:
        """
        Create from the provider's shipping details block.

        Returns None when the session collected no address.
        """
        if not details or not details.get("address"):
            return None
        address = details["address"]
        return cls(
            name=details.get("name") or "",
            line1=address.get("line1") or "",
            line2=address.get("line2") or None,
            city=address.get("city") or "",
            state=address.get("state") or "",
            postal_code=address.get("postal_code") or "",
            country=address.get("country") or "",
        )


@dataclass(frozen=True)
class OrderItem:
    """One purchased line of an order."""

    product_id: str
    """Storefront product id ('unknown' if the metadata was lost)."""

    name: str
    """Product name at time of purchase."""

    quantity: int
    """Units purchased."""

    price: Decimal
    """Amount charged for this line (unit price x quantity, after discounts)."""

    color: str = "Unknown"
    """Color display name."""

    size: Optional[int] = None
    """Ring size, or None for unsized products."""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "productId": self.product_id,
            "name": self.name,
            "color": self.color,
            "size": self.size,
            "quantity": self.quantity,
            "price": float(self.price),
        }


@dataclass
class Order:
    """
    A persisted customer order.

    Identity invariant: at most one Order per provider_session_id.
    Only status updates mutate an Order after it is stored.
    """

    order_id: str
    """Unique order id (e.g., 'ORD-1718031234567-K3J9X2A')."""

    provider_session_id: str
    """Provider checkout session id this order was created from."""

    customer_email: str
    """Customer email from the provider session."""

    amount: Decimal
    """Total charged, in currency units."""

    currency: str
    """Lowercase ISO currency code."""

    payment_status: PaymentStatus
    """Current payment status."""

    items: List[OrderItem] = field(default_factory=list)
    """Purchased lines."""

    provider_payment_ref: Optional[str] = None
    """Provider payment reference (payment intent id)."""

    customer_name: Optional[str] = None
    """Customer name from the provider session."""

    shipping_address: Optional[ShippingAddress] = None
    """Shipping address, if collected."""

    metadata: Dict[str, str] = field(default_factory=dict)
    """Cart metadata attached at checkout."""

    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    """When the provider session was created."""

    updated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    """Last mutation time."""

    @property
    def total_quantity(self) -> int:
        """Total units across all items."""
        return sum(item.quantity for item in self.items)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for API responses."""
        return {
            "orderId": self.order_id,
            "stripeSessionId": self.provider_session_id,
            "stripePaymentIntentId": self.provider_payment_ref,
            "customerEmail": self.customer_email,
            "customerName": self.customer_name,
            "amount": float(self.amount),
            "currency": self.currency,
            "paymentStatus": self.payment_status.value,
            "shippingAddress": self.shipping_address.to_dict() if self.shipping_address else None,
            "items": [item.to_dict() for item in self.items],
            "metadata": dict(self.metadata),
            "createdAt": self.created_at.isoformat(),
            "updatedAt": self.updated_at.isoformat(),
        }
