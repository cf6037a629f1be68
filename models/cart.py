"""
Cart data models.

These models represent a shopping cart as it flows through checkout:
client JSON -> CartLine (untrusted) -> ValidatedLine -> ValidatedCart.

Thread Safety:
    - CartLine is parsed per request and never shared
    - ValidatedLine and ValidatedCart are frozen; validation threads
      produce them and the request thread consumes them
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Dict, Any, Optional, Tuple, Union

from .money import to_money


@dataclass
class CartLine:
    """
    One line of a client-submitted cart.

    UNTRUSTED: nothing here is believed until the cart validator has
    re-derived it from the provider. The claimed price is only ever used
    for the equality check.
    """

    product_id: Optional[str]
    """Storefront product id (e.g., 'ring-black')."""

    claimed_unit_price: Optional[Decimal]
    """Price the client says it showed the user."""

    quantity: Optional[int]
    """Requested quantity."""

    size: Optional[Union[int, str]] = None
    """Ring size, or None for unsized products."""

    color: Optional[str] = None
    """Color display name."""

    category: Optional[str] = None
    """Client-side category (informational only)."""

    name: Optional[str] = None
    """Client-side display name (informational only)."""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CartLine":
        """
        Create from a client cart item.

        Accepts the storefront's JSON keys (id, price, quantity, size,
        color/colorName, category, name). Unparseable values become None
        so the validator can report them.
        """
        try:
            price = to_money(data["price"]) if data.get("price") is not None else None
        except ValueError:
            price = None

        quantity = data.get("quantity")
        if isinstance(quantity, bool) or not isinstance(quantity, int):
            quantity = _parse_int(quantity)

        size = data.get("size")
        if size in ("", "N/A"):
            size = None
        elif isinstance(size, str) and size.isdigit():
            size = int(size)

        return cls(
            product_id=data.get("id") or data.get("productId") or None,
            claimed_unit_price=price,
            quantity=quantity,
            size=size,
            color=data.get("colorName") or data.get("color") or None,
            category=data.get("category") or None,
            name=data.get("name") or None,
        )


@dataclass(frozen=True)
class ValidatedLine:
    """
    A cart line whose identity and price were confirmed by the provider.

    Derived from the provider only - the client's price never flows here.
    """

    product_id: str
    """Storefront product id."""

    provider_product_id: str
    """Provider product id."""

    provider_price_id: str
    """Provider price id used for the check."""

    verified_unit_price: Decimal
    """Authoritative unit price."""

    line_total: Decimal
    """verified_unit_price x quantity."""

    quantity: int
    """Validated quantity (1-100)."""

    verified_at: datetime
    """When the provider price was fetched."""

    name: str = ""
    """Provider product name."""

    description: str = ""
    """Provider product description."""

    images: Tuple[str, ...] = ()
    """Provider product images."""

    size: Optional[int] = None
    """Validated size (None for unsized products)."""

    color: str = "Standard"
    """Color display name."""

    category: str = ""
    """Category from the product table."""

    currency: str = "usd"
    """Currency of the verified price."""

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for API responses and logs."""
        return {
            "productId": self.product_id,
            "stripeProductId": self.provider_product_id,
            "stripePriceId": self.provider_price_id,
            "name": self.name,
            "validatedPrice": float(self.verified_unit_price),
            "totalPrice": float(self.line_total),
            "quantity": self.quantity,
            "size": self.size,
            "color": self.color,
            "verifiedAt": self.verified_at.isoformat(),
        }


@dataclass(frozen=True)
class ValidatedCart:
    """
    A fully validated cart, ready to become a provider session.

    Exists only for the duration of one checkout request - never persisted.
    """

    lines: Tuple[ValidatedLine, ...]
    """Validated lines in cart order."""

    total_amount: Decimal
    """Sum of line totals, rounded half-up to 2dp."""

    validated_at: datetime
    """When validation completed."""

    currency: str = "usd"
    """Currency shared by all lines."""

    @property
    def item_count(self) -> int:
        """Number of distinct lines."""
        return len(self.lines)

    @property
    def total_quantity(self) -> int:
        """Total units across all lines."""
        return sum(line.quantity for line in self.lines)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for API responses."""
        return {
            "valid": True,
            "items": [line.to_dict() for line in self.lines],
            "totalAmount": float(self.total_amount),
            "itemCount": self.item_count,
            "validatedAt": self.validated_at.isoformat(),
        }


def _parse_int(value: Any) -> Optional[int]:
    """Parse an integer from a client value, or None."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, float):
        return int(value) if value.is_integer() else None
    try:
        return int(str(value).strip())
    except ValueError:
        return None
