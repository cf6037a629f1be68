"""
Checkout session builder.

Turns a ValidatedCart into a ready-to-submit ProviderSessionRequest. Pure
transformation - no network calls. The caller submits the request.

Cart metadata:
    The completion webhook may not carry the full cart, so the session
    metadata holds a compact copy of it:

        itemCount, totalQuantity, validatedAmount, validatedAt, itemsSummary
        item{n}_id, item{n}_name, item{n}_color, item{n}_size,
        item{n}_quantity, item{n}_price, item{n}_verified_at

    The provider allows 50 metadata keys of up to 500 characters each.
    Per-line keys are written for as many lines as fit; lines past that
    are recovered from the provider line items alone.
    decode_cart_metadata() reverses the encoding.
"""

from __future__ import annotations

from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Mapping, Optional

from config import CheckoutSettings
from models.cart import ValidatedCart, ValidatedLine
from models.checkout import (
    CartMetadataItem,
    OrderTotals,
    ProviderSessionRequest,
    SessionLineItem,
)
from models.money import CENT, money_to_cents, to_money
from logging_config import get_logger


logger = get_logger(__name__)


MAX_METADATA_KEYS = 50
MAX_METADATA_VALUE_LENGTH = 500

_CART_KEYS = ("itemCount", "totalQuantity", "validatedAmount", "validatedAt", "itemsSummary")
_LINE_FIELDS = ("id", "name", "color", "size", "quantity", "price", "verified_at")

NO_SIZE = "N/A"


class CheckoutSessionBuilder:
    """Builds provider session requests from validated carts."""

    def __init__(self, settings: CheckoutSettings):
        self._settings = settings

    def build_session(
        self,
        cart: ValidatedCart,
        customer_email: str,
        success_url: str,
        cancel_url: str
    ) -> ProviderSessionRequest:
        """
        Build the provider session request for a validated cart.

        Line items are priced from the verified price only. The client's
        claimed price never reaches this point.

        Args:
            cart: Validated cart
            customer_email: Customer email (pre-fills the payment page)
            success_url: Redirect after payment
            cancel_url: Redirect on cancel

        Returns:
            ProviderSessionRequest ready for PaymentProviderClient.create_session()
        """
        line_items = tuple(
            _line_item(index, line) for index, line in enumerate(cart.lines, start=1)
        )

        shipping = shipping_for(
            cart.total_amount,
            self._settings.free_shipping_threshold,
            self._settings.standard_shipping_rate,
        )

        request = ProviderSessionRequest(
            line_items=line_items,
            customer_email=customer_email,
            success_url=success_url,
            cancel_url=cancel_url,
            currency=cart.currency,
            metadata=encode_cart_metadata(cart),
            allowed_countries=self._settings.allowed_countries,
            shipping_amount=money_to_cents(shipping),
            shipping_display_name="Free Shipping" if shipping == 0 else "Standard Shipping",
            payment_intent_metadata={
                "integration": "shop_checkout",
                "validated_at": cart.validated_at.isoformat(),
            },
        )

        logger.debug(
            f"Built session request: {len(line_items)} line items, ${cart.total_amount}, "
            f"shipping ${shipping}"
        )
        return request


def _line_item(index: int, line: ValidatedLine) -> SessionLineItem:
    if line.size is not None:
        name = f"{line.name} - Size {line.size}"
        description = f"{line.color} - Size {line.size}"
    else:
        name = line.name
        description = line.color

    return SessionLineItem(
        name=name,
        description=description,
        unit_amount=money_to_cents(line.verified_unit_price),
        quantity=line.quantity,
        currency=line.currency,
        images=line.images,
        metadata={
            "item_index": str(index),
            "product_id": line.product_id,
            "stripe_product_id": line.provider_product_id,
            "size": _size_text(line.size),
            "color": line.color,
            "verified_at": line.verified_at.isoformat(),
        },
    )


def encode_cart_metadata(cart: ValidatedCart) -> Dict[str, str]:
    """Compact string-only encoding of a validated cart."""
    summary = " | ".join(
        f"[{i}] {line.name} ({line.color})"
        f"{f' Size: {line.size}' if line.size is not None else ''} x{line.quantity}"
        for i, line in enumerate(cart.lines, start=1)
    )

    metadata = {
        "itemCount": str(cart.item_count),
        "totalQuantity": str(cart.total_quantity),
        "validatedAmount": f"{cart.total_amount:.2f}",
        "validatedAt": cart.validated_at.isoformat(),
        "itemsSummary": _truncate(summary),
    }

    line_budget = (MAX_METADATA_KEYS - len(_CART_KEYS)) // len(_LINE_FIELDS)
    if cart.item_count > line_budget:
        logger.warning(
            f"Cart has {cart.item_count} lines; metadata keeps details for the first {line_budget}"
        )

    for n, line in enumerate(cart.lines[:line_budget], start=1):
        metadata.update({
            f"item{n}_id": line.product_id,
            f"item{n}_name": _truncate(line.name),
            f"item{n}_color": _truncate(line.color),
            f"item{n}_size": _size_text(line.size),
            f"item{n}_quantity": str(line.quantity),
            f"item{n}_price": f"{line.verified_unit_price:.2f}",
            f"item{n}_verified_at": line.verified_at.isoformat(),
        })

    return metadata


def decode_cart_metadata(metadata: Optional[Mapping[str, str]]) -> Dict[int, CartMetadataItem]:
    """
    Recover cart lines from session metadata.

    Args:
        metadata: Session metadata as returned by the provider

    Returns:
        Items keyed by 1-based line number. Lines without an item{n}_id
        key are absent.
    """
    items: Dict[int, CartMetadataItem] = {}
    if not metadata:
        return items

    n = 1
    while f"item{n}_id" in metadata:
        prefix = f"item{n}_"
        size_text = metadata.get(f"{prefix}size")
        quantity_text = metadata.get(f"{prefix}quantity")
        price_text = metadata.get(f"{prefix}price")

        items[n] = CartMetadataItem(
            product_id=metadata[f"{prefix}id"],
            name=metadata.get(f"{prefix}name") or None,
            color=metadata.get(f"{prefix}color") or None,
            size=int(size_text) if size_text and size_text.isdigit() else None,
            quantity=int(quantity_text) if quantity_text and quantity_text.isdigit() else None,
            price=_parse_money(price_text),
            verified_at=metadata.get(f"{prefix}verified_at") or None,
        )
        n += 1

    return items


def shipping_for(
    subtotal: Decimal,
    free_shipping_threshold: Decimal,
    shipping_cost: Decimal
) -> Decimal:
    """Free at or above the threshold, otherwise the flat rate."""
    if subtotal >= free_shipping_threshold:
        return Decimal("0.00")
    return shipping_cost.quantize(CENT, rounding=ROUND_HALF_UP)


def calculate_order_total(
    cart: ValidatedCart,
    tax_rate: Decimal = Decimal("0.08"),
    free_shipping_threshold: Decimal = Decimal("100"),
    shipping_cost: Decimal = Decimal("10.00")
) -> OrderTotals:
    """
    Estimate subtotal, tax, shipping and total for a cart.

    The provider computes the amount actually charged; this is the
    estimate shown alongside the checkout response.
    """
    subtotal = cart.total_amount.quantize(CENT, rounding=ROUND_HALF_UP)
    tax = (subtotal * tax_rate).quantize(CENT, rounding=ROUND_HALF_UP)
    shipping = shipping_for(subtotal, free_shipping_threshold, shipping_cost)
    return OrderTotals(
        subtotal=subtotal,
        tax=tax,
        shipping=shipping,
        total=subtotal + tax + shipping,
    )


def _size_text(size: Optional[int]) -> str:
    return str(size) if size is not None else NO_SIZE


def _truncate(value: str) -> str:
    return value[:MAX_METADATA_VALUE_LENGTH]


def _parse_money(value: Optional[str]) -> Optional[Decimal]:
    if not value:
        return None
    try:
        return to_money(value)
    except ValueError:
        return None
