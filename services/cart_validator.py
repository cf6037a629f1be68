"""
Cart validation against live provider prices.

The client's cart is untrusted. Every line is re-derived from the payment
provider at checkout time: the catalog cache is never consulted here,
because a stale cached price is a fraud vector.

Per-line checks (each line independently):
    1. Required fields present (id, price, quantity)
    2. Quantity within 1-100
    3. Product id is in the product table
    4. Size absent, or inside the size range for the product's category
    5. Live product + default price fetched from the provider; price active
    6. Claimed price within 0.01 of the live price

Cart-level check: every line is priced in the currency of the first valid line.

Every failing line is reported. Any failure rejects the whole cart.

Retry policy:
    ProviderTransientError (timeouts, connection resets, rate limiting) is
    retried up to 3 attempts per line with 100ms backoff, doubling. Price
    mismatch, inactive price and unknown product fail immediately.

Thread Safety:
    Lines are validated on a bounded ThreadPoolExecutor. Workers share
    nothing but the provider client; each returns its own result object.
"""

from __future__ import annotations

import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, Union

from config import CheckoutSettings
from core.exceptions import CartValidationError, ProviderError, ProviderTransientError
from core.provider_client import PaymentProviderClient
from models.cart import CartLine, ValidatedCart, ValidatedLine
from models.catalog import ProductMapping
from models.money import CENT, cents_to_money
from logging_config import get_logger


# Module logger
logger = get_logger(__name__)


MAX_CART_LINES = 50
MIN_QUANTITY = 1
MAX_QUANTITY = 100
PRICE_TOLERANCE = Decimal("0.01")


@dataclass(frozen=True)
class LineFailure:
    """Why one cart line was rejected."""

    reason: str
    """Human-readable reason, already prefixed with the product id."""

    code: str
    """One of the CartValidationError codes."""


LineOutcome = Union[ValidatedLine, LineFailure]


class CartValidator:
    """
    Validates client carts against the payment provider.

    Side-effect free: only provider reads, safe to call repeatedly.
    """

    def __init__(
        self,
        provider: PaymentProviderClient,
        settings: CheckoutSettings,
        max_workers: Optional[int] = None,
        max_attempts: int = 3,
        retry_backoff_seconds: float = 0.1,
        sleep: Callable[[float], None] = time.sleep
    ):
        """
        Initialize the validator.

        Args:
            provider: Payment provider client
            settings: Checkout settings (product table, size ranges)
            max_workers: Concurrent provider calls per cart
                (default: settings.validation_concurrency)
            max_attempts: Attempts per line on transient provider errors
            retry_backoff_seconds: First retry delay, doubled each attempt
            sleep: Sleep function (injectable for tests)
        """
        self._provider = provider
        self._settings = settings
        self._max_workers = max(1, max_workers or settings.validation_concurrency)
        self._max_attempts = max(1, max_attempts)
        self._retry_backoff = retry_backoff_seconds
        self._sleep = sleep

    def validate(self, lines: Sequence[CartLine]) -> ValidatedCart:
        """
        Validate a cart.

        Args:
            lines: Client cart lines, in cart order

        Returns:
            ValidatedCart with provider-derived prices

        Raises:
            CartValidationError: With every collected reason if any line failed
        """
        if not lines:
            raise CartValidationError(["Cart is empty"])
        if len(lines) > MAX_CART_LINES:
            raise CartValidationError([f"Cart too large (max {MAX_CART_LINES} items)"])

        logger.info(f"Validating {len(lines)} cart line(s)...")

        workers = min(self._max_workers, len(lines))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="Validate") as pool:
            # map() keeps cart order
            outcomes: List[LineOutcome] = list(
                pool.map(self.validate_line, range(1, len(lines) + 1), lines)
            )
        outcomes = _reject_mixed_currencies(outcomes)

        failures = [o for o in outcomes if isinstance(o, LineFailure)]
        if failures:
            reasons = [f.reason for f in failures]
            code = _summary_code(failures)
            logger.warning(f"Cart validation failed ({code}): {'; '.join(reasons)}")
            raise CartValidationError(reasons, code=code)

        validated = tuple(o for o in outcomes if isinstance(o, ValidatedLine))
        total = sum((line.line_total for line in validated), Decimal("0"))
        total = total.quantize(CENT, rounding=ROUND_HALF_UP)

        cart = ValidatedCart(
            lines=validated,
            total_amount=total,
            validated_at=datetime.now(timezone.utc),
            currency=validated[0].currency,
        )
        logger.info(f"Cart validated: {cart.item_count} lines, ${cart.total_amount}")
        return cart

    def validate_line(self, position: int, line: CartLine) -> LineOutcome:
        """
        Validate one cart line.

        Never raises for user-correctable problems; they come back as a
        LineFailure so the caller can aggregate them.

        Args:
            position: 1-based position in the cart
            line: Client cart line
        """
        if line.product_id is None or line.claimed_unit_price is None or line.quantity is None:
            return LineFailure(
                f"Invalid cart item at position {position}: missing required fields",
                CartValidationError.VALIDATION_ERROR,
            )

        product_id = line.product_id

        if not MIN_QUANTITY <= line.quantity <= MAX_QUANTITY:
            return LineFailure(
                f"Invalid quantity for {product_id}: {line.quantity} "
                f"(must be {MIN_QUANTITY}-{MAX_QUANTITY})",
                CartValidationError.VALIDATION_ERROR,
            )

        mapping = self._settings.find_product(product_id)
        if mapping is None:
            return LineFailure(
                f"{product_id}: Invalid product: {product_id}",
                CartValidationError.INVALID_PRODUCT,
            )

        size_error = self._check_size(mapping, line.size)
        if size_error:
            return LineFailure(f"{product_id}: {size_error}", CartValidationError.VALIDATION_ERROR)

        try:
            product, price = self._fetch_with_retry(mapping)
        except ProviderTransientError:
            return LineFailure(
                f"{product_id}: Failed to validate after {self._max_attempts} attempts. "
                "Please try again.",
                CartValidationError.VALIDATION_ERROR,
            )
        except ProviderError as e:
            logger.error(f"Provider rejected lookup for {product_id}: {e}")
            return LineFailure(
                f"{product_id}: Product not found: {product_id}",
                CartValidationError.INVALID_PRODUCT,
            )

        if price is None:
            return LineFailure(
                f"{product_id}: No default price found for product: {product_id}",
                CartValidationError.INVALID_PRODUCT,
            )
        if not price.get("active", False):
            return LineFailure(
                f"{product_id}: Default price not active for product: {product_id}",
                CartValidationError.INVALID_PRODUCT,
            )

        actual = cents_to_money(price.get("unit_amount") or 0)
        claimed = line.claimed_unit_price
        if abs(actual - claimed) > PRICE_TOLERANCE:
            logger.error(
                f"PRICE MISMATCH for {product_id}: client sent ${claimed}, "
                f"provider has ${actual}"
            )
            return LineFailure(
                f"{product_id}: Price mismatch: Expected ${actual}, got ${claimed}",
                CartValidationError.PRICE_MISMATCH,
            )

        logger.debug(f"Price verified: {product_id} @ ${actual} x{line.quantity}")

        name = product.get("name") or product_id
        return ValidatedLine(
            product_id=product_id,
            provider_product_id=product.get("id", mapping.provider_product_id),
            provider_price_id=price.get("id", ""),
            verified_unit_price=actual,
            line_total=(actual * line.quantity).quantize(CENT, rounding=ROUND_HALF_UP),
            quantity=line.quantity,
            verified_at=datetime.now(timezone.utc),
            name=name,
            description=product.get("description") or name,
            images=tuple(product.get("images") or ()),
            size=line.size,
            color=line.color or "Standard",
            category=mapping.category,
            currency=price.get("currency", "usd"),
        )

    def _check_size(self, mapping: ProductMapping, size: Any) -> str:
        """Return an error message, or "" if the size is acceptable."""
        if size is None:
            return ""

        size_range = self._settings.size_domains.get(mapping.category)
        if size_range is None:
            return f"Size not supported for {mapping.category or 'this'} products"

        low, high = size_range
        if isinstance(size, bool) or not isinstance(size, int) or not low <= size <= high:
            return f"Invalid size {size} (must be {low}-{high})"
        return ""

    def _fetch_with_retry(self, mapping: ProductMapping) -> Tuple[Dict[str, Any], Any]:
        """
        Fetch the live product and its default price.

        Returns:
            (product, price) - price is None if the product has no default price

        Raises:
            ProviderTransientError: If every attempt failed transiently
            ProviderError: On an authoritative provider error (not retried)
        """
        delay = self._retry_backoff
        attempt = 0

        while True:
            attempt += 1
            try:
                product = self._provider.get_product(mapping.provider_product_id)

                default_price = product.get("default_price")
                if not default_price:
                    return product, None
                if isinstance(default_price, dict):
                    # Already expanded
                    return product, default_price
                return product, self._provider.get_price(default_price)

            except ProviderTransientError as e:
                if attempt >= self._max_attempts:
                    logger.error(
                        f"Giving up on {mapping.internal_id} after {attempt} attempts: {e}"
                    )
                    raise
                logger.warning(
                    f"Provider error validating {mapping.internal_id} "
                    f"(attempt {attempt}/{self._max_attempts}): {e}. Retrying in {delay:.2f}s"
                )
                self._sleep(delay)
                delay *= 2


def _summary_code(failures: List[LineFailure]) -> str:
    """Pick the cart-level code: price mismatch wins, then invalid product."""
    codes = {f.code for f in failures}
    if CartValidationError.PRICE_MISMATCH in codes:
        return CartValidationError.PRICE_MISMATCH
    if CartValidationError.INVALID_PRODUCT in codes:
        return CartValidationError.INVALID_PRODUCT
    return CartValidationError.VALIDATION_ERROR


def _reject_mixed_currencies(outcomes: List[LineOutcome]) -> List[LineOutcome]:
    """Turn validated lines priced in a different currency than the first into failures."""
    validated = [o for o in outcomes if isinstance(o, ValidatedLine)]
    if not validated:
        return outcomes

    cart_currency = validated[0].currency.lower()
    checked: List[LineOutcome] = []
    for outcome in outcomes:
        if isinstance(outcome, ValidatedLine) and outcome.currency.lower() != cart_currency:
            outcome = LineFailure(
                f"{outcome.product_id}: Currency {outcome.currency.upper()} does not match "
                f"cart currency {cart_currency.upper()}",
                CartValidationError.VALIDATION_ERROR,
            )
        checked.append(outcome)
    return checked
