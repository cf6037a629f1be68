"""
Create-checkout facade: validate the cart, build the session request,
submit it to the provider.
"""

from __future__ import annotations

from typing import Sequence

from config import CheckoutSettings
from core.exceptions import ProviderError
from core.provider_client import PaymentProviderClient
from models.cart import CartLine
from models.checkout import CheckoutResult
from services.cart_validator import CartValidator
from services.checkout_builder import CheckoutSessionBuilder, calculate_order_total
from logging_config import get_logger


logger = get_logger(__name__)


class CheckoutService:
    """Runs validate -> build -> submit for one checkout request."""

    def __init__(
        self,
        provider: PaymentProviderClient,
        validator: CartValidator,
        builder: CheckoutSessionBuilder,
        settings: CheckoutSettings
    ):
        self._provider = provider
        self._validator = validator
        self._builder = builder
        self._settings = settings

    def create_checkout(
        self,
        lines: Sequence[CartLine],
        customer_email: str,
        success_url: str,
        cancel_url: str
    ) -> CheckoutResult:
        """
        Validate the cart and open a hosted payment session.

        Raises:
            CartValidationError: Cart rejected (all reasons included)
            ProviderError: Session creation failed at the provider
        """
        logger.info(f"Checkout request: {len(lines)} line(s) for {customer_email}")

        cart = self._validator.validate(lines)
        request = self._builder.build_session(cart, customer_email, success_url, cancel_url)

        try:
            session = self._provider.create_session(request)
        except ProviderError as e:
            logger.error(f"Checkout session creation failed: {e}")
            raise

        totals = calculate_order_total(
            cart,
            tax_rate=self._settings.tax_rate,
            free_shipping_threshold=self._settings.free_shipping_threshold,
            shipping_cost=self._settings.standard_shipping_rate,
        )

        logger.info(f"Checkout session created: {session.get('id')} - ${cart.total_amount}")
        return CheckoutResult(
            session_id=session["id"],
            url=session.get("url") or "",
            validated_amount=cart.total_amount,
            totals=totals,
        )
