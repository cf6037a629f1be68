"""
Payment routes.

Handles:
- POST /api/stripe/create-checkout-session - Validate cart, open hosted payment page
- GET  /api/stripe/verify-session/<id>     - Client-side fulfillment trigger
- POST /api/stripe/webhook                 - Provider-side fulfillment trigger

Both fulfillment triggers run the same idempotent pipeline, so whichever
fires first creates the order and the other gets the same order back.
"""

import re

import bleach
from flask import Blueprint, current_app, request
from pydantic import ValidationError

from core.exceptions import (
    CheckoutError,
    SignatureVerificationError,
    WebhookConfigurationError,
)
from models.cart import CartLine
from routes.schemas import CreateCheckoutRequest, format_errors
from logging_config import get_logger


# Module logger
logger = get_logger(__name__)

checkout_bp = Blueprint("checkout", __name__, url_prefix="/api/stripe")

SESSION_ID_PATTERN = re.compile(r"^cs_[A-Za-z0-9_]+$")

# Client text that ends up in line item descriptions, metadata and emails
FREE_TEXT_FIELDS = ("name", "color", "colorName", "category")
MAX_TEXT_LENGTH = 100


def _sanitize_text(text, max_length: int = MAX_TEXT_LENGTH) -> str:
    """Sanitize user input text."""
    if not text:
        return ""
    text = text.strip()
    text = bleach.clean(text, tags=[], strip=True)
    if max_length and len(text) > max_length:
        text = text[:max_length]
    return text


def _cart_line(item) -> CartLine:
    data = item.model_dump()
    for key in FREE_TEXT_FIELDS:
        data[key] = _sanitize_text(data.get(key)) or None
    return CartLine.from_dict(data)


@checkout_bp.route("/create-checkout-session", methods=["POST"])
def create_checkout_session():
    """
    Validate the cart against live provider prices and create a session.

    The client's prices are only compared, never charged. Validation and
    provider errors are turned into JSON by the app's error handlers.
    """
    body = request.get_json(silent=True)
    if body is None:
        return {"success": False, "message": "Request body must be JSON"}, 400

    try:
        payload = CreateCheckoutRequest.model_validate(body)
    except ValidationError as e:
        errors = format_errors(e)
        logger.warning(f"Checkout request rejected: {errors}")
        return {"success": False, "message": "Validation error", "errors": errors}, 400

    checkout_service = current_app.config["CHECKOUT_SERVICE"]

    lines = [_cart_line(item) for item in payload.items]
    result = checkout_service.create_checkout(
        lines,
        customer_email=str(payload.customerEmail),
        success_url=payload.successUrl,
        cancel_url=payload.cancelUrl,
    )
    return result.to_dict()


@checkout_bp.route("/verify-session/<session_id>", methods=["GET"])
def verify_session(session_id: str):
    """
    Fulfill (or look up) the order for a completed checkout session.

    Called by the storefront's success page. Safe to call repeatedly.
    """
    if not SESSION_ID_PATTERN.match(session_id):
        return {"success": False, "message": "Invalid session ID format"}, 400

    fulfillment_service = current_app.config["FULFILLMENT_SERVICE"]
    order = fulfillment_service.fulfill(session_id)

    response = {"success": True}
    response.update(order.to_dict())
    return response


@checkout_bp.route("/webhook", methods=["POST"])
def webhook():
    """
    Provider webhook endpoint.

    The raw body is passed through untouched - signature verification
    needs the exact bytes the provider signed.
    """
    webhook_service = current_app.config["WEBHOOK_SERVICE"]

    payload = request.get_data(cache=False)
    signature = request.headers.get("Stripe-Signature")

    try:
        result = webhook_service.handle(payload, signature)

    except WebhookConfigurationError as e:
        logger.error(f"Webhook configuration error: {e}")
        return {"success": False, "message": "Webhook configuration error"}, 500

    except SignatureVerificationError as e:
        logger.warning(f"Webhook rejected: {e.message}")
        return {"success": False, "message": e.message}, 400

    except CheckoutError as e:
        # 5xx makes the provider redeliver; fulfillment is idempotent
        logger.error(f"Webhook handler error: {e}")
        return {"error": "Webhook handler failed"}, 500

    return result
