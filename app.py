"""
Checkout backend - Flask Application Entry Point.

This is a slim app factory that:
1. Configures logging
2. Builds the payment provider client (fail-fast without a key)
3. Creates the services and starts the catalog refresh thread
4. Registers route blueprints
5. Sets up error handlers and security headers

ARCHITECTURE:
    Main Thread
    ├── Flask request handling
    └── Cleanup on shutdown (catalog thread stop)

    Catalog Thread (background, optional)
    └── Fixed-interval catalog refresh

    Validate_N Threads (per checkout request)
    └── Bounded pool of live price lookups

Fulfillment runs on the request thread of whichever trigger arrives:
the client's verify call or the provider's webhook.
"""

from __future__ import annotations

import atexit
import logging
import os
from typing import Optional

import click
from flask import Flask, request
from pydantic import ValidationError
from werkzeug.exceptions import HTTPException

from config import CheckoutSettings
from logging_config import setup_logging, get_logger
from core.exceptions import (
    CartValidationError,
    CatalogFetchError,
    FulfillmentError,
    OrderNotFoundError,
    PaymentNotCompleteError,
    ProviderError,
)
from core.provider_client import PaymentProviderClient, StripeProviderClient
from services.cart_validator import CartValidator
from services.catalog_service import CatalogService
from services.checkout_builder import CheckoutSessionBuilder
from services.checkout_service import CheckoutService
from services.fulfillment_service import FulfillmentService
from services.notification_service import NotificationDispatcher, create_dispatcher
from services.order_ids import OrderIdGenerator
from services.order_store import InMemoryOrderStore, OrderStore
from services.webhook_service import WebhookService
from routes import register_blueprints
from routes.schemas import format_errors


# Module logger (configured after setup_logging)
logger = get_logger(__name__)


VALIDATION_MESSAGES = {
    CartValidationError.PRICE_MISMATCH: "Price mismatch detected. Please refresh and try again.",
    CartValidationError.INVALID_PRODUCT: "One or more products are no longer available.",
    CartValidationError.VALIDATION_ERROR: "Validation failed",
}

SECURITY_HEADERS = {
    "X-Frame-Options": "DENY",
    "X-Content-Type-Options": "nosniff",
    "X-XSS-Protection": "1; mode=block",
    "Referrer-Policy": "strict-origin-when-cross-origin",
}


def create_app(
    config_object: str = "config.Config",
    provider_client: Optional[PaymentProviderClient] = None,
    order_store: Optional[OrderStore] = None,
    notifier: Optional[NotificationDispatcher] = None,
    id_generator: Optional[OrderIdGenerator] = None
) -> Flask:
    """
    Application factory - creates and configures Flask app.

    Collaborators can be injected (tests, alternative backends); anything
    not injected is built from configuration.

    Args:
        config_object: Import path of the config class
        provider_client: Payment provider client (default: Stripe from STRIPE_SECRET_KEY)
        order_store: Order store (default: in-memory)
        notifier: Notification dispatcher (default: SMTP if configured, else logging)
        id_generator: Order id strategy (default: timestamp-based)

    Returns:
        Configured Flask application

    Raises:
        ValueError: If no provider client is injected and STRIPE_SECRET_KEY is empty
    """
    app = Flask(__name__)
    app.config.from_object(config_object)

    # Configure logging
    log_level = logging.DEBUG if app.config.get("DEBUG") else logging.INFO
    enable_file_logging = app.config.get("ENVIRONMENT") == "production" and not app.config.get("TESTING")

    root_logger = setup_logging(
        app_name="shop_checkout",
        log_level=log_level,
        log_dir=app.config.get("LOG_DIR"),
        enable_file_logging=enable_file_logging,
    )

    # Set Flask's logger to use our configured logger
    app.logger.handlers = root_logger.handlers
    app.logger.setLevel(log_level)

    logger.info(f"Starting checkout backend in {app.config.get('ENVIRONMENT')} mode")

    settings = CheckoutSettings.from_mapping(app.config)
    app.config["CHECKOUT_SETTINGS"] = settings

    if not settings.products:
        logger.warning("No provider product ids configured - every checkout will be rejected")

    # =========================================================================
    # PROVIDER CLIENT (FAIL-FAST)
    # =========================================================================

    if provider_client is None:
        provider_client = StripeProviderClient(
            api_key=app.config.get("STRIPE_SECRET_KEY", ""),
            timeout_seconds=settings.provider_timeout_seconds,
            logger=get_logger("core.provider_client"),
        )
    app.config["PROVIDER_CLIENT"] = provider_client

    # =========================================================================
    # SERVICES INITIALIZATION
    # =========================================================================

    catalog_service = CatalogService(
        provider_client,
        settings.products,
        refresh_interval_seconds=settings.catalog_refresh_interval,
    )
    catalog_service.start()
    app.config["CATALOG_SERVICE"] = catalog_service

    checkout_service = CheckoutService(
        provider_client,
        CartValidator(provider_client, settings),
        CheckoutSessionBuilder(settings),
        settings,
    )
    app.config["CHECKOUT_SERVICE"] = checkout_service

    order_store = order_store or InMemoryOrderStore()
    app.config["ORDER_STORE"] = order_store

    fulfillment_service = FulfillmentService(
        provider_client,
        order_store,
        notifier or create_dispatcher(settings),
        id_generator=id_generator,
    )
    app.config["FULFILLMENT_SERVICE"] = fulfillment_service

    app.config["WEBHOOK_SERVICE"] = WebhookService(
        provider_client,
        fulfillment_service,
        catalog_service,
        order_store,
        settings.webhook_secret,
    )

    if not settings.webhook_secret:
        logger.warning("STRIPE_WEBHOOK_SECRET not set - webhooks will be rejected")

    logger.info("Services initialized")

    # =========================================================================
    # CLEANUP REGISTRATION
    # =========================================================================

    def cleanup():
        """Stop the catalog thread on interpreter exit, if it is still running."""
        # Logging streams may already be closed at exit; stay silent when idle
        if not catalog_service.is_running:
            return
        logger.info("Shutting down...")
        catalog_service.stop()
        logger.info("Shutdown complete")

    atexit.register(cleanup)

    # =========================================================================
    # REGISTER BLUEPRINTS
    # =========================================================================

    register_blueprints(app)

    # =========================================================================
    # CLI COMMANDS
    # =========================================================================

    @app.cli.command("sync-orders")
    @click.option("--limit", default=100, show_default=True, help="Recent sessions to inspect")
    def sync_orders(limit):
        """Create orders for recent paid sessions that have none (no emails sent)."""
        counts = fulfillment_service.sync_paid_sessions(limit=limit)
        click.echo(
            f"Synced {counts['synced']}, existing {counts['existing']}, "
            f"skipped {counts['skipped']}, failed {counts['failed']} "
            f"of {counts['total']} sessions"
        )

    # =========================================================================
    # REQUEST HOOKS
    # =========================================================================

    @app.before_request
    def log_payment_requests():
        if request.path.startswith("/api/stripe"):
            logger.info(f"{request.method} {request.path} from {request.remote_addr}")

    @app.after_request
    def add_security_headers(response):
        for header, value in SECURITY_HEADERS.items():
            response.headers[header] = value
        return response

    # =========================================================================
    # ERROR HANDLERS
    # =========================================================================

    @app.errorhandler(CartValidationError)
    def handle_cart_validation(e):
        return {
            "success": False,
            "message": VALIDATION_MESSAGES.get(e.code, "Validation failed"),
            "error": e.message,
            "errors": e.reasons,
            "code": e.code,
        }, 400

    @app.errorhandler(ValidationError)
    def handle_request_validation(e):
        return {"success": False, "message": "Validation error", "errors": format_errors(e)}, 400

    @app.errorhandler(PaymentNotCompleteError)
    def handle_payment_not_complete(e):
        return {
            "success": False,
            "message": "Payment not completed",
            "paymentStatus": e.payment_status,
        }, 400

    @app.errorhandler(OrderNotFoundError)
    def handle_order_not_found(e):
        return {"success": False, "message": e.message}, 404

    @app.errorhandler(CatalogFetchError)
    def handle_catalog_fetch(e):
        return {"success": False, "message": e.message}, 503

    @app.errorhandler(FulfillmentError)
    def handle_fulfillment(e):
        logger.error(f"Fulfillment failed: {e}")
        return {"success": False, "message": "Could not confirm your order. Please try again."}, 502

    @app.errorhandler(ProviderError)
    def handle_provider(e):
        logger.error(f"Payment provider error: {e}")
        return {"success": False, "message": "Payment provider unavailable. Please try again."}, 502

    @app.errorhandler(HTTPException)
    def handle_http(e):
        return {"success": False, "message": e.description}, e.code

    @app.errorhandler(Exception)
    def handle_unexpected(e):
        # Never leak internals to untrusted callers
        logger.error(f"Unhandled error: {e}", exc_info=True)
        return {"success": False, "message": "Internal server error"}, 500

    logger.info("Application initialized successfully")
    return app


if __name__ == "__main__":
    app = create_app()
    debug_mode = os.environ.get("FLASK_DEBUG", "1") == "1"
    app.run(port=int(os.environ.get("PORT", "3000")), debug=debug_mode)
