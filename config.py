"""
Configuration for the checkout backend.

Config classes read the environment (via .env). The checkout core never
does: it receives a static CheckoutSettings object built from app.config
at startup.
"""

import os
from dataclasses import dataclass, field
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple

from dotenv import load_dotenv

from models.catalog import ProductMapping

# Load .env file early so environment variables are available for Config class
# This must happen before the Config class is defined
load_dotenv(override=True)

# Base directory (where this file lives)
BASE_DIR = Path(__file__).resolve().parent


def _product_table() -> Dict[str, Dict[str, str]]:
    """
    Storefront product id -> provider product id and category.

    IMPORTANT: These ids must match the storefront's product data exactly.
    """
    return {
        "ring-black": {
            "provider_product_id": os.environ.get("STRIPE_PRODUCT_RING_BLACK", ""),
            "category": "ring",
        },
        "ring-white": {
            "provider_product_id": os.environ.get("STRIPE_PRODUCT_RING_WHITE", ""),
            "category": "ring",
        },
        "bracelet-cf-marble": {
            "provider_product_id": os.environ.get("STRIPE_PRODUCT_CF_MARBLE", ""),
            "category": "bracelet",
        },
        "bracelet-cf-volcano": {
            "provider_product_id": os.environ.get("STRIPE_PRODUCT_CF_VOLCANO", ""),
            "category": "bracelet",
        },
        "bracelet-gold-marble": {
            "provider_product_id": os.environ.get("STRIPE_PRODUCT_GOLD_MARBLE", ""),
            "category": "bracelet",
        },
        "bracelet-gold-volcano": {
            "provider_product_id": os.environ.get("STRIPE_PRODUCT_GOLD_VOLCANO", ""),
            "category": "bracelet",
        },
    }


class Config:
    """Default configuration for the Flask application."""

    # Flask settings
    SECRET_KEY = os.environ.get("FLASK_SECRET_KEY", "dev-secret-key")
    MAX_CONTENT_LENGTH = 1 * 1024 * 1024  # 1 MB request bodies
    ENVIRONMENT = os.environ.get("FLASK_ENV", "development")

    # Debug mode
    DEBUG = os.environ.get("FLASK_DEBUG", "1") == "1"

    # Storefront origin (for logs and CORS-style headers)
    CLIENT_URL = os.environ.get("CLIENT_URL", "http://localhost:5173")

    # ==========================================================================
    # Payment provider
    # ==========================================================================
    STRIPE_SECRET_KEY = os.environ.get("STRIPE_SECRET_KEY", "")
    STRIPE_WEBHOOK_SECRET = os.environ.get("STRIPE_WEBHOOK_SECRET", "")

    # Upper bound on every provider HTTP call
    PROVIDER_TIMEOUT_SECONDS = float(os.environ.get("PROVIDER_TIMEOUT_SECONDS", "10"))

    PRODUCT_TABLE = _product_table()

    # ==========================================================================
    # Checkout rules
    # ==========================================================================
    # Comma-separated ISO country codes
    ALLOWED_SHIPPING_COUNTRIES = os.environ.get("ALLOWED_SHIPPING_COUNTRIES", "US,CA,GB,AU")

    # Free shipping at or above this subtotal; below it STANDARD_SHIPPING_RATE applies
    # Default 0 = free shipping on every order
    FREE_SHIPPING_THRESHOLD = os.environ.get("FREE_SHIPPING_THRESHOLD", "0")
    STANDARD_SHIPPING_RATE = os.environ.get("STANDARD_SHIPPING_RATE", "10.00")

    # Estimated tax shown with the checkout response (provider computes real tax)
    TAX_RATE = os.environ.get("TAX_RATE", "0.08")

    # Max concurrent provider calls while validating one cart
    VALIDATION_CONCURRENCY = int(os.environ.get("VALIDATION_CONCURRENCY", "5"))

    # Seconds between background catalog refreshes (0 = no background thread)
    CATALOG_REFRESH_INTERVAL = float(os.environ.get("CATALOG_REFRESH_INTERVAL", "300"))

    # Log file directory (default: ./logs beside logging_config.py)
    LOG_DIR = os.environ.get("LOG_DIR") or None

    # ==========================================================================
    # Email
    # ==========================================================================
    SMTP_HOST = os.environ.get("SMTP_HOST", "")
    SMTP_PORT = int(os.environ.get("SMTP_PORT", "587"))
    SMTP_USER = os.environ.get("SMTP_USER", "")
    SMTP_PASS = os.environ.get("SMTP_PASS", "")
    OWNER_EMAIL = os.environ.get("OWNER_EMAIL", "")
    BUSINESS_NAME = os.environ.get("BUSINESS_NAME", "iTapRing")


class ProductionConfig(Config):
    """Production configuration."""
    DEBUG = False
    TESTING = False


class DevelopmentConfig(Config):
    """Development configuration."""
    DEBUG = True
    TESTING = False


class TestingConfig(Config):
    """Testing configuration."""
    DEBUG = False
    TESTING = True
    CATALOG_REFRESH_INTERVAL = 0.0
    STRIPE_SECRET_KEY = "sk_test_dummy"
    STRIPE_WEBHOOK_SECRET = "whsec_test"
    SMTP_HOST = ""
    PRODUCT_TABLE = {
        "ring-black": {"provider_product_id": "prod_ring_black", "category": "ring"},
        "ring-white": {"provider_product_id": "prod_ring_white", "category": "ring"},
        "bracelet-cf-marble": {"provider_product_id": "prod_cf_marble", "category": "bracelet"},
    }


@dataclass(frozen=True)
class CheckoutSettings:
    """
    Static configuration consumed by the checkout core.

    Built once at startup. Services receive this object instead of reading
    environment variables themselves.
    """

    products: Tuple[ProductMapping, ...] = ()
    """Configured product table (rows without a provider id are dropped)."""

    size_domains: Dict[str, Tuple[int, int]] = field(
        default_factory=lambda: {"ring": (6, 12)}
    )
    """Inclusive size range per category. Categories not listed take no size."""

    allowed_countries: Tuple[str, ...] = ("US", "CA", "GB", "AU")
    free_shipping_threshold: Decimal = Decimal("0")
    standard_shipping_rate: Decimal = Decimal("10.00")
    tax_rate: Decimal = Decimal("0.08")

    webhook_secret: str = ""
    provider_timeout_seconds: float = 10.0
    validation_concurrency: int = 5
    catalog_refresh_interval: float = 300.0

    smtp_host: str = ""
    smtp_port: int = 587
    smtp_user: str = ""
    smtp_password: str = ""
    owner_email: str = ""
    business_name: str = "iTapRing"

    @property
    def email_configured(self) -> bool:
        """Whether every SMTP setting needed to send email is present."""
        return bool(self.smtp_host and self.smtp_user and self.smtp_password and self.owner_email)

    def find_product(self, internal_id: str) -> Optional[ProductMapping]:
        """Look up a product table row by storefront id."""
        for mapping in self.products:
            if mapping.internal_id == internal_id:
                return mapping
        return None

    @classmethod
    def from_mapping(cls, config: Mapping[str, Any]) -> "CheckoutSettings":
        """
        Build settings from a Flask app.config (or any mapping).

        Args:
            config: Mapping with the Config class keys

        Returns:
            CheckoutSettings instance
        """
        table = config.get("PRODUCT_TABLE", {}) or {}
        products = tuple(
            ProductMapping(
                internal_id=internal_id,
                provider_product_id=row.get("provider_product_id", ""),
                category=row.get("category", ""),
            )
            for internal_id, row in table.items()
            if row.get("provider_product_id")
        )

        countries = config.get("ALLOWED_SHIPPING_COUNTRIES", "US,CA,GB,AU")
        if isinstance(countries, str):
            countries = [c.strip().upper() for c in countries.split(",") if c.strip()]

        return cls(
            products=products,
            allowed_countries=tuple(countries),
            free_shipping_threshold=Decimal(str(config.get("FREE_SHIPPING_THRESHOLD", "0"))),
            standard_shipping_rate=Decimal(str(config.get("STANDARD_SHIPPING_RATE", "10.00"))),
            tax_rate=Decimal(str(config.get("TAX_RATE", "0.08"))),
            webhook_secret=config.get("STRIPE_WEBHOOK_SECRET", ""),
            provider_timeout_seconds=float(config.get("PROVIDER_TIMEOUT_SECONDS", 10.0)),
            validation_concurrency=int(config.get("VALIDATION_CONCURRENCY", 5)),
            catalog_refresh_interval=float(config.get("CATALOG_REFRESH_INTERVAL", 300.0)),
            smtp_host=config.get("SMTP_HOST", ""),
            smtp_port=int(config.get("SMTP_PORT", 587)),
            smtp_user=config.get("SMTP_USER", ""),
            smtp_password=config.get("SMTP_PASS", ""),
            owner_email=config.get("OWNER_EMAIL", ""),
            business_name=config.get("BUSINESS_NAME", "iTapRing"),
        )
