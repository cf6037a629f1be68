"""
Product catalog routes.

Handles:
- GET  /api/products         - Catalog listing (cached, stale-but-available)
- POST /api/products/refresh - Force a catalog refresh

Browsing only. Checkout never trusts these cached prices.
"""

from flask import Blueprint, current_app

from logging_config import get_logger


# Module logger
logger = get_logger(__name__)

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.route("", methods=["GET"])
def list_products():
    """List active products with their current prices."""
    catalog_service = current_app.config["CATALOG_SERVICE"]

    products = catalog_service.list_products()
    snapshot = catalog_service.get_snapshot()

    return {
        "success": True,
        "data": [p.to_dict() for p in products],
        "count": len(products),
        "isStale": snapshot.is_stale,
    }


@products_bp.route("/refresh", methods=["POST"])
def refresh_products():
    """
    Refresh the catalog from the provider now.

    CatalogFetchError is answered with 503 by the app's error handler.
    """
    catalog_service = current_app.config["CATALOG_SERVICE"]

    snapshot = catalog_service.refresh()
    logger.info(f"Catalog refreshed on request: {len(snapshot.entries)} products")

    return {
        "success": True,
        "count": len(snapshot.entries),
        "fetchedAt": snapshot.fetched_at.isoformat(),
    }
