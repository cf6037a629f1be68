"""
Health check route.

Handles:
- /health - Service status (catalog cache, order store, email)
"""

from flask import Blueprint, current_app

from logging_config import get_logger


# Module logger
logger = get_logger(__name__)

health_bp = Blueprint("health", __name__)


@health_bp.route("/health", methods=["GET"])
def health():
    """Health check endpoint with service status."""
    health_status = {
        "status": "ok",
        "environment": current_app.config.get("ENVIRONMENT", "unknown"),
        "checks": {}
    }

    # Catalog cache (reads the snapshot as-is; never triggers a fetch)
    catalog_service = current_app.config.get("CATALOG_SERVICE")
    if catalog_service:
        snapshot = catalog_service.get_snapshot()
        health_status["checks"]["catalog"] = {
            "products": len(snapshot.entries),
            "age_seconds": int(snapshot.age_seconds),
            "is_stale": snapshot.is_stale,
            "background_refresh": catalog_service.is_running,
        }
        if snapshot.is_empty:
            health_status["status"] = "degraded"
    else:
        health_status["checks"]["catalog"] = "not_available"
        health_status["status"] = "degraded"

    order_store = current_app.config.get("ORDER_STORE")
    if order_store:
        health_status["checks"]["orders"] = len(order_store.list_all())
    else:
        health_status["checks"]["orders"] = "not_available"
        health_status["status"] = "degraded"

    settings = current_app.config.get("CHECKOUT_SETTINGS")
    health_status["checks"]["email"] = (
        "configured" if settings and settings.email_configured else "not_configured"
    )

    return health_status
