"""
Flask route blueprints for the checkout backend.

This module contains all route handlers organized by functionality:
- health: Service status
- products: Catalog listing and forced refresh
- checkout: Create checkout, verify session, provider webhook
- orders: Order lookup

Each blueprint is registered with the Flask app in create_app().
"""

from .health import health_bp
from .products import products_bp
from .checkout import checkout_bp
from .orders import orders_bp

__all__ = [
    "health_bp",
    "products_bp",
    "checkout_bp",
    "orders_bp",
]


def register_blueprints(app):
    """
    Register all blueprints with the Flask app.

    Args:
        app: Flask application instance
    """
    app.register_blueprint(health_bp)
    app.register_blueprint(products_bp)
    app.register_blueprint(checkout_bp)
    app.register_blueprint(orders_bp)
