"""
Order routes.

Handles:
- GET /api/orders/<order_id> - Order lookup (404 if unknown)
"""

from flask import Blueprint, current_app


orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


@orders_bp.route("/<order_id>", methods=["GET"])
def get_order(order_id: str):
    """Return one order. OrderNotFoundError becomes a 404."""
    order_store = current_app.config["ORDER_STORE"]
    order = order_store.get_by_id(order_id)

    response = {"success": True}
    response.update(order.to_dict())
    return response
