# Overview: Flask API routes for the storefront cart of the calling customer.

from flask import Blueprint, jsonify, g, current_app

from ..errors import DomainError, ValidationError
from ..services import cart_service
from ..validation import coerce_int, coerce_item
from ..decorators import require_actor
from .responses import error_response, internal_error, json_body


cart_bp = Blueprint("cart", __name__, url_prefix="/api/cart")


@cart_bp.get("")
@cart_bp.get("/")
@require_actor
def get_cart_route():
    """Cart lines with line totals and a delivery checkout preview."""
    try:
        return jsonify({"cart": cart_service.cart_totals(g.actor)}), 200
    except DomainError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to load cart")
        return internal_error()


@cart_bp.post("")
@cart_bp.post("/")
@require_actor
def add_to_cart_route():
    """
    Request body:
    {"product_id": 1, "quantity": 2, "variant_ids": [3, 5]}
    """
    try:
        data = json_body()
        data.setdefault("quantity", 1)
        item = coerce_item(data, 0)
        cart_item = cart_service.add_item(
            g.actor, item["product_id"], item["quantity"], item["variant_ids"]
        )
        return jsonify({
            "item": cart_item.to_dict(),
            "cart": cart_service.cart_totals(g.actor),
        }), 201

    except DomainError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to add to cart")
        return internal_error()


@cart_bp.patch("/items/<int:item_id>")
@require_actor
def update_cart_item_route(item_id: int):
    """Request body: {"quantity": 3}; a quantity below 1 removes the line."""
    try:
        data = json_body()
        if data.get("quantity") is None:
            raise ValidationError("quantity is required")
        cart_service.update_quantity(g.actor, item_id, coerce_int("quantity", data["quantity"]))
        return jsonify({"cart": cart_service.cart_totals(g.actor)}), 200

    except DomainError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update cart item %s", item_id)
        return internal_error()


@cart_bp.delete("/items/<int:item_id>")
@require_actor
def remove_cart_item_route(item_id: int):
    try:
        cart_service.remove_item(g.actor, item_id)
        return jsonify({"cart": cart_service.cart_totals(g.actor)}), 200
    except DomainError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to remove cart item %s", item_id)
        return internal_error()
