# Overview: Flask API routes for product stock; parses input and returns JSON responses.

"""
Stock API Routes

DESIGN:
- Sales and cancellations move stock on their own (see order_service);
  these endpoints are for counting, restocking and write-offs
- Every change is logged; history is read back per product

SECURITY:
- Staff and admins only (X-Actor-Role)
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..errors import DomainError, ValidationError
from ..services import stock_service
from ..decorators import require_actor, require_staff
from .responses import error_response, internal_error, json_body, page_args


stock_bp = Blueprint("stock", __name__, url_prefix="/api/stock")


@stock_bp.get("/attention")
@require_actor
@require_staff
def attention_route():
    """Tracked products that are sold out or running low."""
    try:
        products = stock_service.products_needing_attention()
        return jsonify({"products": [p.to_dict() for p in products]}), 200
    except DomainError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list products needing attention")
        return internal_error()


@stock_bp.post("/products/<int:product_id>")
@require_actor
@require_staff
def adjust_stock_route(product_id: int):
    """
    Adjust a tracked product's count.

    Request body:
    {
        "adjustment_type": "add" | "remove" | "set",
        "quantity": 12,
        "reason": "restock",   (restock, adjustment, damaged, expired, returned)
        "notes": "..."         (optional)
    }
    """
    try:
        data = json_body()
        for field in ("adjustment_type", "quantity", "reason"):
            if data.get(field) is None:
                raise ValidationError(f"{field} is required")

        log = stock_service.adjust_stock(
            product_id,
            data["adjustment_type"],
            data["quantity"],
            data["reason"],
            actor=g.actor,
            notes=data.get("notes"),
        )
        return jsonify({"product": log.product.to_dict(), "stock_log": log.to_dict()}), 200

    except DomainError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to adjust stock for product %s", product_id)
        return internal_error()


@stock_bp.patch("/products/<int:product_id>/settings")
@require_actor
@require_staff
def stock_settings_route(product_id: int):
    """
    Turn stock tracking on or off.

    Request body:
    {
        "track_stock": true,
        "low_stock_threshold": 5  (optional)
    }
    """
    try:
        data = json_body()
        if "track_stock" not in data:
            raise ValidationError("track_stock is required")
        product = stock_service.set_tracking(
            product_id,
            data["track_stock"],
            low_stock_threshold=data.get("low_stock_threshold"),
            actor=g.actor,
        )
        return jsonify({"product": product.to_dict()}), 200

    except DomainError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update stock settings for product %s", product_id)
        return internal_error()


@stock_bp.get("/products/<int:product_id>/history")
@require_actor
@require_staff
def stock_history_route(product_id: int):
    """
    Stock changes for a product, newest first.

    Query params: reason, page, per_page
    """
    try:
        page, per_page = page_args()
        logs, pagination = stock_service.list_stock_history(
            product_id,
            reason=request.args.get("reason") or None,
            page=page,
            per_page=per_page,
        )
        return jsonify({
            "stock_logs": [log.to_dict() for log in logs],
            "pagination": pagination,
        }), 200

    except DomainError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list stock history for product %s", product_id)
        return internal_error()
