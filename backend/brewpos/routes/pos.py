# Overview: Flask API routes for the POS counter (menu and in-store orders).

from flask import Blueprint, request, jsonify, g, current_app

from ..models import Product
from ..extensions import db
from ..enums import Channel
from ..errors import DomainError
from ..services import order_service, shift_service
from ..decorators import require_actor, require_staff
from .responses import error_response, internal_error, json_body, page_args


pos_bp = Blueprint("pos", __name__, url_prefix="/api/pos")


@pos_bp.get("/products")
@require_actor
@require_staff
def list_products_route():
    """Available products with their active variants, for the counter menu."""
    query = db.session.query(Product).filter_by(is_available=True)
    category = request.args.get("category")
    if category:
        query = query.filter_by(category=category)
    products = query.order_by(Product.category, Product.name).all()
    return jsonify({"products": [p.to_dict(include_variants=True) for p in products]}), 200


@pos_bp.post("/orders")
@require_actor
@require_staff
def create_pos_order_route():
    """
    Ring up an order on the location's active shift.

    Request body:
    {
        "items": [{"product_id": 1, "quantity": 2, "variant_ids": [3]}],
        "payment_method": "cash",
        "discount_percent": "10",         (optional)
        "discount_reason": "Employee 10%", (optional)
        "customer_name": "...",            (optional)
        "customer_phone": "...",           (optional)
        "notes": "...",                    (optional)
        "location": "main"                 (optional)
    }
    """
    try:
        order = order_service.create_pos_order(json_body(), actor=g.actor)
        return jsonify({"order": order_service.order_payload(order)}), 201

    except DomainError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create POS order")
        return internal_error()


@pos_bp.get("/orders")
@require_actor
@require_staff
def list_pos_orders_route():
    """
    POS orders, newest first.

    Query params: status, search (order number, customer name or phone),
    shift_id (defaults to the active shift when ?current_shift=1), page, per_page
    """
    try:
        shift_id = request.args.get("shift_id", type=int)
        if shift_id is None and request.args.get("current_shift") in ("1", "true"):
            shift = shift_service.get_active_shift(request.args.get("location"))
            if not shift:
                return jsonify({"orders": [], "pagination": None}), 200
            shift_id = shift.id

        page, per_page = page_args()
        orders, pagination = order_service.list_orders(
            channel=Channel.POS,
            status=request.args.get("status") or None,
            shift_id=shift_id,
            page=page,
            per_page=per_page,
            search=request.args.get("search") or None,
        )
        return jsonify({
            "orders": [order_service.order_payload(o) for o in orders],
            "pagination": pagination,
        }), 200

    except DomainError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list POS orders")
        return internal_error()


@pos_bp.get("/orders/pending-count")
@require_actor
@require_staff
def pending_count_route():
    """In-flight orders on the active shift (badge count)."""
    try:
        count = order_service.pending_pos_count(request.args.get("location"))
        return jsonify({"pending_count": count}), 200
    except DomainError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to count pending POS orders")
        return internal_error()
