# Overview: Flask API routes for orders (delivery checkout, lookup, status changes).

"""
Order API Routes

WHY: One lifecycle endpoint for both channels. The order's channel decides
which transitions are legal; the response always carries the next valid
statuses so the UI can render only legal actions.

SECURITY:
- Customers place delivery orders and read their own orders
- Staff and admins read any order and change statuses
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..errors import DomainError, NotFoundError, ValidationError
from ..services import order_service
from ..decorators import require_actor, require_staff, STAFF_ROLES
from .responses import error_response, internal_error, json_body, page_args


orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


def _is_staff() -> bool:
    return g.actor_role in STAFF_ROLES


@orders_bp.post("")
@orders_bp.post("/")
@require_actor
def create_delivery_order_route():
    """
    Check out a delivery order for the calling customer.

    Request body:
    {
        "selected_items": [12, 13],          (cart item ids) or
        "buy_now_item": {"product_id": 1, "quantity": 1, "variant_ids": []},
        "delivery_address": "...",
        "delivery_contact": "09171234567",
        "delivery_instructions": "...",      (optional)
        "payment_method": "gcash",
        "delivery_fee": "50.00"              (optional)
    }
    """
    try:
        order = order_service.create_delivery_order(json_body(), customer_id=g.actor, actor=g.actor)
        return jsonify({"order": order_service.order_payload(order)}), 201

    except DomainError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create delivery order")
        return internal_error()


@orders_bp.get("")
@orders_bp.get("/")
@require_actor
def list_orders_route():
    """
    Orders newest first.

    Customers only see their own; staff may filter by channel, status,
    shift_id and customer_id.
    """
    try:
        page, per_page = page_args()
        customer_id = request.args.get("customer_id") if _is_staff() else g.actor
        orders, pagination = order_service.list_orders(
            channel=request.args.get("channel") or None,
            status=request.args.get("status") or None,
            shift_id=request.args.get("shift_id", type=int) if _is_staff() else None,
            customer_id=customer_id,
            page=page,
            per_page=per_page,
        )
        return jsonify({
            "orders": [order_service.order_payload(o) for o in orders],
            "pagination": pagination,
        }), 200

    except DomainError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list orders")
        return internal_error()


@orders_bp.get("/<int:order_id>")
@require_actor
def get_order_route(order_id: int):
    try:
        order = order_service.get_order(order_id)
        # Customers cannot tell someone else's order from a missing one
        if not _is_staff() and order.customer_id != g.actor:
            raise NotFoundError("Order not found", details={"order_id": order_id})
        return jsonify({"order": order_service.order_payload(order, include_logs=True)}), 200

    except DomainError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to get order %s", order_id)
        return internal_error()


@orders_bp.patch("/<int:order_id>/status")
@require_actor
@require_staff
def update_order_status_route(order_id: int):
    """
    Move an order to a new status.

    Request body:
    {
        "status": "preparing",
        "reason": "...",   (required when status is "failed")
        "notes": "..."     (optional)
    }

    422 InvalidTransition details carry from_status, to_status and
    valid_transitions.
    """
    try:
        data = json_body()
        status = data.get("status")
        if status is None or not str(status).strip():
            raise ValidationError("status is required")

        order = order_service.update_order_status(
            order_id,
            str(status).strip(),
            g.actor,
            reason=data.get("reason"),
            notes=data.get("notes"),
        )
        return jsonify({"order": order_service.order_payload(order, include_logs=True)}), 200

    except DomainError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update status of order %s", order_id)
        return internal_error()
