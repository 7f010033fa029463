# Overview: Flask API routes for POS shift operations; parses input and returns JSON responses.

"""
POS Shift API Routes

WHY: Cash drawer accountability at the counter.

DESIGN:
- Shift lifecycle: open -> close (immutable once closed)
- Closing is a blind count: while a shift is active its sales totals,
  expected cash and variance are not returned
- A close is refused while any of the shift's orders is still in flight;
  the refusal lists those orders

SECURITY:
- Staff and admins only (X-Actor-Role)
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..errors import DomainError, ValidationError
from ..services import shift_service
from ..decorators import require_actor, require_staff
from brewpos.time_utils import parse_iso_date
from .responses import error_response, internal_error, json_body, page_args


shifts_bp = Blueprint("shifts", __name__, url_prefix="/api/pos/shifts")


@shifts_bp.post("/open")
@require_actor
@require_staff
def open_shift_route():
    """
    Open a shift for a location.

    Request body:
    {
        "opening_cash_float": "1000.00",
        "location": "main"  (optional)
    }
    """
    try:
        data = json_body()
        if data.get("opening_cash_float") is None:
            raise ValidationError("opening_cash_float is required")

        shift = shift_service.open_shift(
            data["opening_cash_float"],
            actor=g.actor,
            location=data.get("location"),
        )
        return jsonify({"shift": shift.to_dict()}), 201

    except DomainError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to open shift")
        return internal_error()


@shifts_bp.get("/active")
@require_actor
@require_staff
def active_shift_route():
    """
    Active shift for ?location= (default location otherwise), or null.

    Includes orders_count and in_flight_orders_count; sales stay hidden.
    """
    try:
        shift = shift_service.get_active_shift(request.args.get("location"))
        if not shift:
            return jsonify({"active_shift": None}), 200
        return jsonify({"active_shift": shift_service.get_shift_summary(shift.id)}), 200
    except DomainError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to get active shift")
        return internal_error()


@shifts_bp.post("/<int:shift_id>/close")
@require_actor
@require_staff
def close_shift_route(shift_id: int):
    """
    Close a shift with the counted cash.

    Request body:
    {
        "actual_cash_count": "1179.00",
        "notes": "..."  (optional)
    }

    409 InFlightOrdersError carries details.in_flight_orders.
    """
    try:
        data = json_body()
        shift = shift_service.close_shift(
            shift_id,
            data.get("actual_cash_count"),
            notes=data.get("notes"),
            actor=g.actor,
        )
        return jsonify({"shift": shift.to_dict()}), 200

    except DomainError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to close shift %s", shift_id)
        return internal_error()


@shifts_bp.get("")
@shifts_bp.get("/")
@require_actor
@require_staff
def list_shifts_route():
    """
    Shift history, newest first.

    Query params: status, from (YYYY-MM-DD), to (YYYY-MM-DD), page, per_page
    """
    try:
        try:
            date_from = parse_iso_date(request.args.get("from"))
            date_to = parse_iso_date(request.args.get("to"))
        except ValueError:
            raise ValidationError("from and to must be dates (YYYY-MM-DD)")
        if date_from and date_to and date_from > date_to:
            raise ValidationError("from must not be after to")

        page, per_page = page_args()
        shifts, pagination = shift_service.list_shifts(
            status=request.args.get("status") or None,
            date_from=date_from,
            date_to=date_to,
            page=page,
            per_page=per_page,
        )

        counts = shift_service.count_orders_by_shift([s.id for s in shifts])
        result = []
        for s in shifts:
            d = s.to_dict()
            d["orders_count"] = counts.get(s.id, 0)
            result.append(d)

        return jsonify({"shifts": result, "pagination": pagination}), 200

    except DomainError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list shifts")
        return internal_error()


@shifts_bp.get("/<int:shift_id>")
@require_actor
@require_staff
def shift_detail_route(shift_id: int):
    """
    Shift summary plus its orders.

    Query params: payment_method, order_status
    """
    try:
        summary = shift_service.get_shift_summary(shift_id)
        orders = shift_service.list_shift_orders(
            shift_id,
            payment_method=request.args.get("payment_method") or None,
            status=request.args.get("order_status") or None,
        )
        return jsonify({
            "shift": summary,
            "orders": [o.to_dict(include_items=False) for o in orders],
        }), 200

    except DomainError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to get shift %s", shift_id)
        return internal_error()
