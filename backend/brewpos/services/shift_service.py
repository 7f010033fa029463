"""
POS Shift Service

WHY: Cash accountability for the counter. A shift is one drawer session:
opened with a float, credited with every completed sale, closed with a blind
count that is reconciled against what the drawer should hold.

DESIGN PRINCIPLES:
- One active shift per location at a time
- No active shift, no POS sale
- A shift cannot close while any of its orders is still in flight
- Reconciliation fields are written once, at close; closed shifts are immutable
- Variance is signed: negative = shortage, positive = overage
"""

from __future__ import annotations

import math
from datetime import date, datetime, time as dt_time
from decimal import Decimal

from flask import current_app
from sqlalchemy import desc, func
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..enums import Channel, OrderStatus, PaymentMethod, ShiftStatus
from ..errors import (
    InFlightOrdersError,
    NoActiveShiftError,
    NotFoundError,
    ShiftAlreadyActive,
    ShiftAlreadyClosed,
    StateError,
    ValidationError,
)
from ..models import Order, PosShift
from brewpos.time_utils import utcnow
from . import order_status, pricing
from .concurrency import begin_write_lock, lock_for_update, run_with_retry


NOTES_MAX_LENGTH = 1000
DEFAULT_PER_PAGE = 20
MAX_PER_PAGE = 100


def _default_location(location: str | None) -> str:
    if location is None or not str(location).strip():
        return current_app.config.get("DEFAULT_LOCATION", "main")
    return str(location).strip()


def _discrepancy_threshold(threshold) -> Decimal:
    if threshold is None:
        threshold = current_app.config.get("SHIFT_DISCREPANCY_THRESHOLD", Decimal("100.00"))
    value = pricing.to_decimal(threshold, "discrepancy_threshold")
    if value < 0:
        raise ValidationError("discrepancy_threshold cannot be negative")
    return value


# =============================================================================
# LOOKUPS
# =============================================================================

def get_active_shift(location: str | None = None, *, for_update: bool = False) -> PosShift | None:
    """
    Current active shift for a location, or None.

    for_update takes the row lock, so a sale and a close of the same shift
    serialize on it.
    """
    query = db.session.query(PosShift).filter_by(
        location=_default_location(location),
        status=ShiftStatus.ACTIVE,
    )
    if for_update:
        query = lock_for_update(query)
    return query.first()


def require_active_shift(location: str | None = None, *, for_update: bool = False) -> PosShift:
    """Gate for every POS sale."""
    shift = get_active_shift(location, for_update=for_update)
    if not shift:
        raise NoActiveShiftError(
            "No active shift. Open a shift to begin selling.",
            details={"location": _default_location(location)},
        )
    return shift


def get_shift(shift_id: int) -> PosShift:
    shift = db.session.get(PosShift, shift_id)
    if not shift:
        raise NotFoundError("Shift not found", details={"shift_id": shift_id})
    return shift


def list_shift_orders(shift_id: int, payment_method=None, status=None) -> list[Order]:
    """A shift's orders in the order they were rung up, optionally filtered."""
    query = db.session.query(Order).filter(Order.shift_id == shift_id)
    if payment_method:
        try:
            query = query.filter(Order.payment_method == PaymentMethod(payment_method))
        except ValueError:
            raise ValidationError("payment_method must be 'cash' or 'gcash'")
    if status:
        try:
            query = query.filter(Order.status == OrderStatus(status))
        except ValueError:
            raise ValidationError(
                f"Unknown order status '{status}'",
                details={"allowed_statuses": [s.value for s in OrderStatus]},
            )
    return query.order_by(Order.id).all()


def get_in_flight_orders(shift: PosShift) -> list[Order]:
    """POS orders of the shift that are not in a terminal status."""
    return db.session.query(Order).filter(
        Order.shift_id == shift.id,
        Order.channel == Channel.POS,
        Order.status.in_(sorted(order_status.in_flight_statuses(Channel.POS))),
    ).order_by(Order.id).all()


# =============================================================================
# SHIFT LIFECYCLE
# =============================================================================

def _already_active(shift_id: int | None, location: str) -> ShiftAlreadyActive:
    return ShiftAlreadyActive(
        "A shift is already active. Close the current shift before opening a new one.",
        details={"active_shift_id": shift_id, "location": location},
    )


def open_shift(opening_cash_float, actor: str | None, location: str | None = None) -> PosShift:
    """
    Open a new shift.

    Raises:
        ValidationError: float is not a number, negative, or above the maximum
        ShiftAlreadyActive: the location already has an active shift
    """
    opening = pricing.to_decimal(opening_cash_float, "opening_cash_float")
    max_float = pricing.to_decimal(
        current_app.config.get("MAX_OPENING_CASH_FLOAT", Decimal("1000000")),
        "MAX_OPENING_CASH_FLOAT",
    )
    if opening < 0:
        raise ValidationError("opening_cash_float cannot be negative")
    if opening > max_float:
        raise ValidationError(f"opening_cash_float cannot exceed {max_float:,.2f}")

    location = _default_location(location)

    def _op():
        begin_write_lock()
        existing = get_active_shift(location, for_update=True)
        if existing:
            raise _already_active(existing.id, location)

        shift = PosShift(
            location=location,
            status=ShiftStatus.ACTIVE,
            opened_at=utcnow(),
            opened_by=actor,
            opening_cash_float=pricing.round_money(opening),
            cash_sales_total=pricing.ZERO,
            ewallet_sales_total=pricing.ZERO,
            gross_sales_total=pricing.ZERO,
            is_discrepant=False,
        )
        db.session.add(shift)
        try:
            db.session.commit()
        except IntegrityError:
            # A concurrent open committed after our check; the one-active-shift
            # index rejected this row.
            db.session.rollback()
            winner = get_active_shift(location)
            raise _already_active(winner.id if winner else None, location)
        return shift

    shift = run_with_retry(_op)
    current_app.logger.info(
        "Shift %s opened at %s by %s with float %s",
        shift.id, location, actor, shift.opening_cash_float,
    )
    return shift


def record_sale(shift: PosShift, order: Order) -> PosShift:
    """
    Credit a completed POS order to its shift's sales totals.

    Called once per order, when it reaches 'delivered', inside the caller's
    transaction (no commit here). The caller holds the write lock.

    Raises:
        StateError: order is not a completed POS order of this active shift,
            or it was already recorded
    """
    if order.channel != Channel.POS:
        raise StateError("Only POS orders are recorded against a shift")
    if order.shift_id != shift.id:
        raise StateError(
            "Order does not belong to this shift",
            details={"order_id": order.id, "shift_id": shift.id},
        )
    if not shift.is_active:
        raise StateError("Cannot record a sale on a closed shift", details={"shift_id": shift.id})
    if order.status != OrderStatus.DELIVERED:
        raise StateError(
            "Only completed orders are recorded as sales",
            details={"order_id": order.id, "status": order.status.value},
        )
    if order.sale_recorded_at is not None:
        raise StateError("Sale already recorded for this order", details={"order_id": order.id})

    amount = pricing.round_money(order.total)
    if order.payment_method == PaymentMethod.CASH:
        shift.cash_sales_total = pricing.round_money(shift.cash_sales_total + amount)
    else:
        shift.ewallet_sales_total = pricing.round_money(shift.ewallet_sales_total + amount)
    shift.gross_sales_total = pricing.round_money(shift.cash_sales_total + shift.ewallet_sales_total)

    order.sale_recorded_at = utcnow()
    return shift


def reconcile(opening_cash_float, cash_sales_total, actual_cash_count, threshold) -> dict:
    """
    Blind-count arithmetic.

        expected = opening float + cash sales
        variance = actual - expected  (signed)
        discrepant when |variance| > threshold
    """
    expected = pricing.round_money(
        pricing.to_decimal(opening_cash_float, "opening_cash_float")
        + pricing.to_decimal(cash_sales_total, "cash_sales_total")
    )
    actual = pricing.round_money(actual_cash_count)
    variance = pricing.round_money(actual - expected)
    return {
        "expected_cash": expected,
        "actual_cash_count": actual,
        "variance": variance,
        "is_discrepant": abs(variance) > pricing.to_decimal(threshold, "threshold"),
    }


def close_shift(
    shift_id: int,
    actual_cash_count,
    notes: str | None = None,
    actor: str | None = None,
    *,
    discrepancy_threshold=None,
) -> PosShift:
    """
    Close a shift with a blind cash count.

    Raises:
        ValidationError: count missing/negative, notes too long
        NotFoundError: unknown shift
        ShiftAlreadyClosed: shift already closed (nothing is recomputed)
        InFlightOrdersError: some of the shift's orders are not terminal;
            carries those orders, shift stays active
    """
    if actual_cash_count is None:
        raise ValidationError("actual_cash_count is required")
    actual = pricing.to_decimal(actual_cash_count, "actual_cash_count")
    if actual < 0:
        raise ValidationError("actual_cash_count cannot be negative")
    if notes is not None:
        notes = str(notes).strip() or None
        if notes and len(notes) > NOTES_MAX_LENGTH:
            raise ValidationError(f"notes exceeds max length {NOTES_MAX_LENGTH}")
    threshold = _discrepancy_threshold(discrepancy_threshold)

    def _op():
        begin_write_lock()
        shift = lock_for_update(db.session.query(PosShift).filter_by(id=shift_id)).first()
        if not shift:
            raise NotFoundError("Shift not found", details={"shift_id": shift_id})

        if shift.status != ShiftStatus.ACTIVE:
            raise ShiftAlreadyClosed("This shift is already closed.", details={"shift_id": shift.id})

        in_flight = get_in_flight_orders(shift)
        if in_flight:
            raise InFlightOrdersError(in_flight)

        _warn_on_drift(shift)

        result = reconcile(shift.opening_cash_float, shift.cash_sales_total, actual, threshold)

        shift.status = ShiftStatus.CLOSED
        shift.closed_at = utcnow()
        shift.closed_by = actor
        shift.actual_cash_count = result["actual_cash_count"]
        shift.expected_cash = result["expected_cash"]
        shift.variance = result["variance"]
        shift.is_discrepant = result["is_discrepant"]
        shift.notes = notes

        db.session.commit()
        return shift

    shift = run_with_retry(_op)

    if shift.is_discrepant:
        current_app.logger.warning(
            "Shift %s closed with discrepancy: expected %s, counted %s, variance %s",
            shift.id, shift.expected_cash, shift.actual_cash_count, shift.variance,
        )
    else:
        current_app.logger.info("Shift %s closed, variance %s", shift.id, shift.variance)
    return shift


def _warn_on_drift(shift: PosShift) -> None:
    """Compare the running totals with what the shift's delivered orders add up to."""
    totals = calculate_order_totals(shift.id)
    if (
        totals["cash_sales_total"] != pricing.round_money(shift.cash_sales_total)
        or totals["ewallet_sales_total"] != pricing.round_money(shift.ewallet_sales_total)
    ):
        current_app.logger.warning(
            "Shift %s sales totals drifted from its orders: recorded cash=%s ewallet=%s, "
            "orders cash=%s ewallet=%s",
            shift.id,
            shift.cash_sales_total, shift.ewallet_sales_total,
            totals["cash_sales_total"], totals["ewallet_sales_total"],
        )


# =============================================================================
# REPORTING
# =============================================================================

def calculate_order_totals(shift_id: int) -> dict:
    """Cash / e-wallet / gross totals summed from the shift's delivered orders."""
    rows = db.session.query(Order.payment_method, Order.total).filter(
        Order.shift_id == shift_id,
        Order.channel == Channel.POS,
        Order.status == OrderStatus.DELIVERED,
    ).all()

    cash = Decimal("0")
    ewallet = Decimal("0")
    for payment_method, total in rows:
        if payment_method == PaymentMethod.CASH:
            cash += total
        else:
            ewallet += total

    return {
        "cash_sales_total": pricing.round_money(cash),
        "ewallet_sales_total": pricing.round_money(ewallet),
        "gross_sales_total": pricing.round_money(cash + ewallet),
    }


def list_shifts(
    status: str | None = None,
    date_from: date | None = None,
    date_to: date | None = None,
    page: int = 1,
    per_page: int = DEFAULT_PER_PAGE,
) -> tuple[list[PosShift], dict]:
    """
    Shifts newest first, optionally filtered by status and opened_at date range
    (inclusive calendar days).
    """
    query = db.session.query(PosShift)

    if status:
        try:
            query = query.filter(PosShift.status == ShiftStatus(status))
        except ValueError:
            raise ValidationError("status must be 'active' or 'closed'")

    if date_from is not None:
        query = query.filter(PosShift.opened_at >= datetime.combine(date_from, dt_time.min))
    if date_to is not None:
        query = query.filter(PosShift.opened_at <= datetime.combine(date_to, dt_time.max))

    page = max(int(page or 1), 1)
    per_page = min(max(int(per_page or DEFAULT_PER_PAGE), 1), MAX_PER_PAGE)

    total = query.count()
    shifts = (
        query.order_by(desc(PosShift.opened_at), desc(PosShift.id))
        .offset((page - 1) * per_page)
        .limit(per_page)
        .all()
    )

    pagination = {
        "current_page": page,
        "last_page": max(math.ceil(total / per_page), 1),
        "per_page": per_page,
        "total": total,
    }
    return shifts, pagination


def count_orders_by_shift(shift_ids: list[int]) -> dict[int, int]:
    if not shift_ids:
        return {}
    rows = db.session.query(Order.shift_id, func.count(Order.id)).filter(
        Order.shift_id.in_(shift_ids)
    ).group_by(Order.shift_id).all()
    return {shift_id: count for shift_id, count in rows}


def get_shift_summary(shift_id: int) -> dict:
    """
    Shift details plus order counts and order-derived totals.

    Returns:
        - shift (blind while active)
        - orders_count, delivered_orders_count, in_flight_orders_count
        - order_totals recomputed from delivered orders (None while active)
    """
    shift = get_shift(shift_id)

    orders_count = db.session.query(Order).filter_by(shift_id=shift.id).count()
    delivered_count = db.session.query(Order).filter_by(
        shift_id=shift.id, status=OrderStatus.DELIVERED
    ).count()
    in_flight_count = len(get_in_flight_orders(shift))

    data = shift.to_dict()
    data["orders_count"] = orders_count
    data["delivered_orders_count"] = delivered_count
    data["in_flight_orders_count"] = in_flight_count
    if shift.status == ShiftStatus.ACTIVE:
        data["order_totals"] = None
    else:
        data["order_totals"] = {
            key: str(value) for key, value in calculate_order_totals(shift.id).items()
        }
    return data
