# Overview: Service-layer operations for product stock; counts, deductions, restores and their audit trail.

"""
Stock Service

WHY: Counted items (pastries, bottled drinks) must not be sold past what is
on the shelf, and every unit that leaves or comes back needs a trail.

DESIGN PRINCIPLES:
- Only products with track_stock are counted; the rest sell on is_available
- An order takes its stock in the same transaction that creates it; all
  lines are checked before anything is deducted
- Cancelling, or failing before the order went out for delivery, puts back
  exactly what the order took; once out for delivery the stock is gone
- Every change appends a StockLog row (before, after, reason, order, actor)
- Product rows are locked in id order so concurrent orders cannot deadlock
"""

from __future__ import annotations

import math

from flask import current_app
from sqlalchemy import desc, func, or_

from ..extensions import db
from ..enums import OrderStatus, StockAdjustment, StockReason
from ..errors import InsufficientStockError, NotFoundError, StateError, ValidationError
from ..models import Product, StockLog
from ..validation import coerce_int
from brewpos.time_utils import utcnow
from .concurrency import begin_write_lock, lock_for_update, run_with_retry


NOTES_MAX_LENGTH = 500
DEFAULT_PER_PAGE = 20
MAX_PER_PAGE = 100

RESTORE_REASONS = {
    OrderStatus.CANCELLED: StockReason.ORDER_CANCELLED,
    OrderStatus.FAILED: StockReason.ORDER_FAILED,
}

# Reasons staff may give for a manual adjustment
MANUAL_REASONS = frozenset({
    StockReason.RESTOCK,
    StockReason.ADJUSTMENT,
    StockReason.DAMAGED,
    StockReason.EXPIRED,
    StockReason.RETURNED,
})


# =============================================================================
# HELPERS
# =============================================================================

def _lock_products(product_ids) -> dict[int, Product]:
    """Lock and freshly load products, in id order."""
    ids = sorted(set(product_ids))
    if not ids:
        return {}
    rows = lock_for_update(
        db.session.query(Product).filter(Product.id.in_(ids)).order_by(Product.id)
    ).populate_existing().all()
    return {p.id: p for p in rows}


def _quantities_by_product(items) -> dict[int, int]:
    wanted: dict[int, int] = {}
    for item in items:
        wanted[item.product_id] = wanted.get(item.product_id, 0) + item.quantity
    return wanted


def _apply_change(
    product: Product,
    quantity_after: int,
    reason: StockReason,
    *,
    order=None,
    actor: str | None = None,
    notes: str | None = None,
) -> StockLog:
    """Set the new count and append its log row (no commit)."""
    before = product.stock_quantity or 0
    product.stock_quantity = quantity_after
    product.stock_updated_at = utcnow()

    log = StockLog(
        product=product,
        order=order,
        quantity_change=quantity_after - before,
        quantity_before=before,
        quantity_after=quantity_after,
        reason=reason,
        changed_by=actor,
        notes=notes,
    )
    db.session.add(log)

    if product.is_sold_out:
        current_app.logger.warning("Product %s (%s) is sold out", product.id, product.name)
    elif product.is_low_stock:
        current_app.logger.warning(
            "Product %s (%s) is low on stock: %s left",
            product.id, product.name, product.stock_quantity,
        )
    return log


# =============================================================================
# ORDER HOOKS
# =============================================================================

def deduct_for_order(order, actor: str | None = None) -> list[StockLog]:
    """
    Take stock for every tracked product on an order.

    Runs inside the caller's transaction (no commit).

    Raises:
        InsufficientStockError: a tracked product has fewer units than ordered
    """
    wanted = _quantities_by_product(order.items)
    products = _lock_products(wanted)
    tracked = [
        (products[product_id], quantity)
        for product_id, quantity in sorted(wanted.items())
        if product_id in products and products[product_id].track_stock
    ]

    for product, quantity in tracked:
        if not product.has_stock(quantity):
            available = product.stock_quantity or 0
            raise InsufficientStockError(
                f"Insufficient stock for '{product.name}'. "
                f"Available: {available}, Requested: {quantity}",
                details={"product_id": product.id, "available": available, "requested": quantity},
            )

    return [
        _apply_change(product, product.stock_quantity - quantity, StockReason.SALE, order=order, actor=actor)
        for product, quantity in tracked
    ]


def restore_for_order(order, previous_status, actor: str | None = None) -> list[StockLog]:
    """
    Put back what an order took, after it was cancelled or failed.

    Nothing comes back once the order had gone out for delivery. Only
    quantities recorded as this order's sale are restored, so a product
    that started tracking after the order was placed is left alone.
    Runs inside the caller's transaction (no commit).
    """
    reason = RESTORE_REASONS.get(order.status)
    if reason is None or previous_status == OrderStatus.OUT_FOR_DELIVERY:
        return []

    taken = dict(
        db.session.query(StockLog.product_id, func.sum(StockLog.quantity_change))
        .filter(StockLog.order_id == order.id, StockLog.reason == StockReason.SALE)
        .group_by(StockLog.product_id)
        .all()
    )
    products = _lock_products(taken)

    logs = []
    for product_id in sorted(taken):
        product = products.get(product_id)
        if product is None or not product.track_stock:
            continue
        quantity = -int(taken[product_id])
        logs.append(_apply_change(
            product,
            (product.stock_quantity or 0) + quantity,
            reason,
            order=order,
            actor=actor,
        ))
    return logs


# =============================================================================
# MANUAL ADJUSTMENTS
# =============================================================================

def adjust_stock(
    product_id: int,
    adjustment_type,
    quantity,
    reason,
    actor: str | None = None,
    notes: str | None = None,
) -> StockLog:
    """
    Manually change a tracked product's count.

    adjustment_type: "add" | "remove" (clamped at 0) | "set"
    reason: restock, adjustment, damaged, expired or returned

    Raises:
        ValidationError: bad type, quantity, reason or notes
        NotFoundError: unknown product
        StateError: the product does not track stock
    """
    try:
        adjustment = StockAdjustment(str(adjustment_type).strip().lower())
    except ValueError:
        raise ValidationError(
            "adjustment_type must be one of: add, remove, set",
            details={"allowed": [a.value for a in StockAdjustment]},
        )
    quantity = coerce_int("quantity", quantity)
    if quantity < 0:
        raise ValidationError("quantity cannot be negative")
    try:
        stock_reason = StockReason(str(reason).strip().lower())
    except ValueError:
        stock_reason = None
    if stock_reason not in MANUAL_REASONS:
        raise ValidationError(
            "reason must be one of: " + ", ".join(sorted(r.value for r in MANUAL_REASONS)),
        )
    if notes is not None:
        notes = str(notes).strip() or None
        if notes and len(notes) > NOTES_MAX_LENGTH:
            raise ValidationError(f"notes exceeds max length {NOTES_MAX_LENGTH}")

    def _op():
        begin_write_lock()
        product = _lock_products([product_id]).get(product_id)
        if not product:
            raise NotFoundError("Product not found", details={"product_id": product_id})
        if not product.track_stock:
            raise StateError(
                "Stock tracking is not enabled for this product",
                details={"product_id": product_id},
            )

        before = product.stock_quantity or 0
        if adjustment == StockAdjustment.ADD:
            after = before + quantity
        elif adjustment == StockAdjustment.REMOVE:
            after = max(before - quantity, 0)
        else:
            after = quantity

        log = _apply_change(product, after, stock_reason, actor=actor, notes=notes)
        db.session.commit()
        return log

    log = run_with_retry(_op)
    current_app.logger.info(
        "Stock of product %s: %s -> %s (%s) by %s",
        product_id, log.quantity_before, log.quantity_after, log.reason.value, actor,
    )
    return log


def set_tracking(
    product_id: int,
    track_stock: bool,
    low_stock_threshold=None,
    actor: str | None = None,
) -> Product:
    """
    Turn stock counting on or off for a product.

    Turning it on with no count yet starts at 0 (sold out until restocked).
    """
    if not isinstance(track_stock, bool):
        raise ValidationError("track_stock must be true or false")
    if low_stock_threshold is not None:
        low_stock_threshold = coerce_int("low_stock_threshold", low_stock_threshold)
        if low_stock_threshold < 0:
            raise ValidationError("low_stock_threshold cannot be negative")

    def _op():
        begin_write_lock()
        product = _lock_products([product_id]).get(product_id)
        if not product:
            raise NotFoundError("Product not found", details={"product_id": product_id})

        product.track_stock = track_stock
        if track_stock and product.stock_quantity is None:
            product.stock_quantity = 0
            product.stock_updated_at = utcnow()
        if low_stock_threshold is not None:
            product.low_stock_threshold = low_stock_threshold
        db.session.commit()
        return product

    product = run_with_retry(_op)
    current_app.logger.info(
        "Stock tracking for product %s %s by %s",
        product.id, "enabled" if track_stock else "disabled", actor,
    )
    return product


# =============================================================================
# QUERIES
# =============================================================================

def products_needing_attention() -> list[Product]:
    """Tracked products that are sold out or at/below their low-stock threshold; sold out first."""
    return db.session.query(Product).filter(
        Product.track_stock.is_(True),
        or_(
            Product.stock_quantity.is_(None),
            Product.stock_quantity == 0,
            Product.stock_quantity <= Product.low_stock_threshold,
        ),
    ).order_by(Product.stock_quantity, Product.id).all()


def list_stock_history(
    product_id: int,
    reason: str | None = None,
    page: int = 1,
    per_page: int = DEFAULT_PER_PAGE,
) -> tuple[list[StockLog], dict]:
    """A product's stock changes, newest first."""
    if not db.session.get(Product, product_id):
        raise NotFoundError("Product not found", details={"product_id": product_id})

    query = db.session.query(StockLog).filter(StockLog.product_id == product_id)
    if reason:
        try:
            query = query.filter(StockLog.reason == StockReason(reason))
        except ValueError:
            raise ValidationError(
                f"Unknown stock reason '{reason}'",
                details={"allowed_reasons": [r.value for r in StockReason]},
            )

    page = max(int(page or 1), 1)
    per_page = min(max(int(per_page or DEFAULT_PER_PAGE), 1), MAX_PER_PAGE)

    total = query.count()
    logs = (
        query.order_by(desc(StockLog.created_at), desc(StockLog.id))
        .offset((page - 1) * per_page)
        .limit(per_page)
        .all()
    )
    return logs, {
        "current_page": page,
        "last_page": max(math.ceil(total / per_page), 1),
        "per_page": per_page,
        "total": total,
    }
