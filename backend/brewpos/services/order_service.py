"""
Order Service

WHY: One place that turns a validated request into a persisted order with
correct totals, a lifecycle, and (for POS) a shift attribution.

DESIGN PRINCIPLES:
- Totals are only ever written by pricing.apply_totals
- Product names, prices and variant deltas are snapshotted onto the order
- POS orders need an active shift and start 'confirmed'
- Online orders have no shift and start 'pending'
- A POS order reaching 'delivered' is credited to its shift in the same
  transaction as the status change
- Stock of tracked products is taken when the order is created and given
  back when it is cancelled or fails before going out for delivery
"""

from __future__ import annotations

import math

from flask import current_app
from sqlalchemy import desc, or_

from ..extensions import db
from ..enums import Channel, OrderStatus
from ..errors import NotFoundError, StateError, ValidationError
from ..models import CartItem, Order, OrderItem, OrderItemVariant, PosShift, Product, ProductVariant
from ..validation import (
    DELIVERY_ORDER_POLICY,
    POS_ORDER_POLICY,
    coerce_int,
    coerce_item,
    coerce_items,
    coerce_payment_method,
    validate_payload,
)
from . import order_status, pricing, shift_service, stock_service
from .concurrency import begin_write_lock, lock_for_update, run_with_retry
from .sequence_service import next_order_number


DEFAULT_PER_PAGE = 20
MAX_PER_PAGE = 100


# =============================================================================
# LINE RESOLUTION
# =============================================================================

def resolve_line(product_id: int, quantity: int, variant_ids: list[int] | None = None) -> pricing.LineItem:
    """
    Turn a requested line into a priced LineItem.

    Raises:
        ValidationError: unknown/unavailable product, bad quantity, or a
            variant that is inactive or belongs to another product
    """
    pricing.check_quantity(quantity)

    product = db.session.get(Product, product_id)
    if not product:
        raise ValidationError(f"Product {product_id} not found", details={"product_id": product_id})
    if not product.is_available_for_purchase:
        raise ValidationError(
            f"{product.name} is sold out" if product.is_sold_out else f"{product.name} is not available",
            details={"product_id": product_id},
        )

    selections = []
    for variant_id in variant_ids or []:
        variant = db.session.get(ProductVariant, variant_id)
        if not variant or variant.product_id != product.id:
            raise ValidationError(
                f"Variant {variant_id} does not belong to {product.name}",
                details={"product_id": product_id, "variant_id": variant_id},
            )
        if not variant.is_active:
            raise ValidationError(
                f"Variant {variant.group_name}: {variant.name} is not available",
                details={"variant_id": variant_id},
            )
        selections.append(pricing.VariantSelection(
            group_name=variant.group_name,
            name=variant.name,
            price_delta=pricing.round_money(variant.price_delta),
            variant_id=variant.id,
        ))

    return pricing.LineItem(
        product_id=product.id,
        product_name=product.name,
        unit_price=pricing.round_money(product.price),
        quantity=quantity,
        variants=tuple(selections),
    )


def _line_from_cart_item(cart_item: CartItem) -> pricing.LineItem:
    """Cart lines keep the unit price and variant deltas captured when added."""
    product = cart_item.product
    if not product or not product.is_available_for_purchase:
        raise ValidationError(
            "A product in your cart is no longer available",
            details={"cart_item_id": cart_item.id, "product_id": cart_item.product_id},
        )
    return pricing.LineItem(
        product_id=cart_item.product_id,
        product_name=product.name,
        unit_price=pricing.round_money(cart_item.unit_price),
        quantity=pricing.check_quantity(cart_item.quantity),
        variants=tuple(
            pricing.VariantSelection(
                group_name=v.variant_group_name,
                name=v.variant_name,
                price_delta=pricing.round_money(v.price_delta),
                variant_id=v.variant_id,
            )
            for v in cart_item.variants
        ),
    )


def _add_lines(order: Order, lines: list[pricing.LineItem]) -> None:
    for line in lines:
        item = OrderItem(
            product_id=line.product_id,
            product_name=line.product_name,
            quantity=line.quantity,
            unit_price=line.unit_price,
        )
        for selection in line.variants:
            item.variants.append(OrderItemVariant(
                variant_id=selection.variant_id,
                variant_group_name=selection.group_name,
                variant_name=selection.name,
                price_delta=selection.price_delta,
            ))
        order.items.append(item)


# =============================================================================
# CREATION
# =============================================================================

def create_pos_order(payload: dict, actor: str | None, location: str | None = None) -> Order:
    """
    Ring up an in-store order against the active shift.

    Request payload:
        items: [{"product_id", "quantity", "variant_ids"?}, ...]
        payment_method: "cash" | "gcash"
        discount_percent?, discount_reason?, customer_name?, customer_phone?, notes?

    Raises:
        ValidationError: malformed payload, bad items, discount out of range
        NoActiveShiftError: the location has no active shift
        InsufficientStockError: a tracked product is short
    """
    data = validate_payload(payload, POS_ORDER_POLICY)
    location = data.get("location") or location
    lines = [
        resolve_line(item["product_id"], item["quantity"], item["variant_ids"])
        for item in coerce_items(data["items"])
    ]
    payment_method = coerce_payment_method(data["payment_method"])

    discount_percent = pricing.normalize_discount_percent(data.get("discount_percent"))
    discount_reason = data.get("discount_reason")

    def _op():
        begin_write_lock()
        shift = shift_service.require_active_shift(location, for_update=True)

        order = Order(
            order_number=next_order_number(),
            channel=Channel.POS,
            shift_id=shift.id,
            payment_method=payment_method,
            customer_name=data.get("customer_name"),
            customer_phone=data.get("customer_phone"),
            notes=data.get("notes"),
            discount_percent=discount_percent,
            discount_reason=discount_reason if discount_percent is not None else None,
        )
        _add_lines(order, lines)
        pricing.apply_totals(order)
        order_status.begin(order, actor, notes="POS order created and confirmed")

        db.session.add(order)
        stock_service.deduct_for_order(order, actor)
        db.session.commit()
        return order

    order = run_with_retry(_op)
    current_app.logger.info(
        "POS order %s created on shift %s: total %s (%s)",
        order.order_number, order.shift_id, order.total, order.payment_method.value,
    )
    return order


def create_delivery_order(payload: dict, customer_id: str, actor: str | None = None) -> Order:
    """
    Check out an online delivery order.

    Items come either from the customer's cart (selected_items: cart item ids,
    removed from the cart on success) or from a single buy_now_item.

    Raises:
        ValidationError: malformed payload, no items, or cart items that do
            not belong to the customer
        InsufficientStockError: a tracked product is short
    """
    if not customer_id:
        raise ValidationError("customer_id is required")

    data = validate_payload(payload, DELIVERY_ORDER_POLICY)
    payment_method = coerce_payment_method(data["payment_method"])

    fee = data.get("delivery_fee")
    if fee is None:
        fee = current_app.config.get("DEFAULT_DELIVERY_FEE", pricing.ZERO)
    fee = pricing.to_decimal(fee, "delivery_fee")
    if fee < 0:
        raise ValidationError("delivery_fee cannot be negative")
    tax_rate = pricing.to_decimal(
        current_app.config.get("TAX_RATE", pricing.DEFAULT_TAX_RATE), "TAX_RATE"
    )

    selected = data.get("selected_items")
    buy_now = data.get("buy_now_item")
    if selected and buy_now:
        raise ValidationError("Send either selected_items or buy_now_item, not both")

    def _op():
        begin_write_lock()
        cart_items: list[CartItem] = []
        if selected:
            if not isinstance(selected, list):
                raise ValidationError("selected_items must be a list of cart item ids")
            ids = [coerce_int("selected_items", v) for v in selected]
            cart_items = db.session.query(CartItem).filter(
                CartItem.id.in_(ids),
                CartItem.customer_id == customer_id,
            ).order_by(CartItem.id).all()
            if len(cart_items) != len(set(ids)):
                raise ValidationError(
                    "Some selected items are not in your cart",
                    details={"selected_items": ids},
                )
            lines = [_line_from_cart_item(ci) for ci in cart_items]
        elif buy_now:
            item = coerce_item(buy_now, 0)
            lines = [resolve_line(item["product_id"], item["quantity"], item["variant_ids"])]
        else:
            raise ValidationError("No items to order")

        order = Order(
            order_number=next_order_number(),
            channel=Channel.ONLINE,
            customer_id=customer_id,
            payment_method=payment_method,
            delivery_address=data["delivery_address"],
            delivery_contact=data["delivery_contact"],
            delivery_instructions=data.get("delivery_instructions"),
            notes=data.get("notes"),
            delivery_fee=pricing.round_money(fee),
            tax_rate=tax_rate,
        )
        _add_lines(order, lines)
        pricing.apply_totals(order)
        order_status.begin(order, actor or customer_id, notes="Order placed")

        db.session.add(order)
        stock_service.deduct_for_order(order, actor or customer_id)
        for cart_item in cart_items:
            db.session.delete(cart_item)
        db.session.commit()
        return order

    order = run_with_retry(_op)
    current_app.logger.info(
        "Delivery order %s placed by %s: total %s",
        order.order_number, customer_id, order.total,
    )
    return order


# =============================================================================
# LIFECYCLE
# =============================================================================

def update_order_status(
    order_id: int,
    status,
    actor: str | None,
    *,
    reason: str | None = None,
    notes: str | None = None,
) -> Order:
    """
    Move an order through its channel's lifecycle.

    A POS order reaching 'delivered' is credited to its shift's sales totals.
    Cancelled or failed orders return their stock (see stock_service).

    Raises:
        NotFoundError: unknown order
        InvalidTransition: target not allowed from the current status
        MissingReason: 'failed' without a reason
        StateError: a POS order completes after its shift was closed
    """
    if notes is not None:
        notes = str(notes).strip() or None
        if notes and len(notes) > 500:
            raise ValidationError("notes exceeds max length 500")

    def _op():
        begin_write_lock()
        order = lock_for_update(db.session.query(Order).filter_by(id=order_id)).first()
        if not order:
            raise NotFoundError("Order not found", details={"order_id": order_id})

        previous = order.status
        order_status.transition(order, status, actor, notes, reason=reason)

        if order.channel == Channel.POS and order.status == OrderStatus.DELIVERED:
            shift = lock_for_update(db.session.query(PosShift).filter_by(id=order.shift_id)).first()
            if not shift:
                raise StateError("POS order has no shift", details={"order_id": order.id})
            shift_service.record_sale(shift, order)
        stock_service.restore_for_order(order, previous, actor)

        db.session.commit()
        return order, previous

    order, previous = run_with_retry(_op)
    current_app.logger.info(
        "Order %s: %s -> %s by %s",
        order.order_number, previous.value, order.status.value, actor,
    )
    return order


# =============================================================================
# QUERIES
# =============================================================================

def get_order(order_id: int) -> Order:
    order = db.session.get(Order, order_id)
    if not order:
        raise NotFoundError("Order not found", details={"order_id": order_id})
    return order


def list_orders(
    channel=None,
    status=None,
    shift_id: int | None = None,
    customer_id: str | None = None,
    page: int = 1,
    per_page: int = DEFAULT_PER_PAGE,
    search: str | None = None,
) -> tuple[list[Order], dict]:
    """
    Orders newest first, optionally filtered.

    search matches part of the order number, customer name or customer phone.
    """
    query = db.session.query(Order)

    if channel:
        try:
            query = query.filter(Order.channel == Channel(channel))
        except ValueError:
            raise ValidationError("channel must be 'online' or 'pos'")
    if status:
        try:
            query = query.filter(Order.status == OrderStatus(status))
        except ValueError:
            raise ValidationError(
                f"Unknown order status '{status}'",
                details={"allowed_statuses": [s.value for s in OrderStatus]},
            )
    if shift_id is not None:
        query = query.filter(Order.shift_id == shift_id)
    if customer_id is not None:
        query = query.filter(Order.customer_id == customer_id)
    if search and search.strip():
        pattern = f"%{search.strip()}%"
        query = query.filter(or_(
            Order.order_number.ilike(pattern),
            Order.customer_name.ilike(pattern),
            Order.customer_phone.ilike(pattern),
        ))

    page = max(int(page or 1), 1)
    per_page = min(max(int(per_page or DEFAULT_PER_PAGE), 1), MAX_PER_PAGE)

    total = query.count()
    orders = (
        query.order_by(desc(Order.created_at), desc(Order.id))
        .offset((page - 1) * per_page)
        .limit(per_page)
        .all()
    )
    return orders, {
        "current_page": page,
        "last_page": max(math.ceil(total / per_page), 1),
        "per_page": per_page,
        "total": total,
    }


def pending_pos_count(location: str | None = None) -> int:
    """In-flight POS orders of the location's active shift (0 without one)."""
    shift = shift_service.get_active_shift(location)
    if not shift:
        return 0
    return len(shift_service.get_in_flight_orders(shift))


def order_payload(order: Order, include_logs: bool = False) -> dict:
    """Order dict plus what a UI needs to drive the next status change."""
    data = order.to_dict(include_items=True, include_logs=include_logs)
    data["status_label"] = order_status.status_label(order.status)
    data["valid_transitions"] = [s.value for s in order_status.valid_transitions(order)]
    data["is_terminal"] = not data["valid_transitions"]
    return data


def totals_match(order: Order) -> bool:
    """Persisted totals agree with a fresh recomputation from the items."""
    totals = pricing.order_totals(order)
    if pricing.round_money(order.subtotal) != totals.subtotal:
        return False
    return pricing.round_money(order.total) == totals.total
