# Overview: Service-layer operations for the storefront cart; priced with the same engine as checkout.

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..errors import NotFoundError, ValidationError
from ..models import CartItem, CartItemVariant
from . import pricing
from .order_service import resolve_line


def get_cart(customer_id: str) -> list[CartItem]:
    _require_customer(customer_id)
    return db.session.query(CartItem).filter_by(
        customer_id=customer_id
    ).order_by(CartItem.id).all()


def _require_customer(customer_id: str | None) -> None:
    if not customer_id:
        raise ValidationError("customer_id is required")


def _get_owned_item(customer_id: str, item_id: int) -> CartItem:
    item = db.session.query(CartItem).filter_by(id=item_id, customer_id=customer_id).first()
    if not item:
        raise NotFoundError("Cart item not found", details={"cart_item_id": item_id})
    return item


def add_item(customer_id: str, product_id: int, quantity: int = 1, variant_ids: list[int] | None = None) -> CartItem:
    """
    Add a product (with its selected variants) to the cart.

    The same product with the same variant selection is merged into one line.
    Unit price and variant deltas are captured now and reused at checkout.
    """
    _require_customer(customer_id)
    line = resolve_line(product_id, quantity, variant_ids)
    wanted = sorted(v.variant_id for v in line.variants)

    for existing in get_cart(customer_id):
        if existing.product_id != line.product_id:
            continue
        if sorted(v.variant_id for v in existing.variants) != wanted:
            continue
        existing.quantity += line.quantity
        db.session.commit()
        return existing

    item = CartItem(
        customer_id=customer_id,
        product_id=line.product_id,
        quantity=line.quantity,
        unit_price=line.unit_price,
    )
    for selection in line.variants:
        item.variants.append(CartItemVariant(
            variant_id=selection.variant_id,
            variant_group_name=selection.group_name,
            variant_name=selection.name,
            price_delta=selection.price_delta,
        ))
    db.session.add(item)
    db.session.commit()
    current_app.logger.debug("Cart %s: added product %s x%s", customer_id, product_id, quantity)
    return item


def update_quantity(customer_id: str, item_id: int, quantity: int) -> CartItem | None:
    """Set a line's quantity; anything below 1 removes the line (returns None)."""
    _require_customer(customer_id)
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise ValidationError("quantity must be an integer")

    item = _get_owned_item(customer_id, item_id)
    if quantity < 1:
        db.session.delete(item)
        db.session.commit()
        return None

    item.quantity = quantity
    db.session.commit()
    return item


def remove_item(customer_id: str, item_id: int) -> None:
    _require_customer(customer_id)
    item = _get_owned_item(customer_id, item_id)
    db.session.delete(item)
    db.session.commit()


def to_priced_cart(items: list[CartItem]) -> pricing.Cart:
    """Snapshot persisted cart rows as in-memory priced lines."""
    return pricing.Cart(
        pricing.CartLine(
            product_id=item.product_id,
            product_name=item.product.name if item.product else "",
            unit_price=item.unit_price,
            quantity=item.quantity,
            variants=[
                pricing.VariantSelection(
                    group_name=v.variant_group_name,
                    name=v.variant_name,
                    price_delta=v.price_delta,
                    variant_id=v.variant_id,
                )
                for v in item.variants
            ],
            line_id=item.id,
        )
        for item in items
    )


def cart_totals(customer_id: str, delivery_fee=None) -> dict:
    """
    Cart lines with their line totals, plus a delivery checkout preview.

    Returns:
        {"items": [...], "subtotal", "tax_rate", "tax_amount", "delivery_fee", "total", "items_count"}
    """
    items = get_cart(customer_id)
    if delivery_fee is None:
        delivery_fee = current_app.config.get("DEFAULT_DELIVERY_FEE", pricing.ZERO)
    tax_rate = current_app.config.get("TAX_RATE", pricing.DEFAULT_TAX_RATE)

    cart = to_priced_cart(items)
    totals = cart.delivery_totals(delivery_fee, tax_rate)
    return {
        "items": [
            item.to_dict(line_total=line.line_total)
            for item, line in zip(items, cart.lines)
        ],
        "items_count": cart.items_count,
        "subtotal": str(totals.subtotal),
        "tax_rate": str(totals.tax_rate),
        "tax_amount": str(totals.tax_amount),
        "delivery_fee": str(totals.delivery_fee),
        "total": str(totals.total),
    }
