# Overview: Pure order pricing; shared by cart display, checkout, POS and recomputation.

"""
Pricing Engine

All money is Decimal. Intermediate sums are kept exact; rounding to 2 places
(ROUND_HALF_UP) happens only on values that get persisted or shown.

FORMULAS:
    line_total     = (unit_price + sum(variant.price_delta)) * quantity
    subtotal       = sum(line_total)

    POS:
    discount       = round(subtotal * discount_percent / 100, 2)
    total          = subtotal - discount

    Delivery (online):
    tax_amount     = round(subtotal * tax_rate, 2)
    total          = round(subtotal + subtotal * tax_rate + delivery_fee, 2)

No database, no Flask: safe to call anywhere and needs no locking.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Iterable

from ..enums import Channel
from ..errors import ValidationError


CENT = Decimal("0.01")
PERCENT_PLACES = Decimal("0.0001")
ZERO = Decimal("0.00")
HUNDRED = Decimal("100")
DEFAULT_TAX_RATE = Decimal("0.12")


def to_decimal(value, field_name: str = "amount") -> Decimal:
    """Coerce user/DB input to a finite Decimal without going through binary floats."""
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, bool) or value is None:
        raise ValidationError(f"{field_name} must be a number")
    elif isinstance(value, int):
        result = Decimal(value)
    elif isinstance(value, float):
        result = Decimal(repr(value))
    elif isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{field_name} must be a number")
        try:
            result = Decimal(stripped)
        except InvalidOperation:
            raise ValidationError(f"{field_name} must be a number")
    else:
        raise ValidationError(f"{field_name} must be a number")

    if not result.is_finite():
        raise ValidationError(f"{field_name} must be a finite number")
    return result


def round_money(value) -> Decimal:
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def check_quantity(quantity) -> int:
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise ValidationError("quantity must be an integer")
    if quantity < 1:
        raise ValidationError("quantity must be at least 1")
    return quantity


@dataclass(frozen=True)
class VariantSelection:
    """A chosen customization option and the price it adds to one unit."""
    group_name: str
    name: str
    price_delta: Decimal
    variant_id: int | None = None


@dataclass(frozen=True)
class LineItem:
    """Validated, not-yet-persisted order line."""
    product_id: int
    product_name: str
    unit_price: Decimal
    quantity: int
    variants: tuple[VariantSelection, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class PosTotals:
    subtotal: Decimal
    discount_percent: Decimal | None
    discount_amount: Decimal
    total: Decimal


@dataclass(frozen=True)
class DeliveryTotals:
    subtotal: Decimal
    tax_rate: Decimal
    tax_amount: Decimal
    delivery_fee: Decimal
    total: Decimal


def variant_delta(item) -> Decimal:
    """Sum of price deltas of the variants selected on a line."""
    total = Decimal("0")
    for variant in getattr(item, "variants", None) or ():
        total += to_decimal(variant.price_delta, "price_delta")
    return total


def line_total(item) -> Decimal:
    """
    (unit_price + sum of variant deltas) * quantity.

    Works on anything exposing unit_price, quantity and variants
    (LineItem, OrderItem, CartItem).
    """
    quantity = check_quantity(item.quantity)
    unit_price = to_decimal(item.unit_price, "unit_price")
    return (unit_price + variant_delta(item)) * quantity


def subtotal(items: Iterable) -> Decimal:
    total = Decimal("0")
    for item in items:
        total += line_total(item)
    return total


def normalize_discount_percent(discount_percent) -> Decimal | None:
    """None/0 means no discount; anything else must be within [0, 100]."""
    if discount_percent is None:
        return None
    if isinstance(discount_percent, str) and not discount_percent.strip():
        return None
    percent = to_decimal(discount_percent, "discount_percent")
    if percent < 0 or percent > HUNDRED:
        raise ValidationError("discount_percent must be between 0 and 100")
    if percent != percent.quantize(PERCENT_PLACES):
        raise ValidationError(
            "discount_percent is stored with at most 4 decimal places",
            details={"discount_percent": str(percent)},
        )
    if percent == 0:
        return None
    return percent


def pos_totals(subtotal_amount, discount_percent=None) -> PosTotals:
    sub = to_decimal(subtotal_amount, "subtotal")
    if sub < 0:
        raise ValidationError("subtotal cannot be negative")

    percent = normalize_discount_percent(discount_percent)
    rounded_sub = round_money(sub)

    if percent is None:
        return PosTotals(
            subtotal=rounded_sub,
            discount_percent=None,
            discount_amount=ZERO,
            total=rounded_sub,
        )

    discount_amount = round_money(sub * percent / HUNDRED)
    return PosTotals(
        subtotal=rounded_sub,
        discount_percent=percent,
        discount_amount=discount_amount,
        total=round_money(sub - discount_amount),
    )


def delivery_totals(subtotal_amount, delivery_fee=ZERO, tax_rate=DEFAULT_TAX_RATE) -> DeliveryTotals:
    sub = to_decimal(subtotal_amount, "subtotal")
    fee = to_decimal(delivery_fee, "delivery_fee")
    rate = to_decimal(tax_rate, "tax_rate")

    if sub < 0:
        raise ValidationError("subtotal cannot be negative")
    if fee < 0:
        raise ValidationError("delivery_fee cannot be negative")
    if rate < 0 or rate > 1:
        raise ValidationError("tax_rate must be between 0 and 1")

    raw_tax = sub * rate
    return DeliveryTotals(
        subtotal=round_money(sub),
        tax_rate=rate,
        tax_amount=round_money(raw_tax),
        delivery_fee=round_money(fee),
        total=round_money(sub + raw_tax + fee),
    )


def order_totals(order) -> PosTotals | DeliveryTotals:
    """
    Recompute an order's totals from its items.

    Persisted totals must always equal this; it is the only path that
    produces them.
    """
    sub = subtotal(order.items)
    if order.channel == Channel.POS:
        return pos_totals(sub, order.discount_percent)
    return delivery_totals(
        sub,
        order.delivery_fee if order.delivery_fee is not None else ZERO,
        order.tax_rate if order.tax_rate is not None else DEFAULT_TAX_RATE,
    )


def apply_totals(order) -> PosTotals | DeliveryTotals:
    """Write recomputed totals (and per-line totals) onto an order."""
    for item in order.items:
        item.line_total = round_money(line_total(item))

    totals = order_totals(order)
    order.subtotal = totals.subtotal
    order.total = totals.total

    if isinstance(totals, PosTotals):
        order.discount_percent = totals.discount_percent
        order.discount_amount = totals.discount_amount
        if totals.discount_percent is None:
            order.discount_reason = None
    else:
        order.discount_percent = None
        order.discount_reason = None
        order.discount_amount = ZERO
        order.tax_rate = totals.tax_rate
        order.tax_amount = totals.tax_amount
        order.delivery_fee = totals.delivery_fee

    return totals


# =============================================================================
# CART
# =============================================================================

class CartLine:
    """
    Mutable priced line for cart display.

    line_total is cached and dropped whenever quantity or the variant
    selection changes.
    """

    def __init__(self, product_id: int, product_name: str, unit_price, quantity: int = 1,
                 variants: Iterable[VariantSelection] = (), line_id: int | None = None):
        self.line_id = line_id
        self.product_id = product_id
        self.product_name = product_name
        self.unit_price = to_decimal(unit_price, "unit_price")
        self._quantity = check_quantity(quantity)
        self._variants = tuple(variants)
        self._line_total: Decimal | None = None

    @property
    def quantity(self) -> int:
        return self._quantity

    @quantity.setter
    def quantity(self, value: int) -> None:
        self._quantity = check_quantity(value)
        self._line_total = None

    @property
    def variants(self) -> tuple[VariantSelection, ...]:
        return self._variants

    @variants.setter
    def variants(self, value: Iterable[VariantSelection]) -> None:
        self._variants = tuple(value)
        self._line_total = None

    @property
    def line_total(self) -> Decimal:
        if self._line_total is None:
            self._line_total = round_money(line_total(self))
        return self._line_total


class Cart:
    """Ordered collection of CartLines with checkout previews."""

    def __init__(self, lines: Iterable[CartLine] = ()):
        self.lines: list[CartLine] = list(lines)

    def add(self, line: CartLine) -> CartLine:
        self.lines.append(line)
        return line

    def find(self, line_id: int) -> CartLine | None:
        return next((line for line in self.lines if line.line_id == line_id), None)

    def remove(self, line_id: int) -> bool:
        before = len(self.lines)
        self.lines = [line for line in self.lines if line.line_id != line_id]
        return len(self.lines) != before

    def set_quantity(self, line_id: int, quantity: int) -> CartLine | None:
        """Below 1 removes the line and returns None."""
        line = self.find(line_id)
        if line is None:
            return None
        if isinstance(quantity, int) and not isinstance(quantity, bool) and quantity < 1:
            self.remove(line_id)
            return None
        line.quantity = quantity
        return line

    @property
    def items_count(self) -> int:
        return sum(line.quantity for line in self.lines)

    @property
    def subtotal(self) -> Decimal:
        return round_money(sum((line.line_total for line in self.lines), Decimal("0")))

    def delivery_totals(self, delivery_fee=ZERO, tax_rate=DEFAULT_TAX_RATE) -> DeliveryTotals:
        return delivery_totals(self.subtotal, delivery_fee, tax_rate)
