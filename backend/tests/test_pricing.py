"""
Pricing engine tests.

Verifies:
- Line totals include variant deltas and scale with quantity
- POS discounts stay within [0, subtotal]
- Delivery totals: subtotal + tax + fee, rounded once
- Bad input is rejected with ValidationError
"""

from decimal import Decimal
from types import SimpleNamespace

import pytest

from brewpos.enums import Channel
from brewpos.errors import ValidationError
from brewpos.services import pricing
from brewpos.services.pricing import LineItem, VariantSelection


def _line(unit_price="100.00", quantity=1, deltas=()):
    return LineItem(
        product_id=1,
        product_name="Americano",
        unit_price=Decimal(unit_price),
        quantity=quantity,
        variants=tuple(
            VariantSelection(group_name="Add-on", name=f"opt{i}", price_delta=Decimal(d))
            for i, d in enumerate(deltas)
        ),
    )


# =============================================================================
# LINE TOTALS
# =============================================================================


class TestLineTotal:
    def test_plain_line(self):
        assert pricing.line_total(_line("95.00", 2)) == Decimal("190.00")

    def test_variant_deltas_are_per_unit(self):
        # (120 + 25 + 30) * 2
        assert pricing.line_total(_line("120.00", 2, ("25.00", "30.00"))) == Decimal("350.00")

    @pytest.mark.parametrize("quantity", [1, 2, 3, 7, 25])
    def test_linear_in_quantity(self, quantity):
        single = pricing.line_total(_line("87.50", 1, ("12.25",)))
        assert pricing.line_total(_line("87.50", quantity, ("12.25",))) == single * quantity

    @pytest.mark.parametrize("quantity", [0, -1, 1.5, "2", True])
    def test_rejects_bad_quantity(self, quantity):
        with pytest.raises(ValidationError):
            pricing.line_total(_line("10.00", quantity))

    def test_subtotal_sums_lines(self):
        items = [_line("100.00", 1), _line("120.00", 2, ("25.00",))]
        assert pricing.subtotal(items) == Decimal("390.00")

    def test_subtotal_of_nothing_is_zero(self):
        assert pricing.subtotal([]) == Decimal("0")


# =============================================================================
# POS TOTALS
# =============================================================================


class TestPosTotals:
    def test_employee_discount(self):
        totals = pricing.pos_totals(Decimal("200.00"), Decimal("10"))
        assert totals.discount_amount == Decimal("20.00")
        assert totals.total == Decimal("180.00")
        assert totals.discount_percent == Decimal("10")

    def test_no_discount(self):
        totals = pricing.pos_totals(Decimal("200.00"))
        assert totals.discount_percent is None
        assert totals.discount_amount == Decimal("0.00")
        assert totals.total == Decimal("200.00")

    @pytest.mark.parametrize("percent", [0, "0", "", None])
    def test_zero_or_blank_means_no_discount(self, percent):
        totals = pricing.pos_totals(Decimal("50.00"), percent)
        assert totals.discount_percent is None
        assert totals.total == Decimal("50.00")

    def test_discount_rounds_half_up(self):
        # 33.33 * 15% = 4.9995 -> 5.00
        totals = pricing.pos_totals(Decimal("33.33"), Decimal("15"))
        assert totals.discount_amount == Decimal("5.00")
        assert totals.total == Decimal("28.33")

    @pytest.mark.parametrize("subtotal", ["0.00", "0.01", "19.99", "200.00", "12345.67"])
    @pytest.mark.parametrize("percent", ["0.01", "12.5", "33.33", "50", "99.99", "100"])
    def test_discount_bounds(self, subtotal, percent):
        totals = pricing.pos_totals(Decimal(subtotal), Decimal(percent))
        assert Decimal("0") <= totals.discount_amount <= totals.subtotal
        assert totals.total >= 0
        assert totals.total == totals.subtotal - totals.discount_amount

    def test_fractional_percent_up_to_four_places(self):
        # 100.00 * 12.345% = 12.345 -> 12.35
        totals = pricing.pos_totals(Decimal("100.00"), "12.345")
        assert totals.discount_percent == Decimal("12.345")
        assert totals.discount_amount == Decimal("12.35")
        assert totals.total == Decimal("87.65")

    def test_full_discount(self):
        totals = pricing.pos_totals(Decimal("180.00"), Decimal("100"))
        assert totals.total == Decimal("0.00")

    @pytest.mark.parametrize("percent", ["-1", "100.01", "abc", "NaN", "12.34567"])
    def test_rejects_bad_percent(self, percent):
        with pytest.raises(ValidationError):
            pricing.pos_totals(Decimal("100.00"), percent)


# =============================================================================
# DELIVERY TOTALS
# =============================================================================


class TestDeliveryTotals:
    def test_standard_delivery(self):
        totals = pricing.delivery_totals(Decimal("250.00"), Decimal("50.00"), Decimal("0.12"))
        assert totals.tax_amount == Decimal("30.00")
        assert totals.total == Decimal("330.00")

    def test_tax_rounds_half_up(self):
        # 10.05 * 0.12 = 1.206
        totals = pricing.delivery_totals(Decimal("10.05"), Decimal("0"), Decimal("0.12"))
        assert totals.tax_amount == Decimal("1.21")
        assert totals.total == Decimal("11.26")

    @pytest.mark.parametrize("subtotal", ["0.00", "1.99", "95.00", "333.33", "1000.01"])
    def test_total_formula(self, subtotal):
        sub = Decimal(subtotal)
        totals = pricing.delivery_totals(sub, Decimal("50.00"), Decimal("0.12"))
        assert totals.total == pricing.round_money(sub + sub * Decimal("0.12") + Decimal("50.00"))

    def test_free_delivery(self):
        totals = pricing.delivery_totals(Decimal("100.00"), Decimal("0"))
        assert totals.delivery_fee == Decimal("0.00")
        assert totals.total == Decimal("112.00")

    @pytest.mark.parametrize("fee,rate", [("-1", "0.12"), ("50", "-0.01"), ("50", "1.5")])
    def test_rejects_bad_fee_or_rate(self, fee, rate):
        with pytest.raises(ValidationError):
            pricing.delivery_totals(Decimal("100.00"), Decimal(fee), Decimal(rate))


# =============================================================================
# ORDER RECOMPUTATION
# =============================================================================


class TestApplyTotals:
    def _order(self, channel, **kwargs):
        items = [
            SimpleNamespace(unit_price=Decimal("100.00"), quantity=2, variants=[], line_total=None),
        ]
        defaults = dict(
            channel=channel,
            items=items,
            discount_percent=None,
            discount_reason=None,
            delivery_fee=None,
            tax_rate=None,
        )
        defaults.update(kwargs)
        return SimpleNamespace(**defaults)

    def test_pos_order(self):
        order = self._order(Channel.POS, discount_percent=Decimal("10"), discount_reason="Employee 10%")
        pricing.apply_totals(order)
        assert order.items[0].line_total == Decimal("200.00")
        assert order.subtotal == Decimal("200.00")
        assert order.discount_amount == Decimal("20.00")
        assert order.total == Decimal("180.00")
        assert order.discount_reason == "Employee 10%"

    def test_pos_order_without_discount_drops_reason(self):
        order = self._order(Channel.POS, discount_reason="stale")
        pricing.apply_totals(order)
        assert order.discount_reason is None
        assert order.total == Decimal("200.00")

    def test_delivery_order(self):
        order = self._order(Channel.ONLINE, delivery_fee=Decimal("50.00"), tax_rate=Decimal("0.12"))
        pricing.apply_totals(order)
        assert order.tax_amount == Decimal("24.00")
        assert order.total == Decimal("274.00")
        assert order.discount_amount == Decimal("0.00")

    def test_recomputation_matches_persisted(self):
        order = self._order(Channel.ONLINE, delivery_fee=Decimal("50.00"), tax_rate=Decimal("0.12"))
        applied = pricing.apply_totals(order)
        assert pricing.order_totals(order) == applied


class TestToDecimal:
    def test_float_goes_through_repr(self):
        assert pricing.to_decimal(0.1) == Decimal("0.1")

    @pytest.mark.parametrize("value", [None, True, "", "  ", "Infinity", [], {}])
    def test_rejects(self, value):
        with pytest.raises(ValidationError):
            pricing.to_decimal(value, "amount")


class TestCart:
    def _cart(self):
        large = VariantSelection(group_name="Size", name="Large", price_delta=Decimal("25.00"))
        return pricing.Cart([
            pricing.CartLine(1, "Americano", "100.00", 2, line_id=10),
            pricing.CartLine(2, "Cafe Latte", "120.00", 1, [large], line_id=11),
        ])

    def test_totals(self):
        cart = self._cart()
        assert [line.line_total for line in cart.lines] == [Decimal("200.00"), Decimal("145.00")]
        assert cart.subtotal == Decimal("345.00")
        assert cart.items_count == 3
        totals = cart.delivery_totals(Decimal("50.00"), Decimal("0.12"))
        assert totals.total == Decimal("436.40")

    def test_line_total_follows_changes(self):
        line = self._cart().find(11)
        assert line.line_total == Decimal("145.00")
        line.quantity = 2
        assert line.line_total == Decimal("290.00")
        line.variants = ()
        assert line.line_total == Decimal("240.00")

    @pytest.mark.parametrize("quantity", [0, -1])
    def test_quantity_below_one_removes(self, quantity):
        cart = self._cart()
        assert cart.set_quantity(10, quantity) is None
        assert [line.line_id for line in cart.lines] == [11]
        assert cart.subtotal == Decimal("145.00")

    def test_set_quantity(self):
        cart = self._cart()
        assert cart.set_quantity(10, 3).line_total == Decimal("300.00")
        assert cart.set_quantity(99, 3) is None
        with pytest.raises(ValidationError):
            cart.set_quantity(10, "3")

    def test_empty(self):
        cart = pricing.Cart()
        assert cart.subtotal == Decimal("0.00")
        assert cart.remove(1) is False
