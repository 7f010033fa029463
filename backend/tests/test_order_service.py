"""
Order service tests.

Verifies:
- POS and delivery orders are priced by the pricing engine and snapshot the catalog
- Order numbers are unique and sequential
- Item, payment and delivery validation
- Status updates through the service (locking, logging, sale recording)
"""

from decimal import Decimal

import pytest

from brewpos.enums import Channel, OrderStatus
from brewpos.errors import InvalidTransition, MissingReason, NotFoundError, ValidationError
from brewpos.models import CartItem, Order, Product
from brewpos.services import cart_service, order_service, shift_service
from brewpos.services.sequence_service import order_number_prefix

from conftest import variant


def _pos_payload(*items, payment_method="cash", **extra):
    payload = {"items": list(items), "payment_method": payment_method}
    payload.update(extra)
    return payload


def _delivery_payload(**extra):
    payload = {
        "delivery_address": "12 Mabini St, Quezon City",
        "delivery_contact": "09171234567",
        "payment_method": "gcash",
    }
    payload.update(extra)
    return payload


# =============================================================================
# POS ORDERS
# =============================================================================


class TestCreatePosOrder:
    def test_creates_confirmed_order_on_shift(self, db_session, active_shift, americano, latte):
        large = variant(latte, "Large")
        order = order_service.create_pos_order(_pos_payload(
            {"product_id": americano.id, "quantity": 1},
            {"product_id": latte.id, "quantity": 2, "variant_ids": [large.id]},
        ), actor="cashier-1")

        assert order.channel == Channel.POS
        assert order.status == OrderStatus.CONFIRMED
        assert order.shift_id == active_shift.id
        assert order.confirmed_at is not None
        # 100 + (120 + 25) * 2
        assert order.subtotal == Decimal("390.00")
        assert order.total == Decimal("390.00")
        assert order.items[1].line_total == Decimal("290.00")
        assert order.items[1].variants[0].variant_name == "Large"

        assert len(order.status_logs) == 1
        log = order.status_logs[0]
        assert log.from_status is None
        assert log.to_status == OrderStatus.CONFIRMED
        assert log.changed_by == "cashier-1"
        assert order_service.totals_match(order)

    def test_order_numbers_are_sequential(self, db_session, active_shift, americano):
        first = order_service.create_pos_order(_pos_payload({"product_id": americano.id, "quantity": 1}), "c")
        second = order_service.create_pos_order(_pos_payload({"product_id": americano.id, "quantity": 1}), "c")
        prefix = order_number_prefix()
        assert first.order_number == f"{prefix}00001"
        assert second.order_number == f"{prefix}00002"

    def test_snapshots_price(self, db_session, active_shift, americano):
        order = order_service.create_pos_order(_pos_payload({"product_id": americano.id, "quantity": 1}), "c")
        americano.price = Decimal("130.00")
        db_session.commit()
        assert order_service.get_order(order.id).items[0].unit_price == Decimal("100.00")
        assert order_service.totals_match(order)

    def test_discount_without_reason_is_allowed(self, db_session, active_shift, americano):
        order = order_service.create_pos_order(
            _pos_payload({"product_id": americano.id, "quantity": 1}, discount_percent=20), "c"
        )
        assert order.discount_amount == Decimal("20.00")
        assert order.total == Decimal("80.00")

    def test_fractional_discount_is_stored_exactly(self, db_session, active_shift, americano):
        order = order_service.create_pos_order(
            _pos_payload({"product_id": americano.id, "quantity": 1}, discount_percent="12.345"), "c"
        )
        db_session.expire_all()
        stored = order_service.get_order(order.id)
        assert stored.discount_percent == Decimal("12.345")
        assert stored.discount_amount == Decimal("12.35")
        assert stored.to_dict()["discount_percent"] == "12.345"
        assert order_service.totals_match(stored)

    @pytest.mark.parametrize("payload_change", [
        {"payment_method": "card"},
        {"items": []},
        {"items": "nope"},
        {"discount_percent": "101"},
        {"customer_name": "x" * 121},
        {"unexpected": True},
    ])
    def test_rejects_bad_payload(self, db_session, active_shift, americano, payload_change):
        payload = _pos_payload({"product_id": americano.id, "quantity": 1})
        payload.update(payload_change)
        with pytest.raises(ValidationError):
            order_service.create_pos_order(payload, "c")
        assert db_session.query(Order).count() == 0

    @pytest.mark.parametrize("quantity", [0, -2, 1.5, "1e2"])
    def test_rejects_bad_quantity(self, db_session, active_shift, americano, quantity):
        with pytest.raises(ValidationError):
            order_service.create_pos_order(_pos_payload({"product_id": americano.id, "quantity": quantity}), "c")

    def test_rejects_unavailable_product(self, db_session, active_shift, sold_out):
        with pytest.raises(ValidationError):
            order_service.create_pos_order(_pos_payload({"product_id": sold_out.id, "quantity": 1}), "c")

    def test_rejects_unknown_product(self, db_session, active_shift):
        with pytest.raises(ValidationError):
            order_service.create_pos_order(_pos_payload({"product_id": 424242, "quantity": 1}), "c")

    def test_rejects_foreign_or_inactive_variant(self, db_session, active_shift, americano, latte):
        with pytest.raises(ValidationError):
            order_service.create_pos_order(_pos_payload(
                {"product_id": americano.id, "quantity": 1, "variant_ids": [variant(latte, "Large").id]}
            ), "c")
        with pytest.raises(ValidationError):
            order_service.create_pos_order(_pos_payload(
                {"product_id": latte.id, "quantity": 1, "variant_ids": [variant(latte, "Soy").id]}
            ), "c")


# =============================================================================
# DELIVERY ORDERS
# =============================================================================


class TestCreateDeliveryOrder:
    def test_buy_now(self, db_session, americano):
        order = order_service.create_delivery_order(
            _delivery_payload(buy_now_item={"product_id": americano.id, "quantity": 2}),
            customer_id="customer-1",
        )
        assert order.channel == Channel.ONLINE
        assert order.status == OrderStatus.PENDING
        assert order.shift_id is None
        assert order.customer_id == "customer-1"
        # 200 + 24 tax + 50 fee
        assert order.tax_amount == Decimal("24.00")
        assert order.delivery_fee == Decimal("50.00")
        assert order.total == Decimal("274.00")
        assert order.status_logs[0].to_status == OrderStatus.PENDING

    def test_delivery_scenario_from_cart(self, db_session, americano, latte):
        cart_service.add_item("customer-1", americano.id, 1)
        cart_service.add_item("customer-1", latte.id, 1, [variant(latte, "Regular").id])
        keep = cart_service.add_item("customer-1", latte.id, 1, [variant(latte, "Large").id])
        selected = [i.id for i in cart_service.get_cart("customer-1") if i.id != keep.id]

        order = order_service.create_delivery_order(
            _delivery_payload(selected_items=selected), customer_id="customer-1"
        )
        # 100 + 120 = 220 -> tax 26.40, total 296.40
        assert order.subtotal == Decimal("220.00")
        assert order.tax_amount == Decimal("26.40")
        assert order.total == Decimal("296.40")
        assert [i.id for i in cart_service.get_cart("customer-1")] == [keep.id]

    def test_subtotal_250_with_standard_fee(self, db_session):
        pastry = Product(name="Ensaymada Box", category="Pastry", price=Decimal("125.00"), is_available=True)
        db_session.add(pastry)
        db_session.commit()
        order = order_service.create_delivery_order(
            _delivery_payload(buy_now_item={"product_id": pastry.id, "quantity": 2}, delivery_fee="50.00"),
            customer_id="customer-1",
        )
        assert order.subtotal == Decimal("250.00")
        assert order.tax_amount == Decimal("30.00")
        assert order.total == Decimal("330.00")

    def test_custom_fee(self, db_session, americano):
        order = order_service.create_delivery_order(
            _delivery_payload(buy_now_item={"product_id": americano.id, "quantity": 1}, delivery_fee="0"),
            customer_id="customer-1",
        )
        assert order.total == Decimal("112.00")

    def test_cannot_order_someone_elses_cart(self, db_session, americano):
        item = cart_service.add_item("customer-2", americano.id, 1)
        with pytest.raises(ValidationError):
            order_service.create_delivery_order(
                _delivery_payload(selected_items=[item.id]), customer_id="customer-1"
            )
        assert db_session.query(CartItem).count() == 1

    @pytest.mark.parametrize("payload_change", [
        {"delivery_address": None},
        {"delivery_address": "   "},
        {"delivery_contact": "0" * 21},
        {"delivery_fee": "-5"},
        {"payment_method": None},
    ])
    def test_rejects_bad_delivery_payload(self, db_session, americano, payload_change):
        payload = _delivery_payload(buy_now_item={"product_id": americano.id, "quantity": 1})
        payload.update(payload_change)
        with pytest.raises(ValidationError):
            order_service.create_delivery_order(payload, customer_id="customer-1")

    def test_needs_items(self, db_session):
        with pytest.raises(ValidationError):
            order_service.create_delivery_order(_delivery_payload(), customer_id="customer-1")


# =============================================================================
# STATUS UPDATES
# =============================================================================


class TestUpdateOrderStatus:
    def _delivery_order(self, product):
        return order_service.create_delivery_order(
            _delivery_payload(buy_now_item={"product_id": product.id, "quantity": 1}),
            customer_id="customer-1",
        )

    def test_walks_delivery_lifecycle(self, db_session, americano):
        order = self._delivery_order(americano)
        for status in ("confirmed", "preparing", "out_for_delivery", "delivered"):
            order = order_service.update_order_status(order.id, status, "staff-1")
        assert order.status == OrderStatus.DELIVERED
        assert len(order.status_logs) == 5
        # Online orders never touch shift totals
        assert order.sale_recorded_at is None

    def test_invalid_transition(self, db_session, americano):
        order = self._delivery_order(americano)
        with pytest.raises(InvalidTransition) as exc_info:
            order_service.update_order_status(order.id, "delivered", "staff-1")
        assert exc_info.value.details["valid_transitions"] == ["confirmed", "cancelled"]
        assert order_service.get_order(order.id).status == OrderStatus.PENDING

    def test_pos_preparing_to_out_for_delivery(self, db_session, active_shift, americano):
        order = order_service.create_pos_order(_pos_payload({"product_id": americano.id, "quantity": 1}), "c")
        order_service.update_order_status(order.id, "preparing", "c")
        with pytest.raises(InvalidTransition):
            order_service.update_order_status(order.id, "out_for_delivery", "c")

    def test_failed_needs_reason(self, db_session, americano):
        order = self._delivery_order(americano)
        for status in ("confirmed", "preparing"):
            order_service.update_order_status(order.id, status, "staff-1")
        with pytest.raises(MissingReason):
            order_service.update_order_status(order.id, "failed", "staff-1")
        order = order_service.update_order_status(order.id, "failed", "staff-1", reason="Rider crashed")
        assert order.failure_reason == "Rider crashed"

    def test_unknown_status(self, db_session, americano):
        order = self._delivery_order(americano)
        with pytest.raises(InvalidTransition):
            order_service.update_order_status(order.id, "teleported", "staff-1")

    def test_unknown_order(self, db_session):
        with pytest.raises(NotFoundError):
            order_service.update_order_status(123456, "confirmed", "staff-1")


# =============================================================================
# QUERIES
# =============================================================================


class TestQueries:
    def test_list_filters(self, db_session, active_shift, americano):
        pos = order_service.create_pos_order(_pos_payload({"product_id": americano.id, "quantity": 1}), "c")
        online = order_service.create_delivery_order(
            _delivery_payload(buy_now_item={"product_id": americano.id, "quantity": 1}),
            customer_id="customer-1",
        )

        orders, pagination = order_service.list_orders(channel="pos")
        assert [o.id for o in orders] == [pos.id]
        orders, _ = order_service.list_orders(customer_id="customer-1")
        assert [o.id for o in orders] == [online.id]
        orders, _ = order_service.list_orders(status="pending")
        assert [o.id for o in orders] == [online.id]
        orders, pagination = order_service.list_orders()
        assert pagination["total"] == 2

        with pytest.raises(ValidationError):
            order_service.list_orders(channel="drive-thru")

    def test_pending_pos_count(self, db_session, americano):
        assert order_service.pending_pos_count() == 0
        shift_service.open_shift("100.00", actor="c")
        first = order_service.create_pos_order(_pos_payload({"product_id": americano.id, "quantity": 1}), "c")
        order_service.create_pos_order(_pos_payload({"product_id": americano.id, "quantity": 1}), "c")
        assert order_service.pending_pos_count() == 2
        order_service.update_order_status(first.id, "cancelled", "c")
        assert order_service.pending_pos_count() == 1

    def test_order_payload(self, db_session, active_shift, americano):
        order = order_service.create_pos_order(_pos_payload({"product_id": americano.id, "quantity": 3}), "c")
        data = order_service.order_payload(order)
        assert data["status"] == "confirmed"
        assert data["status_label"] == "Confirmed"
        assert data["valid_transitions"] == ["preparing", "cancelled"]
        assert data["total"] == "300.00"
        assert data["items_count"] == 3
        assert data["is_terminal"] is False
