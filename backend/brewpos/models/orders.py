from __future__ import annotations

from ..extensions import db
from ..enums import Channel, OrderStatus, PaymentMethod
from brewpos.time_utils import to_utc_z, utcnow
from .types import Money, enum_column_type, money_str, percent_str


class Order(db.Model):
    """
    One sale, online delivery or in-store (POS).

    CHANNEL decides the status machine (see services/order_status.py).
    POS orders belong to the shift that was active when they were rung up;
    online orders have no shift.

    TOTALS: subtotal/discount/tax/total are written only by
    pricing.apply_totals and must always match pricing.order_totals(order).
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.UniqueConstraint("order_number", name="uq_orders_order_number"),
        db.Index("ix_orders_shift_status", "shift_id", "status"),
        db.Index("ix_orders_channel_status_created", "channel", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Human-readable number (e.g., "CS-2026-00042")
    order_number = db.Column(db.String(32), nullable=False)

    channel = db.Column(enum_column_type(Channel, "order_channel"), nullable=False, index=True)
    status = db.Column(enum_column_type(OrderStatus, "order_status"), nullable=False, index=True)

    # POS attribution
    shift_id = db.Column(db.Integer, db.ForeignKey("pos_shifts.id"), nullable=True, index=True)
    customer_name = db.Column(db.String(120), nullable=True)
    customer_phone = db.Column(db.String(50), nullable=True)

    # Online attribution
    customer_id = db.Column(db.String(64), nullable=True, index=True)
    delivery_address = db.Column(db.Text, nullable=True)
    delivery_contact = db.Column(db.String(20), nullable=True)
    delivery_instructions = db.Column(db.String(500), nullable=True)

    # Money
    subtotal = db.Column(Money, nullable=False, default=0)
    discount_percent = db.Column(db.Numeric(7, 4, asdecimal=True), nullable=True)
    discount_reason = db.Column(db.String(120), nullable=True)
    discount_amount = db.Column(Money, nullable=False, default=0)
    delivery_fee = db.Column(Money, nullable=True)
    tax_rate = db.Column(db.Numeric(5, 4, asdecimal=True), nullable=True)
    tax_amount = db.Column(Money, nullable=True)
    total = db.Column(Money, nullable=False, default=0)

    payment_method = db.Column(enum_column_type(PaymentMethod, "payment_method"), nullable=False)
    notes = db.Column(db.String(500), nullable=True)

    # Lifecycle timestamps
    confirmed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    preparing_at = db.Column(db.DateTime(timezone=True), nullable=True)
    out_for_delivery_at = db.Column(db.DateTime(timezone=True), nullable=True)
    delivered_at = db.Column(db.DateTime(timezone=True), nullable=True)
    failed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    failure_reason = db.Column(db.String(255), nullable=True)

    # Set once the order's total has been added to its shift's sales totals
    sale_recorded_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        server_default=db.func.now(),
        onupdate=utcnow,
    )
    version_id = db.Column(db.Integer, nullable=False, default=1)

    shift = db.relationship("PosShift", back_populates="orders")
    items = db.relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        lazy=True,
        order_by="OrderItem.id",
    )
    status_logs = db.relationship(
        "OrderStatusLog",
        back_populates="order",
        cascade="all, delete-orphan",
        lazy=True,
        order_by="OrderStatusLog.id",
    )
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Order id={self.id} number={self.order_number!r} channel={self.channel} status={self.status}>"

    def to_dict(self, include_items: bool = True, include_logs: bool = False) -> dict:
        data = {
            "id": self.id,
            "order_number": self.order_number,
            "channel": self.channel.value if self.channel else None,
            "status": self.status.value if self.status else None,
            "shift_id": self.shift_id,
            "customer_id": self.customer_id,
            "customer_name": self.customer_name,
            "customer_phone": self.customer_phone,
            "delivery_address": self.delivery_address,
            "delivery_contact": self.delivery_contact,
            "delivery_instructions": self.delivery_instructions,
            "subtotal": money_str(self.subtotal),
            "discount_percent": percent_str(self.discount_percent),
            "discount_reason": self.discount_reason,
            "discount_amount": money_str(self.discount_amount),
            "delivery_fee": money_str(self.delivery_fee),
            "tax_rate": str(self.tax_rate) if self.tax_rate is not None else None,
            "tax_amount": money_str(self.tax_amount),
            "total": money_str(self.total),
            "payment_method": self.payment_method.value if self.payment_method else None,
            "notes": self.notes,
            "confirmed_at": to_utc_z(self.confirmed_at),
            "preparing_at": to_utc_z(self.preparing_at),
            "out_for_delivery_at": to_utc_z(self.out_for_delivery_at),
            "delivered_at": to_utc_z(self.delivered_at),
            "failed_at": to_utc_z(self.failed_at),
            "failure_reason": self.failure_reason,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
            data["items_count"] = sum(item.quantity for item in self.items)
        if include_logs:
            data["status_logs"] = [log.to_dict() for log in self.status_logs]
        return data


class OrderItem(db.Model):
    """Line on an order; product name and prices are snapshots."""
    __tablename__ = "order_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)

    product_name = db.Column(db.String(255), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    unit_price = db.Column(Money, nullable=False)
    line_total = db.Column(Money, nullable=False, default=0)

    order = db.relationship("Order", back_populates="items")
    variants = db.relationship(
        "OrderItemVariant",
        back_populates="order_item",
        cascade="all, delete-orphan",
        lazy=True,
        order_by="OrderItemVariant.id",
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "quantity": self.quantity,
            "unit_price": money_str(self.unit_price),
            "line_total": money_str(self.line_total),
            "variants": [v.to_dict() for v in self.variants],
        }


class OrderItemVariant(db.Model):
    __tablename__ = "order_item_variants"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    order_item_id = db.Column(db.Integer, db.ForeignKey("order_items.id"), nullable=False, index=True)
    variant_id = db.Column(db.Integer, db.ForeignKey("product_variants.id"), nullable=True)

    variant_group_name = db.Column(db.String(64), nullable=False)
    variant_name = db.Column(db.String(64), nullable=False)
    price_delta = db.Column(Money, nullable=False, default=0)

    order_item = db.relationship("OrderItem", back_populates="variants")

    def to_dict(self) -> dict:
        return {
            "variant_id": self.variant_id,
            "group_name": self.variant_group_name,
            "name": self.variant_name,
            "price_delta": money_str(self.price_delta),
        }


class OrderStatusLog(db.Model):
    """
    Append-only record of one status change.

    IMMUTABLE: rows are created by order_status.begin/transition and never
    updated or deleted.
    """
    __tablename__ = "order_status_logs"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)

    from_status = db.Column(enum_column_type(OrderStatus, "order_status"), nullable=True)
    to_status = db.Column(enum_column_type(OrderStatus, "order_status"), nullable=False)
    changed_by = db.Column(db.String(64), nullable=True)
    notes = db.Column(db.String(500), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, server_default=db.func.now())

    order = db.relationship("Order", back_populates="status_logs")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "from_status": self.from_status.value if self.from_status else None,
            "to_status": self.to_status.value if self.to_status else None,
            "changed_by": self.changed_by,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
        }


class OrderSequence(db.Model):
    """Next order number per prefix (one row per "CS-YYYY-")."""
    __tablename__ = "order_sequences"
    __table_args__ = (
        db.UniqueConstraint("prefix", name="uq_order_sequences_prefix"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    prefix = db.Column(db.String(16), nullable=False)
    next_number = db.Column(db.Integer, nullable=False, default=1)
