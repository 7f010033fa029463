from __future__ import annotations

from ..extensions import db
from ..enums import StockReason
from brewpos.time_utils import to_utc_z, utcnow
from .types import Money, enum_column_type, money_str


class Product(db.Model):
    """
    Menu product sold in the storefront and at the counter.

    Prices here are list prices; order and cart lines snapshot the price at
    the time they are created.

    Stock is optional: with track_stock off the product sells on its
    is_available flag alone; with it on, stock_quantity bounds every order
    and reaching 0 makes it sold out.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.Index("ix_products_category_name", "category", "name"),
        db.Index("ix_products_track_stock_quantity", "track_stock", "stock_quantity"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    category = db.Column(db.String(64), nullable=True, index=True)
    price = db.Column(Money, nullable=False)

    is_available = db.Column(db.Boolean, nullable=False, default=True)

    track_stock = db.Column(db.Boolean, nullable=False, default=False)
    stock_quantity = db.Column(db.Integer, nullable=True)
    low_stock_threshold = db.Column(db.Integer, nullable=False, default=5)
    stock_updated_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, server_default=db.func.now())

    variants = db.relationship(
        "ProductVariant",
        back_populates="product",
        lazy=True,
        order_by="ProductVariant.id",
    )

    def __repr__(self) -> str:
        return f"<Product id={self.id} name={self.name!r} price={self.price}>"

    def has_stock(self, quantity: int) -> bool:
        if not self.track_stock:
            return True
        return self.stock_quantity is not None and self.stock_quantity >= quantity

    @property
    def is_sold_out(self) -> bool:
        return bool(self.track_stock) and (self.stock_quantity or 0) == 0

    @property
    def is_low_stock(self) -> bool:
        if not self.track_stock or self.stock_quantity is None:
            return False
        return 0 < self.stock_quantity <= (self.low_stock_threshold or 0)

    @property
    def is_available_for_purchase(self) -> bool:
        return bool(self.is_available) and not self.is_sold_out

    def to_dict(self, include_variants: bool = False) -> dict:
        data = {
            "id": self.id,
            "name": self.name,
            "category": self.category,
            "price": money_str(self.price),
            "is_available": self.is_available,
            "is_available_for_purchase": self.is_available_for_purchase,
            "track_stock": bool(self.track_stock),
            "stock_quantity": self.stock_quantity,
            "low_stock_threshold": self.low_stock_threshold,
            "is_sold_out": self.is_sold_out,
            "is_low_stock": self.is_low_stock,
            "stock_updated_at": to_utc_z(self.stock_updated_at),
            "created_at": to_utc_z(self.created_at),
        }
        if include_variants:
            data["variants"] = [v.to_dict() for v in self.variants if v.is_active]
        return data


class ProductVariant(db.Model):
    """Customization option (size, milk, extra shot) with a per-unit price delta."""
    __tablename__ = "product_variants"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    group_name = db.Column(db.String(64), nullable=False)  # e.g. "Size"
    name = db.Column(db.String(64), nullable=False)        # e.g. "Large"
    price_delta = db.Column(Money, nullable=False, default=0)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    product = db.relationship("Product", back_populates="variants")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "group_name": self.group_name,
            "name": self.name,
            "price_delta": money_str(self.price_delta),
            "is_active": self.is_active,
        }


class StockLog(db.Model):
    """
    Append-only record of one stock change on a tracked product.

    quantity_after - quantity_before == quantity_change, except where a
    removal was clamped at 0.
    """
    __tablename__ = "stock_logs"
    __table_args__ = (
        db.Index("ix_stock_logs_product_created", "product_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=True, index=True)

    quantity_change = db.Column(db.Integer, nullable=False)
    quantity_before = db.Column(db.Integer, nullable=False)
    quantity_after = db.Column(db.Integer, nullable=False)
    reason = db.Column(enum_column_type(StockReason, "stock_reason"), nullable=False)

    changed_by = db.Column(db.String(64), nullable=True)
    notes = db.Column(db.String(500), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    product = db.relationship("Product")
    order = db.relationship("Order")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "order_id": self.order_id,
            "order_number": self.order.order_number if self.order else None,
            "quantity_change": self.quantity_change,
            "quantity_before": self.quantity_before,
            "quantity_after": self.quantity_after,
            "reason": self.reason.value if self.reason else None,
            "changed_by": self.changed_by,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
        }
