from __future__ import annotations

from ..extensions import db
from brewpos.time_utils import to_utc_z, utcnow
from .types import Money, money_str


class CartItem(db.Model):
    """
    Storefront cart line for one customer.

    No stored line total: it is always priced on read from quantity,
    unit price and the selected variants.
    """
    __tablename__ = "cart_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.String(64), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)

    quantity = db.Column(db.Integer, nullable=False, default=1)
    unit_price = db.Column(Money, nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, server_default=db.func.now())

    product = db.relationship("Product")
    variants = db.relationship(
        "CartItemVariant",
        back_populates="cart_item",
        cascade="all, delete-orphan",
        lazy=True,
        order_by="CartItemVariant.id",
    )

    def to_dict(self, line_total=None) -> dict:
        return {
            "id": self.id,
            "customer_id": self.customer_id,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "quantity": self.quantity,
            "unit_price": money_str(self.unit_price),
            "variants": [v.to_dict() for v in self.variants],
            "line_total": money_str(line_total),
            "created_at": to_utc_z(self.created_at),
        }


class CartItemVariant(db.Model):
    __tablename__ = "cart_item_variants"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    cart_item_id = db.Column(db.Integer, db.ForeignKey("cart_items.id"), nullable=False, index=True)
    variant_id = db.Column(db.Integer, db.ForeignKey("product_variants.id"), nullable=False)

    variant_group_name = db.Column(db.String(64), nullable=False)
    variant_name = db.Column(db.String(64), nullable=False)
    price_delta = db.Column(Money, nullable=False, default=0)

    cart_item = db.relationship("CartItem", back_populates="variants")

    def to_dict(self) -> dict:
        return {
            "variant_id": self.variant_id,
            "group_name": self.variant_group_name,
            "name": self.variant_name,
            "price_delta": money_str(self.price_delta),
        }
