from __future__ import annotations

from ..extensions import db
from ..enums import ShiftStatus
from brewpos.time_utils import to_utc_z, utcnow
from .types import Money, enum_column_type, money_str


class PosShift(db.Model):
    """
    One cash-drawer session, from open to close.

    WHY: Cashier accountability. The drawer starts with an opening float,
    sales accumulate while the shift is active, and the close records a
    blind count against the expected cash.

    LIFECYCLE:
    - active: sales are accepted and added to the totals
    - closed: counted, variance fixed

    At most one active shift per location (partial unique index below).
    IMMUTABLE: Once closed, reconciliation fields are never rewritten.
    """
    __tablename__ = "pos_shifts"
    __table_args__ = (
        db.Index(
            "uq_pos_shifts_one_active_per_location",
            "location",
            unique=True,
            sqlite_where=db.text("status = 'active'"),
            postgresql_where=db.text("status = 'active'"),
        ),
        db.Index("ix_pos_shifts_status_opened", "status", "opened_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    location = db.Column(db.String(64), nullable=False, default="main", index=True)

    status = db.Column(enum_column_type(ShiftStatus, "shift_status"), nullable=False, default=ShiftStatus.ACTIVE)

    opened_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    closed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    opened_by = db.Column(db.String(64), nullable=True)
    closed_by = db.Column(db.String(64), nullable=True)

    opening_cash_float = db.Column(Money, nullable=False, default=0)

    # Accumulated by shift_service.record_sale
    cash_sales_total = db.Column(Money, nullable=False, default=0)
    ewallet_sales_total = db.Column(Money, nullable=False, default=0)
    gross_sales_total = db.Column(Money, nullable=False, default=0)

    # Set once, at close
    actual_cash_count = db.Column(Money, nullable=True)
    expected_cash = db.Column(Money, nullable=True)  # opening float + cash sales
    variance = db.Column(Money, nullable=True)       # actual - expected
    is_discrepant = db.Column(db.Boolean, nullable=False, default=False)

    notes = db.Column(db.String(1000), nullable=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    orders = db.relationship("Order", back_populates="shift", lazy=True, order_by="Order.id")
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def is_active(self) -> bool:
        return self.status == ShiftStatus.ACTIVE

    def __repr__(self) -> str:
        return f"<PosShift id={self.id} location={self.location!r} status={self.status}>"

    def to_dict(self) -> dict:
        # Blind count: while the drawer is open nobody sees what it should hold
        hidden = self.is_active
        return {
            "id": self.id,
            "location": self.location,
            "status": self.status.value if self.status else None,
            "opened_at": to_utc_z(self.opened_at),
            "closed_at": to_utc_z(self.closed_at),
            "opened_by": self.opened_by,
            "closed_by": self.closed_by,
            "opening_cash_float": money_str(self.opening_cash_float),
            "cash_sales_total": None if hidden else money_str(self.cash_sales_total),
            "ewallet_sales_total": None if hidden else money_str(self.ewallet_sales_total),
            "gross_sales_total": None if hidden else money_str(self.gross_sales_total),
            "expected_cash": None if hidden else money_str(self.expected_cash),
            "actual_cash_count": None if hidden else money_str(self.actual_cash_count),
            "variance": None if hidden else money_str(self.variance),
            "is_discrepant": False if hidden else bool(self.is_discrepant),
            "notes": self.notes,
            "version_id": self.version_id,
        }
