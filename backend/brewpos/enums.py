from __future__ import annotations

import enum


class Channel(str, enum.Enum):
    """Where an order originated; selects its transition table."""
    ONLINE = "online"
    POS = "pos"


class OrderStatus(str, enum.Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PREPARING = "preparing"
    OUT_FOR_DELIVERY = "out_for_delivery"
    DELIVERED = "delivered"
    FAILED = "failed"
    CANCELLED = "cancelled"


class PaymentMethod(str, enum.Enum):
    CASH = "cash"
    GCASH = "gcash"


class StockReason(str, enum.Enum):
    """Why a tracked product's stock changed."""
    SALE = "sale"
    ORDER_CANCELLED = "order_cancelled"
    ORDER_FAILED = "order_failed"
    RESTOCK = "restock"
    ADJUSTMENT = "adjustment"
    DAMAGED = "damaged"
    EXPIRED = "expired"
    RETURNED = "returned"


class StockAdjustment(str, enum.Enum):
    ADD = "add"
    REMOVE = "remove"
    SET = "set"


class ShiftStatus(str, enum.Enum):
    ACTIVE = "active"
    CLOSED = "closed"


def enum_values(enum_cls) -> list[str]:
    """Persist enum members by value ("pending"), not by name ("PENDING")."""
    return [member.value for member in enum_cls]
