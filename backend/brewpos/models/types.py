from __future__ import annotations

from decimal import Decimal

from ..extensions import db
from ..enums import enum_values

# All currency amounts: 2 decimal places, returned as Decimal
Money = db.Numeric(12, 2, asdecimal=True)


def enum_column_type(enum_cls, name: str):
    """String-backed enum column that loads as the enum member."""
    return db.Enum(
        enum_cls,
        name=name,
        native_enum=False,
        length=32,
        values_callable=enum_values,
        validate_strings=True,
    )


def money_str(value) -> str | None:
    if value is None:
        return None
    return str(Decimal(value).quantize(Decimal("0.01")))


def percent_str(value) -> str | None:
    """Percentages keep their significant places: 10 -> "10.00", 12.345 -> "12.345"."""
    if value is None:
        return None
    percent = Decimal(value)
    cents = percent.quantize(Decimal("0.01"))
    if percent == cents:
        return str(cents)
    return format(percent.normalize(), "f")
