# Overview: Service-layer operations for order numbering.

from __future__ import annotations

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import OrderSequence
from brewpos.time_utils import utcnow


ORDER_NUMBER_PAD = 5


def order_number_prefix(year: int | None = None) -> str:
    return f"CS-{year or utcnow().year}-"


def next_order_number(*, year: int | None = None, pad: int = ORDER_NUMBER_PAD) -> str:
    """
    Atomically allocate the next order number, e.g. "CS-2026-00042".

    Runs inside the caller's transaction (the number is only consumed if the
    order commits). Uses an UPDATE ... next_number + 1 so concurrent callers
    serialize on the sequence row.
    """
    prefix = order_number_prefix(year)

    stmt = (
        update(OrderSequence)
        .where(OrderSequence.prefix == prefix)
        .values(next_number=OrderSequence.next_number + 1)
    )

    result = db.session.execute(stmt)
    if not result.rowcount:
        try:
            with db.session.begin_nested():
                db.session.add(OrderSequence(prefix=prefix, next_number=2))
            return f"{prefix}{1:0{pad}d}"
        except IntegrityError:
            # Another transaction created the row first
            result = db.session.execute(stmt)
            if not result.rowcount:
                raise

    current = (
        db.session.query(OrderSequence.next_number)
        .filter_by(prefix=prefix)
        .scalar()
    )
    return f"{prefix}{current - 1:0{pad}d}"
