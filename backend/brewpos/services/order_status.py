# Overview: Order status state machine, parameterized by channel.

"""
Order Status Engine

================================================================================
PURPOSE: Guard an order's lifecycle against illegal transitions
================================================================================

STATE MACHINES:

    Delivery (online):
        pending          -> confirmed | cancelled
        confirmed        -> preparing | cancelled
        preparing        -> out_for_delivery | failed
        out_for_delivery -> delivered | failed
        delivered, failed, cancelled: terminal

    POS (in-store):
        pending    -> confirmed | cancelled
        confirmed  -> preparing | cancelled
        preparing  -> delivered | cancelled
        delivered, cancelled: terminal

    POS has no out_for_delivery or failed; "delivered" there means picked up.

RULES:
1. A transition succeeds only if the target is in the allowed-next set of the
   current status for the order's channel.
2. Moving to 'failed' requires a reason.
3. Every successful transition stamps the matching timestamp and appends one
   immutable OrderStatusLog row.
4. Notifications and sales accounting are the caller's job.

The engine works on the order object it is given; persistence and row locking
belong to order_service.
================================================================================
"""

from __future__ import annotations

from datetime import datetime

from ..enums import Channel, OrderStatus
from ..errors import InvalidTransition, MissingReason, ValidationError
from ..models import OrderStatusLog
from brewpos.time_utils import utcnow


S = OrderStatus
FAILURE_REASON_MAX_LENGTH = 255  # orders.failure_reason column

TRANSITIONS: dict[Channel, dict[OrderStatus, frozenset[OrderStatus]]] = {
    Channel.ONLINE: {
        S.PENDING: frozenset({S.CONFIRMED, S.CANCELLED}),
        S.CONFIRMED: frozenset({S.PREPARING, S.CANCELLED}),
        S.PREPARING: frozenset({S.OUT_FOR_DELIVERY, S.FAILED}),
        S.OUT_FOR_DELIVERY: frozenset({S.DELIVERED, S.FAILED}),
        S.DELIVERED: frozenset(),
        S.FAILED: frozenset(),
        S.CANCELLED: frozenset(),
    },
    Channel.POS: {
        S.PENDING: frozenset({S.CONFIRMED, S.CANCELLED}),
        S.CONFIRMED: frozenset({S.PREPARING, S.CANCELLED}),
        S.PREPARING: frozenset({S.DELIVERED, S.CANCELLED}),
        S.DELIVERED: frozenset(),
        S.CANCELLED: frozenset(),
    },
}

INITIAL_STATUS: dict[Channel, OrderStatus] = {
    Channel.ONLINE: S.PENDING,
    # POS orders are taken at the counter and start confirmed
    Channel.POS: S.CONFIRMED,
}

TIMESTAMP_FIELDS: dict[OrderStatus, str] = {
    S.CONFIRMED: "confirmed_at",
    S.PREPARING: "preparing_at",
    S.OUT_FOR_DELIVERY: "out_for_delivery_at",
    S.DELIVERED: "delivered_at",
    S.FAILED: "failed_at",
}

STATUS_LABELS: dict[OrderStatus, str] = {
    S.PENDING: "Pending",
    S.CONFIRMED: "Confirmed",
    S.PREPARING: "Preparing",
    S.OUT_FOR_DELIVERY: "Out for Delivery",
    S.DELIVERED: "Delivered",
    S.FAILED: "Failed",
    S.CANCELLED: "Cancelled",
}


def _check_tables() -> None:
    """Fail at import if a table is not closed over its own statuses."""
    if set(TRANSITIONS) != set(Channel) or set(INITIAL_STATUS) != set(Channel):
        raise RuntimeError("Every channel needs a transition table and an initial status")
    if set(STATUS_LABELS) != set(OrderStatus):
        raise RuntimeError("Every status needs a label")
    for channel, table in TRANSITIONS.items():
        for status, targets in table.items():
            unknown = targets - set(table)
            if unknown:
                raise RuntimeError(
                    f"{channel.value}: {status.value} points to statuses outside the channel: "
                    f"{sorted(t.value for t in unknown)}"
                )
        if INITIAL_STATUS[channel] not in table:
            raise RuntimeError(f"{channel.value}: initial status is not part of the channel")


_check_tables()


def coerce_channel(channel) -> Channel:
    try:
        return Channel(channel)
    except ValueError:
        raise InvalidTransition(f"Unknown order channel '{channel}'")


def coerce_status(status) -> OrderStatus:
    try:
        return OrderStatus(status)
    except ValueError:
        raise InvalidTransition(
            f"Unknown order status '{status}'",
            details={"allowed_statuses": [s.value for s in OrderStatus]},
        )


def statuses_for(channel) -> frozenset[OrderStatus]:
    return frozenset(TRANSITIONS[coerce_channel(channel)])


def allowed_next(status, channel) -> frozenset[OrderStatus]:
    table = TRANSITIONS[coerce_channel(channel)]
    current = coerce_status(status)
    if current not in table:
        raise InvalidTransition(
            f"Status '{current.value}' does not exist for {coerce_channel(channel).value} orders"
        )
    return table[current]


def is_terminal(status, channel) -> bool:
    return not allowed_next(status, channel)


def in_flight_statuses(channel) -> frozenset[OrderStatus]:
    """Statuses of the channel that still have somewhere to go."""
    table = TRANSITIONS[coerce_channel(channel)]
    return frozenset(status for status, targets in table.items() if targets)


def valid_transitions(order) -> list[OrderStatus]:
    """Allowed next statuses for an order, in declaration order."""
    allowed = allowed_next(order.status, order.channel)
    return [status for status in OrderStatus if status in allowed]


def status_label(status) -> str:
    return STATUS_LABELS[coerce_status(status)]


def can_transition(order, target) -> bool:
    try:
        target_status = OrderStatus(target)
    except ValueError:
        return False
    return target_status in allowed_next(order.status, order.channel)


def begin(order, actor: str | None, notes: str | None = None, now: datetime | None = None) -> OrderStatusLog:
    """
    Put a new order into its channel's initial status.

    The log entry has no from_status; it records where the lifecycle started.
    """
    channel = coerce_channel(order.channel)
    ts = now or utcnow()
    initial = INITIAL_STATUS[channel]

    order.status = initial
    field = TIMESTAMP_FIELDS.get(initial)
    if field:
        setattr(order, field, ts)

    log = OrderStatusLog(
        from_status=None,
        to_status=initial,
        changed_by=actor,
        notes=notes,
        created_at=ts,
    )
    order.status_logs.append(log)
    return log


def transition(
    order,
    target,
    actor: str | None,
    notes: str | None = None,
    *,
    reason: str | None = None,
    now: datetime | None = None,
) -> OrderStatusLog:
    """
    Move an order to `target`.

    Raises:
        InvalidTransition: target not allowed from the current status in this
            channel (the order is left untouched)
        MissingReason: target is 'failed' and no reason was given

    Returns:
        The appended OrderStatusLog entry
    """
    channel = coerce_channel(order.channel)
    current = coerce_status(order.status)
    target_status = coerce_status(target)
    allowed = allowed_next(current, channel)

    if target_status not in allowed:
        raise InvalidTransition(
            f"Cannot transition from '{current.value}' to '{target_status.value}' "
            f"for {channel.value} orders",
            details={
                "from_status": current.value,
                "to_status": target_status.value,
                "valid_transitions": [s.value for s in OrderStatus if s in allowed],
            },
        )

    if target_status == S.FAILED:
        if reason is None or not str(reason).strip():
            raise MissingReason("A failure reason is required to mark an order as failed")
        reason = str(reason).strip()
        if len(reason) > FAILURE_REASON_MAX_LENGTH:
            raise ValidationError(
                f"reason exceeds max length {FAILURE_REASON_MAX_LENGTH}",
                details={"field": "reason", "max_length": FAILURE_REASON_MAX_LENGTH},
            )

    ts = now or utcnow()

    order.status = target_status
    field = TIMESTAMP_FIELDS.get(target_status)
    if field:
        setattr(order, field, ts)
    if target_status == S.FAILED:
        order.failure_reason = reason

    log = OrderStatusLog(
        from_status=current,
        to_status=target_status,
        changed_by=actor,
        notes=notes if notes else reason,
        created_at=ts,
    )
    order.status_logs.append(log)
    return log
