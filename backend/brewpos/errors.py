# Overview: Domain error taxonomy shared by services and routes.

"""
Business failures are raised as DomainError subclasses and converted by the
routes into the JSON failure envelope:

    {"error": <message>, "code": <class name>, "details": {...}}

Anything that is not a DomainError (storage unavailable, programming errors)
is unexpected and propagates as-is.
"""

from __future__ import annotations


class DomainError(Exception):
    """Base class for expected business failures."""

    status_code = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    @property
    def code(self) -> str:
        return type(self).__name__

    def to_dict(self) -> dict:
        return {
            "error": self.message,
            "code": self.code,
            "details": self.details,
        }


class ValidationError(DomainError, ValueError):
    """400-level input problem (malformed, missing or out of range)."""

    status_code = 400


class MissingReason(ValidationError):
    """A transition to 'failed' was requested without a failure reason."""


class StateError(DomainError):
    """Operation is not valid for the current state of the record."""

    status_code = 409


class InvalidTransition(StateError):
    status_code = 422


class ShiftAlreadyActive(StateError):
    pass


class ShiftAlreadyClosed(StateError):
    pass


class PreconditionError(DomainError):
    """A required condition outside the input does not hold."""

    status_code = 409


class NoActiveShiftError(PreconditionError):
    pass


class InFlightOrdersError(PreconditionError):
    """
    Raised when a shift close is vetoed by non-terminal orders.

    Carries the offending orders so the caller can list them without a
    second round trip.
    """

    def __init__(self, orders: list, message: str | None = None):
        count = len(orders)
        super().__init__(
            message or (
                f"Cannot close shift with {count} in-flight order(s). "
                "Complete or cancel all orders first."
            ),
            details={
                "in_flight_orders": [
                    {
                        "id": o.id,
                        "order_number": o.order_number,
                        "status": o.status.value,
                        "total": str(o.total) if o.total is not None else None,
                    }
                    for o in orders
                ]
            },
        )
        self.orders = list(orders)


class NotFoundError(DomainError):
    status_code = 404


class InsufficientStockError(PreconditionError):
    """A stock-tracked product has fewer units on hand than an order needs."""
