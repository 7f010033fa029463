from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from .enums import PaymentMethod
from .errors import ValidationError


@dataclass(frozen=True)
class PayloadPolicy:
    """
    Central policy layer for one request body:
    - allowed_fields: what clients are allowed to send (unknown keys are rejected)
    - required: fields that must be present and non-null
    - max_lengths: String limits, mirroring the column sizes
    """
    allowed_fields: set[str]
    required: set[str] = field(default_factory=set)
    max_lengths: dict[str, int] = field(default_factory=dict)


POS_ORDER_POLICY = PayloadPolicy(
    allowed_fields={
        "items", "payment_method", "discount_percent", "discount_reason",
        "customer_name", "customer_phone", "notes", "location",
    },
    required={"items", "payment_method"},
    max_lengths={
        "discount_reason": 120,
        "customer_name": 120,
        "customer_phone": 50,
        "notes": 500,
    },
)

DELIVERY_ORDER_POLICY = PayloadPolicy(
    allowed_fields={
        "selected_items", "buy_now_item", "delivery_address", "delivery_contact",
        "delivery_instructions", "payment_method", "delivery_fee", "notes",
    },
    required={"delivery_address", "delivery_contact", "payment_method"},
    max_lengths={
        "delivery_address": 1000,
        "delivery_contact": 20,
        "delivery_instructions": 500,
        "notes": 500,
    },
)

ITEM_POLICY = PayloadPolicy(
    allowed_fields={"product_id", "quantity", "variant_ids"},
    required={"product_id", "quantity"},
)


def validate_payload(payload: Any, policy: PayloadPolicy) -> dict:
    """
    Validates + normalizes an incoming JSON object against a policy.

    Strings are stripped; blank optional strings become None.
    Returns a cleaned dict with only allowed fields.
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    for k in payload.keys():
        if k not in policy.allowed_fields:
            raise ValidationError(f"Field not allowed: {k}")

    missing = sorted(f for f in policy.required if payload.get(f) is None)
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    cleaned: dict = {}
    for k, raw in payload.items():
        if k in policy.max_lengths:
            cleaned[k] = coerce_str(k, raw, policy.max_lengths[k], required=k in policy.required)
        else:
            cleaned[k] = raw
    return cleaned


def coerce_str(key: str, value: Any, max_length: int | None = None, *, required: bool = False) -> str | None:
    if value is None:
        if required:
            raise ValidationError(f"{key} is required")
        return None
    if not isinstance(value, (str, int)) or isinstance(value, bool):
        raise ValidationError(f"{key} must be a string")
    s = str(value).strip()
    if not s:
        if required:
            raise ValidationError(f"{key} cannot be blank")
        return None
    if max_length and len(s) > max_length:
        raise ValidationError(f"{key} exceeds max length {max_length}")
    return s


def coerce_int(key: str, value: Any) -> int:
    """Strict integer: rejects bools, floats, decimals and scientific notation."""
    # Already an int (but not bool which is a subclass of int)
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    # String input - must be plain digits (with optional leading minus)
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{key} must be an integer")
        if 'e' in stripped.lower():
            raise ValidationError(f"{key} must be a plain integer (scientific notation not allowed)")
        if '.' in stripped:
            raise ValidationError(f"{key} must be an integer (no decimals)")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{key} must be an integer")
    if isinstance(value, float):
        raise ValidationError(f"{key} must be an integer, not a decimal")
    raise ValidationError(f"{key} must be an integer")


def coerce_payment_method(value: Any) -> PaymentMethod:
    try:
        return PaymentMethod(str(value).strip().lower())
    except ValueError:
        allowed = ", ".join(m.value for m in PaymentMethod)
        raise ValidationError(f"payment_method must be one of: {allowed}")


def coerce_item(raw: Any, index: int) -> dict:
    """One requested order/cart line: product_id, quantity, optional variant_ids."""
    if not isinstance(raw, dict):
        raise ValidationError(f"items[{index}] must be an object")
    item = validate_payload(raw, ITEM_POLICY)

    variant_ids = item.get("variant_ids") or []
    if not isinstance(variant_ids, list):
        raise ValidationError(f"items[{index}].variant_ids must be a list")

    return {
        "product_id": coerce_int(f"items[{index}].product_id", item["product_id"]),
        "quantity": coerce_int(f"items[{index}].quantity", item["quantity"]),
        "variant_ids": [coerce_int(f"items[{index}].variant_ids", v) for v in variant_ids],
    }


def coerce_items(raw: Any, key: str = "items") -> list[dict]:
    if not isinstance(raw, list) or not raw:
        raise ValidationError(f"{key} must be a non-empty list")
    return [coerce_item(entry, i) for i, entry in enumerate(raw)]
