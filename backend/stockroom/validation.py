# Overview: Request payload validation driven by SQLAlchemy column metadata plus per-route allowlists.

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import Boolean, Integer, Numeric, String, Text

from .errors import ValidationError, ConflictError  # noqa: F401  (re-exported for routes)
from .models import MOVEMENT_KINDS


# NUMERIC(12, 2) upper bound
MAX_PRICE = 9_999_999_999.99


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    What a route lets clients write.

    writable_fields is the security boundary: anything else in the payload is
    rejected, including real columns such as Product.stock on update.
    """
    writable_fields: frozenset[str] | set[str]
    required_on_create: frozenset[str] | set[str] = field(default_factory=frozenset)


def _as_int(key: str, value: Any) -> int:
    # bool is an int subclass and floats would silently truncate
    if isinstance(value, bool) or isinstance(value, float):
        raise ValidationError(f"{key} must be an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        text = value.strip()
        digits = text[1:] if text[:1] in "+-" else text
        if not digits.isdigit():
            raise ValidationError(f"{key} must be a plain integer")
        return int(text)
    raise ValidationError(f"{key} must be an integer")


def _as_amount(key: str, value: Any) -> float:
    if isinstance(value, bool):
        raise ValidationError(f"{key} must be a number")
    if isinstance(value, str):
        try:
            value = float(value.strip())
        except ValueError:
            raise ValidationError(f"{key} must be a number")
    if not isinstance(value, (int, float)) or not math.isfinite(value):
        raise ValidationError(f"{key} must be a number")
    return round(float(value), 2)


def _coerce(col, value: Any) -> Any:
    if isinstance(col.type, Integer):
        return _as_int(col.key, value)
    if isinstance(col.type, Numeric):
        return _as_amount(col.key, value)
    if isinstance(col.type, Boolean):
        return bool(value)
    if isinstance(col.type, (String, Text)):
        if isinstance(value, (dict, list)):
            raise ValidationError(f"{col.key} must be a string")
        text = str(value).strip()
        if not col.nullable and text == "":
            raise ValidationError(f"{col.key} cannot be blank")
        length = getattr(col.type, "length", None)
        if length and len(text) > length:
            raise ValidationError(f"{col.key} exceeds max length {length}")
        return text
    return value


def validate_payload(*, model, payload: Any, policy: ModelValidationPolicy, partial: bool) -> dict:
    """
    Return a cleaned patch containing only writable, type-checked fields.

    partial=False enforces required_on_create (POST); partial=True checks
    only the keys that were sent (PUT).
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    if not partial:
        missing = sorted(set(policy.required_on_create) - payload.keys())
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    columns = {c.key: c for c in model.__mapper__.columns}
    patch: dict = {}

    for key, raw in payload.items():
        if key not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {key}")
        col = columns.get(key)
        if col is None:
            raise ValidationError(f"Unknown field: {key}")

        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{key} cannot be null")
            patch[key] = None
        else:
            patch[key] = _coerce(col, raw)

    return patch


def enforce_rules_product(patch: dict) -> None:
    price = patch.get("price")
    if price is not None and not 0 <= price <= MAX_PRICE:
        raise ValidationError(f"price must be between 0 and {MAX_PRICE:,.2f}")

    stock = patch.get("stock")
    if stock is not None and stock < 0:
        raise ValidationError("stock must be >= 0")


def enforce_rules_movement(patch: dict) -> None:
    if patch.get("type") not in MOVEMENT_KINDS:
        raise ValidationError("type must be 'in' or 'out'")

    quantity = patch.get("quantity")
    if quantity is None or quantity <= 0:
        raise ValidationError("quantity must be > 0")
