# Overview: Payload validation and value coercion shared by routes and services.

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Any

from sqlalchemy import Enum, Integer, String, Text
from sqlalchemy.orm import DeclarativeMeta

from .errors import ValidationError


# Maximum money value: $9,999,999.99 (999,999,999 cents)
MAX_PRICE_CENTS = 999_999_999


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    """
    writable_fields: set[str]
    required_on_create: set[str] | None = None


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def coerce_int(value: Any, field: str) -> int:
    """
    Strict integer coercion: rejects bools, floats, decimals and scientific
    notation so "12.5" or 1e3 never silently become cents.
    """
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{field} must be an integer")
        if "e" in stripped.lower():
            raise ValidationError(f"{field} must be a plain integer (scientific notation not allowed)")
        if "." in stripped:
            raise ValidationError(f"{field} must be an integer (no decimals)")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer")
    if isinstance(value, float):
        raise ValidationError(f"{field} must be an integer, not a decimal")
    raise ValidationError(f"{field} must be an integer")


def coerce_enum(enum_cls: type[enum.Enum], value: Any, field: str):
    if isinstance(value, enum_cls):
        return value
    if isinstance(value, str):
        try:
            return enum_cls(value.strip().upper())
        except ValueError:
            pass
    allowed = ", ".join(m.value for m in enum_cls)
    raise ValidationError(f"{field} must be one of: {allowed}")


def require_positive_cents(value: Any, field: str) -> int:
    cents = coerce_int(value, field)
    if cents <= 0:
        raise ValidationError(f"{field} must be > 0")
    if cents > MAX_PRICE_CENTS:
        raise ValidationError(f"{field} cannot exceed {MAX_PRICE_CENTS} (${MAX_PRICE_CENTS / 100:,.2f})")
    return cents


def require_non_negative_cents(value: Any, field: str) -> int:
    cents = coerce_int(value, field)
    if cents < 0:
        raise ValidationError(f"{field} must be >= 0")
    if cents > MAX_PRICE_CENTS:
        raise ValidationError(f"{field} cannot exceed {MAX_PRICE_CENTS} (${MAX_PRICE_CENTS / 100:,.2f})")
    return cents


def require_positive_quantity(value: Any, field: str = "quantity") -> int:
    qty = coerce_int(value, field)
    if qty <= 0:
        raise ValidationError(f"{field} must be > 0")
    return qty


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    if isinstance(coltype, Enum) and coltype.enum_class is not None:
        return coerce_enum(coltype.enum_class, value, col.key)

    if isinstance(coltype, Integer):
        return coerce_int(value, col.key)

    if isinstance(coltype, (String, Text)):
        return str(value).strip()

    return value


def validate_payload(
    *,
    model: DeclarativeMeta,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Clean a create/update payload for `model`.

    Only fields in policy.writable_fields are accepted. Values are coerced by
    column type (enum, integer, text), nullability and String lengths come
    from the column definitions. Returns the cleaned patch.
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    if not partial:
        missing = sorted((policy.required_on_create or set()) - set(payload))
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    columns = _columns_by_key(model)
    patch: dict = {}

    for field, raw in payload.items():
        if field not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {field}")
        column = columns.get(field)
        if column is None:
            raise ValidationError(f"Unknown field: {field}")

        if raw is None:
            if not column.nullable:
                raise ValidationError(f"{field} cannot be null")
            patch[field] = None
            continue

        value = _coerce_value(column, raw)
        if isinstance(value, str) and not isinstance(value, enum.Enum):
            if value == "" and not column.nullable:
                raise ValidationError(f"{field} cannot be blank")
            length = getattr(column.type, "length", None)
            if length and len(value) > length:
                raise ValidationError(f"{field} exceeds max length {length}")

        patch[field] = value

    return patch


def enforce_rules_ticket(patch: dict) -> None:
    """Business rules for ticket intake that column metadata cannot express."""
    if patch.get("estimated_price_cents") is not None:
        require_non_negative_cents(patch["estimated_price_cents"], "estimated_price_cents")
    if patch.get("warranty_days") is not None and patch["warranty_days"] < 0:
        raise ValidationError("warranty_days must be >= 0")
