from __future__ import annotations
from datetime import datetime
from decimal import Decimal, InvalidOperation
import re

from dataclasses import dataclass
from typing import Any

from sqlalchemy import Boolean, Integer, String, Text, DateTime
from sqlalchemy.orm import DeclarativeMeta

from mintgate.time_utils import parse_iso_datetime, to_utc_naive


# Supply counters are bounded to keep SQLite and Postgres integer columns happy
MAX_SUPPLY_VALUE = 2_147_483_647

_CAMEL_RE = re.compile(r"(?<!^)(?=[A-Z])")


class ValidationError(ValueError):
    """400-level input problem."""


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for a full replace
    """
    writable_fields: set[str]
    required_on_create: set[str] | None = None


def snake_keys(payload: dict) -> dict:
    """Accept camelCase keys (salesStartDate) as well as snake_case."""
    return {_CAMEL_RE.sub("_", k).lower(): v for k, v in payload.items()}


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    # Integers - strict validation to reject floats and scientific notation
    if isinstance(coltype, Integer):
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        if isinstance(value, str):
            stripped = value.strip()
            if not stripped or not re.fullmatch(r"-?\d+", stripped):
                raise ValidationError(f"{col.key} must be a plain integer")
            return int(stripped)
        raise ValidationError(f"{col.key} must be an integer")

    # Booleans - explicit only; "false" must not become True
    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        if isinstance(value, str) and value.strip().lower() in {"true", "false", "1", "0"}:
            return value.strip().lower() in {"true", "1"}
        if isinstance(value, int) and value in (0, 1):
            return bool(value)
        raise ValidationError(f"{col.key} must be a boolean")

    # Datetimes (accept ISO-8601 strings; normalize to UTC)
    if isinstance(coltype, DateTime):
        if isinstance(value, datetime):
            return to_utc_naive(value)
        if isinstance(value, str):
            try:
                dt = parse_iso_datetime(value)
            except ValueError:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
            return dt
        raise ValidationError(f"{col.key} must be a datetime")

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
    Validates + normalizes incoming JSON against:
    - SQLAlchemy column metadata (nullable, type, String length)
    - a policy allowlist (writable_fields)
    - required_on_create (if partial=False)
    Returns a cleaned patch dict with only writable fields.

    partial=False: replace semantics (enforce required_on_create)
    partial=True: patch semantics (validate only provided keys)
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    payload = snake_keys(payload)

    required = policy.required_on_create or set()
    if not partial:
        missing = sorted(f for f in required if f not in payload)
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    cols = _columns_by_key(model)

    for k in payload.keys():
        if k not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {k}")
        if k not in cols:
            raise ValidationError(f"Unknown field: {k}")

    patch: dict = {}
    for k, raw in payload.items():
        col = cols[k]

        # Empty strings from forms mean "unset"
        if isinstance(raw, str) and raw.strip() == "" and col.nullable:
            raw = None

        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{k} cannot be null")
            patch[k] = None
            continue

        val = _coerce_value(col, raw)

        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}")

        patch[k] = val

    return patch


def enforce_rules_item_override(merged: dict) -> None:
    """
    Cross-field rules for an item override, checked against the merged
    (existing + incoming) values.
    """
    price = merged.get("custom_price")
    if price is not None:
        try:
            value = Decimal(str(price))
        except InvalidOperation:
            raise ValidationError("custom_price must be a decimal number")
        if not value.is_finite() or value < 0:
            raise ValidationError("custom_price must be >= 0")

    for key in ("max_supply", "reserved_supply", "max_per_wallet", "display_order"):
        value = merged.get(key)
        if value is None:
            continue
        if value < 0:
            raise ValidationError(f"{key} must be >= 0")
        if value > MAX_SUPPLY_VALUE:
            raise ValidationError(f"{key} cannot exceed {MAX_SUPPLY_VALUE}")

    max_supply = merged.get("max_supply")
    reserved = merged.get("reserved_supply") or 0
    if max_supply is not None and reserved > max_supply:
        raise ValidationError("reserved_supply cannot exceed max_supply")

    start = merged.get("sales_start_date")
    end = merged.get("sales_end_date")
    if start is not None and end is not None and end <= start:
        raise ValidationError("sales_end_date must be after sales_start_date")
