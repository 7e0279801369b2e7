from __future__ import annotations
from datetime import datetime
from yuandi.time_utils import parse_iso_datetime

from dataclasses import dataclass
from typing import Any

from sqlalchemy import Boolean, Integer, String, Text, DateTime
from sqlalchemy.orm import DeclarativeMeta


# Upper bound for any single amount in whole currency units (KRW/CNY)
MAX_AMOUNT = 999_999_999_999

# Upper bound for a single quantity change
MAX_QUANTITY = 1_000_000


class ValidationError(ValueError):
    """400-level input problem."""


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    """
    writable_fields: set[str]
    required_on_create: set[str] = None  # type: ignore


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def _coerce_int(key: str, value: Any) -> int:
    # bool is an int subclass; reject it explicitly
    if isinstance(value, int) and not isinstance(value, bool):
        return value
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


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    if isinstance(coltype, Integer):
        return _coerce_int(col.key, value)

    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        return bool(value)

    # Datetimes (accept ISO-8601 strings; normalize to UTC)
    if isinstance(coltype, DateTime):
        if isinstance(value, datetime):
            return value
        if isinstance(value, str):
            try:
                dt = parse_iso_datetime(value)
            except ValueError:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
            if dt is None:
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

    partial=False: create semantics (enforce required_on_create)
    partial=True: patch semantics (validate only provided keys)
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

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

        if raw is None:
            if not col.nullable or k in required:
                raise ValidationError(f"{k} cannot be null")
            patch[k] = None
            continue

        val = _coerce_value(col, raw)

        if isinstance(col.type, (String, Text)) and (not col.nullable or k in required):
            if isinstance(val, str) and val == "":
                raise ValidationError(f"{k} cannot be blank")

        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}")

        patch[k] = val

    return patch


def require_int(payload: dict, key: str, *, required: bool = True, minimum: int | None = None) -> int | None:
    """Coerce a non-column integer field (e.g. inbound quantity)."""
    if key not in payload or payload[key] is None:
        if required:
            raise ValidationError(f"{key} is required")
        return None
    value = _coerce_int(key, payload[key])
    if minimum is not None and value < minimum:
        raise ValidationError(f"{key} must be >= {minimum}")
    return value


def require_bool(payload: dict, key: str, *, default: bool = False) -> bool:
    """Accept only a JSON boolean; missing or null falls back to default."""
    value = payload.get(key)
    if value is None:
        return default
    if not isinstance(value, bool):
        raise ValidationError(f"{key} must be a boolean")
    return value


def _check_amount(patch: dict, key: str, *, allow_zero: bool = True) -> None:
    if key not in patch or patch[key] is None:
        return
    value = patch[key]
    if value < 0:
        raise ValidationError(f"{key} must be >= 0")
    if not allow_zero and value == 0:
        raise ValidationError(f"{key} must be > 0")
    if value > MAX_AMOUNT:
        raise ValidationError(f"{key} cannot exceed {MAX_AMOUNT}")


def enforce_rules_product(patch: dict) -> None:
    """
    Business rules that are not captured by SQLAlchemy metadata alone.
    Keep these small and centralized.
    """
    _check_amount(patch, "cost_cny")
    _check_amount(patch, "sale_price_krw")
    if patch.get("low_stock_threshold") is not None and patch["low_stock_threshold"] < 0:
        raise ValidationError("low_stock_threshold must be >= 0")


def enforce_rules_stock_adjustment(patch: dict) -> None:
    # Manual adjustments: signed, non-zero delta within bounds
    delta = patch.get("delta")
    if delta is None or delta == 0:
        raise ValidationError("delta must be non-zero")
    if abs(delta) > MAX_QUANTITY:
        raise ValidationError(f"delta magnitude cannot exceed {MAX_QUANTITY}")
    if patch.get("movement_type") not in (None, "adjustment", "disposal"):
        raise ValidationError("movement_type must be adjustment or disposal for manual adjustments")
    if patch.get("movement_type") == "disposal" and delta > 0:
        raise ValidationError("disposal must decrease stock")


def enforce_rules_order(patch: dict) -> None:
    _check_amount(patch, "discount_amount")
    currency = patch.get("currency")
    if currency is not None and currency not in ("KRW", "CNY"):
        raise ValidationError("currency must be KRW or CNY")


def enforce_rules_shipment(patch: dict) -> None:
    _check_amount(patch, "shipping_fee")


def enforce_rules_refund(patch: dict) -> None:
    _check_amount(patch, "refund_amount", allow_zero=False)


def enforce_rules_cashbook_entry(patch: dict) -> None:
    amount = patch.get("amount")
    if amount is None or amount == 0:
        raise ValidationError("amount must be non-zero")
    if abs(amount) > MAX_AMOUNT:
        raise ValidationError(f"amount magnitude cannot exceed {MAX_AMOUNT}")
