from __future__ import annotations
from datetime import datetime
from backoffice.time_utils import parse_iso_datetime

from dataclasses import dataclass
from typing import Any

from flask import current_app

from sqlalchemy import Boolean, Integer, String, Text, DateTime
from sqlalchemy.orm import DeclarativeMeta

from .errors import ValidationError, EmptyCartError


# Maximum money amount: 9,999,999,999.99 (999,999,999,999 cents)
# Keeps values well inside a 64-bit integer column
MAX_AMOUNT_CENTS = 999_999_999_999

PAYMENT_METHODS = ("cash", "qris", "transfer")
DEBT_CREDIT_TYPES = ("debt", "credit")
EXPENSE_TYPES = ("capital", "electricity", "rent", "salary", "other")


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


def coerce_int(key: str, value: Any) -> int:
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


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    if isinstance(coltype, Integer):
        return coerce_int(col.key, value)

    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        raise ValidationError(f"{col.key} must be a boolean")

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

    # Reject unknown / non-writable fields
    for k in payload.keys():
        if k not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {k}")
        if k not in cols:
            raise ValidationError(f"Unknown field: {k}")

    patch: dict = {}

    for k, raw in payload.items():
        col = cols[k]

        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{k} cannot be null")
            patch[k] = None
            continue

        val = _coerce_value(col, raw)

        # Blank string check for non-nullable text fields
        if isinstance(col.type, (String, Text)) and not col.nullable:
            if isinstance(val, str) and val == "":
                raise ValidationError(f"{k} cannot be blank")

        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}")

        patch[k] = val

    return patch


def _check_amount(key: str, value, *, allow_zero: bool) -> None:
    if not isinstance(value, int) or isinstance(value, bool):
        raise ValidationError(f"{key} must be an integer amount in cents")
    if value < 0 or (value == 0 and not allow_zero):
        raise ValidationError(f"{key} must be {'>= 0' if allow_zero else '> 0'}")
    if value > MAX_AMOUNT_CENTS:
        raise ValidationError(f"{key} cannot exceed {MAX_AMOUNT_CENTS}")


def enforce_rules_product(patch: dict) -> None:
    """
    Business rules that are not captured by SQLAlchemy metadata alone.
    Keep these small and centralized.
    """
    if "price_cents" in patch:
        _check_amount("price_cents", patch["price_cents"], allow_zero=True)
    if "stock_quantity" in patch and patch["stock_quantity"] < 0:
        raise ValidationError("stock_quantity must be >= 0")
    if "min_stock_threshold" in patch and patch["min_stock_threshold"] < 0:
        raise ValidationError("min_stock_threshold must be >= 0")
    if patch.get("barcode") == "":
        patch["barcode"] = None


def enforce_rules_stock_adjust(patch: dict) -> None:
    # ADJUST sets an absolute quantity, never a delta
    if patch.get("new_quantity") is None or patch["new_quantity"] < 0:
        raise ValidationError("new_quantity must be >= 0")


def enforce_rules_stock_receive(patch: dict) -> None:
    if patch.get("quantity") is None or patch["quantity"] <= 0:
        raise ValidationError("quantity must be > 0 for a purchase")


def normalize_sale_items(items) -> list[dict]:
    """
    Validate the cart and return clean line requests.

    Each line needs a product_id, a positive integer quantity and a
    positive unit_price_cents. Order is preserved.
    """
    if items is None or (isinstance(items, list) and len(items) == 0):
        raise EmptyCartError()
    if not isinstance(items, list):
        raise ValidationError("items must be a list")

    lines = []
    for index, raw in enumerate(items):
        if not isinstance(raw, dict):
            raise ValidationError(f"items[{index}] must be an object")
        for key in ("product_id", "quantity", "unit_price_cents"):
            if raw.get(key) is None:
                raise ValidationError(f"items[{index}].{key} is required")
        product_id = coerce_int(f"items[{index}].product_id", raw["product_id"])
        quantity = coerce_int(f"items[{index}].quantity", raw["quantity"])
        unit_price_cents = coerce_int(f"items[{index}].unit_price_cents", raw["unit_price_cents"])
        if quantity <= 0:
            raise ValidationError(f"items[{index}].quantity must be > 0")
        _check_amount(f"items[{index}].unit_price_cents", unit_price_cents, allow_zero=False)
        lines.append({
            "product_id": product_id,
            "quantity": quantity,
            "unit_price_cents": unit_price_cents,
        })
    return lines


def enforce_rules_sale(*, discount_amount_cents, payment_method) -> None:
    _check_amount("discount_amount_cents", discount_amount_cents, allow_zero=True)
    if payment_method not in PAYMENT_METHODS:
        raise ValidationError(
            f"payment_method must be one of: {', '.join(PAYMENT_METHODS)}"
        )


def enforce_rules_debt_credit(patch: dict) -> None:
    if patch.get("type") not in DEBT_CREDIT_TYPES:
        raise ValidationError(f"type must be one of: {', '.join(DEBT_CREDIT_TYPES)}")
    _check_amount("amount_cents", patch.get("amount_cents"), allow_zero=False)


def enforce_rules_payment(payment_amount_cents) -> None:
    _check_amount("payment_amount_cents", payment_amount_cents, allow_zero=False)


def enforce_rules_expense(patch: dict) -> None:
    if patch.get("type") not in EXPENSE_TYPES:
        raise ValidationError(f"type must be one of: {', '.join(EXPENSE_TYPES)}")
    _check_amount("amount_cents", patch.get("amount_cents"), allow_zero=False)


def resolve_list_limit(limit) -> int:
    """Explicit limits must be >= 1; None falls back to LIST_LIMIT_DEFAULT."""
    if limit is None:
        return current_app.config.get("LIST_LIMIT_DEFAULT", 200)
    if limit < 1:
        raise ValidationError("limit must be >= 1")
    return limit
