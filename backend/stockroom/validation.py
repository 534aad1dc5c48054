from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

from sqlalchemy import Boolean, DateTime, Integer, String, Text
from sqlalchemy.orm import DeclarativeMeta

from .errors import ValidationError
from .time_utils import parse_iso_datetime


# Maximum price: $9,999,999.99 (999,999,999 cents)
MAX_PRICE_CENTS = 999_999_999
# Document amounts (totals, payments) are stored as BIGINT cents
MAX_AMOUNT_CENTS = MAX_PRICE_CENTS * 100
# 32-bit signed INTEGER columns (ids, quantities)
MAX_INT = 2_147_483_647
MAX_QUANTITY = 1_000_000_000
MAX_DECIMAL = Decimal("1e12")

CENT = Decimal("0.01")
HUNDRED = Decimal("100")


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


def _coerce_int(value: Any, field: str, *, limit: int = MAX_INT) -> int:
    # Already an int (but not bool which is a subclass of int)
    if isinstance(value, int) and not isinstance(value, bool):
        number = value
    elif isinstance(value, str):
        stripped = value.strip()
        if not stripped or 'e' in stripped.lower() or '.' in stripped:
            raise ValidationError(f"{field} must be an integer")
        try:
            number = int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer")
    else:
        raise ValidationError(f"{field} must be an integer")
    if abs(number) > limit:
        raise ValidationError(f"{field} is out of range")
    return number


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    if isinstance(coltype, Integer):
        return _coerce_int(value, col.key)

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
            if not col.nullable:
                raise ValidationError(f"{k} cannot be null")
            patch[k] = None
            continue

        val = _coerce_value(col, raw)

        if isinstance(col.type, (String, Text)) and not col.nullable:
            if isinstance(val, str) and val == "":
                raise ValidationError(f"{k} cannot be blank")

        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}")

        patch[k] = val

    return patch


def enforce_rules_product(patch: dict) -> None:
    """Business rules for products not captured by column metadata."""
    if "price_cents" in patch and patch["price_cents"] is not None:
        price = patch["price_cents"]
        if price < 0:
            raise ValidationError("price_cents must be >= 0")
        if price > MAX_PRICE_CENTS:
            raise ValidationError(f"price_cents cannot exceed {MAX_PRICE_CENTS} (${MAX_PRICE_CENTS / 100:,.2f})")
    for key in ("sku", "barcode"):
        if key in patch and patch[key] == "":
            patch[key] = None


# ---------------------------------------------------------------------------
# Field parsers for document payloads (purchases, sales)
# ---------------------------------------------------------------------------

def round_cents(amount: Decimal) -> int:
    """Round a cent amount to a whole cent, half-up."""
    try:
        return int(amount.quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    except InvalidOperation:
        raise ValidationError("amount is out of range")


def parse_int(
    value: Any,
    field: str,
    *,
    minimum: int | None = None,
    maximum: int | None = None,
    required: bool = True,
) -> int | None:
    if value is None:
        if required:
            raise ValidationError(f"{field} is required")
        return None
    number = _coerce_int(value, field)
    if minimum is not None and number < minimum:
        raise ValidationError(f"{field} must be >= {minimum}")
    if maximum is not None and number > maximum:
        raise ValidationError(f"{field} must be <= {maximum}")
    return number


def parse_quantity(value: Any, field: str, *, minimum: int = 1) -> int:
    """Whole-unit quantity in [minimum, MAX_QUANTITY]."""
    return parse_int(value, field, minimum=minimum, maximum=MAX_QUANTITY)


def parse_text(value: Any, field: str, *, max_length: int | None = None) -> str | None:
    """Optional free-text field: None or a string, stripped; blank becomes None."""
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string")
    text = value.strip()
    if max_length is not None and len(text) > max_length:
        raise ValidationError(f"{field} exceeds max length {max_length}")
    return text or None


def _to_decimal(value: Any, field: str) -> Decimal:
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a number")
    try:
        number = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{field} must be a number")
    if not number.is_finite():
        raise ValidationError(f"{field} must be a number")
    if abs(number) > MAX_DECIMAL:
        raise ValidationError(f"{field} is out of range")
    return number


def parse_cents(
    payload: dict,
    field: str,
    *,
    required: bool = False,
    default: int = 0,
    minimum: int | None = 0,
) -> int:
    """
    Read a money amount from payload as integer cents.

    Accepts either "<field>_cents" (integer) or "<field>" (decimal currency
    units, rounded half-up to the cent). The cents form wins if both are sent.
    """
    cents_key = f"{field}_cents"
    if payload.get(cents_key) is not None:
        cents = _coerce_int(payload[cents_key], cents_key, limit=MAX_AMOUNT_CENTS)
    elif payload.get(field) is not None:
        cents = round_cents(_to_decimal(payload[field], field) * HUNDRED)
    elif required:
        raise ValidationError(f"{field} is required")
    else:
        cents = default

    if minimum is not None and cents < minimum:
        raise ValidationError(f"{field} must be >= {minimum / 100:.2f}")
    if abs(cents) > MAX_AMOUNT_CENTS:
        raise ValidationError(f"{field} is too large")
    return cents


def parse_percent(value: Any, field: str, *, default: Decimal = Decimal("0")) -> Decimal:
    """Percentage in [0, 100], kept to two decimal places."""
    if value is None:
        return default
    pct = _to_decimal(value, field)
    if pct < 0 or pct > HUNDRED:
        raise ValidationError(f"{field} must be between 0 and 100")
    return pct.quantize(CENT, rounding=ROUND_HALF_UP)
