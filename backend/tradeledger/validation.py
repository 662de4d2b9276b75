from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from sqlalchemy import Integer, String, Text
from sqlalchemy.orm import DeclarativeMeta

from tradeledger.time_utils import parse_iso_datetime


# Every stored integer column is 32-bit.
MAX_INT32 = 2**31 - 1

# 9,999,999.99 in cents
MAX_PRICE_CENTS = 999_999_999

# Largest single movement or sale line
MAX_QUANTITY = 1_000_000


class ValidationError(ValueError):
    """Malformed or out-of-range input (HTTP 400)."""


class ConflictError(ValueError):
    """Input clashes with stored data, e.g. a phone number already in use (HTTP 409)."""


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Which model columns a client may send.

    writable_fields is the allowlist for both create and patch;
    required_on_create must additionally be present on create.
    """
    writable_fields: set[str]
    required_on_create: set[str] = field(default_factory=set)


def _strict_int(key: str, value: Any) -> int:
    """Ints and digit strings only; bool, float, "12.5" and "1e3" are refused."""
    if isinstance(value, bool):
        raise ValidationError(f"{key} must be an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        raise ValidationError(f"{key} must be an integer, not a decimal")
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{key} must be an integer")

    text = value.strip()
    if "e" in text.lower():
        raise ValidationError(f"{key} must be a plain integer (scientific notation not allowed)")
    if "." in text:
        raise ValidationError(f"{key} must be an integer (no decimals)")
    try:
        return int(text)
    except ValueError:
        raise ValidationError(f"{key} must be an integer")


def _clean_column_value(col, raw: Any):
    """Coerce one non-null value to the column's type and check its bounds."""
    if isinstance(col.type, Integer):
        value = _strict_int(col.key, raw)
        if abs(value) > MAX_INT32:
            raise ValidationError(f"{col.key} is out of range")
        return value

    if isinstance(col.type, (String, Text)):
        value = str(raw).strip()
        if value == "" and not col.nullable:
            raise ValidationError(f"{col.key} cannot be blank")
        max_length = getattr(col.type, "length", None)
        if max_length and len(value) > max_length:
            raise ValidationError(f"{col.key} exceeds max length {max_length}")
        return value

    return raw


def validate_payload(
    *,
    model: DeclarativeMeta,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Turn a JSON object into a clean column -> value dict for `model`.

    Keys must be in policy.writable_fields and name a mapped column. Types,
    nullability and String lengths come from the column definitions.
    With partial=False the policy's required_on_create keys must be present.
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    if not partial:
        missing = sorted(policy.required_on_create - set(payload))
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    columns = {c.key: c for c in model.__mapper__.columns}
    cleaned: dict = {}

    for key, raw in payload.items():
        if key not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {key}")
        col = columns.get(key)
        if col is None:
            raise ValidationError(f"Unknown field: {key}")

        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{key} cannot be null")
            cleaned[key] = None
        else:
            cleaned[key] = _clean_column_value(col, raw)

    return cleaned


def enforce_rules_item(patch: dict) -> None:
    """Bounds on item fields that column metadata cannot express."""
    for key in ("base_price_cents", "sell_price_cents", "limit_price_cents"):
        price = patch.get(key)
        if price is not None and not 0 <= price <= MAX_PRICE_CENTS:
            raise ValidationError(f"{key} must be between 0 and {MAX_PRICE_CENTS}")

    for key in ("quantity", "low_stock_limit"):
        value = patch.get(key)
        if value is not None and not 0 <= value <= MAX_QUANTITY:
            raise ValidationError(f"{key} must be between 0 and {MAX_QUANTITY}")


# =============================================================================
# REQUEST TYPES
# =============================================================================
#
# JSON bodies are turned into these before any transactional work starts.
# They check shape and sign only; existence, stock and pricing rules are
# checked by the services inside the unit of work.


def _require_dict(payload: Any) -> dict:
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    return payload


def _int_field(payload: dict, key: str, *, required: bool = True, default: int | None = None,
               minimum: int | None = None, maximum: int = MAX_INT32) -> int | None:
    raw = payload.get(key)
    if raw is None:
        if required:
            raise ValidationError(f"{key} is required")
        return default
    value = _strict_int(key, raw)
    if minimum is not None and value < minimum:
        raise ValidationError(f"{key} must be >= {minimum}")
    if value > maximum:
        raise ValidationError(f"{key} must be <= {maximum}")
    if value < -MAX_INT32:
        raise ValidationError(f"{key} is out of range")
    return value


def _str_field(payload: dict, key: str, *, required: bool = True, max_length: int = 255) -> str | None:
    raw = payload.get(key)
    if raw is None or str(raw).strip() == "":
        if required:
            raise ValidationError(f"{key} is required")
        return None
    value = str(raw).strip()
    if len(value) > max_length:
        raise ValidationError(f"{key} exceeds max length {max_length}")
    return value


@dataclass(frozen=True)
class SaleLineRequest:
    item_id: int
    quantity: int
    unit_price_cents: int

    @property
    def line_total_cents(self) -> int:
        return self.quantity * self.unit_price_cents

    @classmethod
    def from_payload(cls, payload: Any) -> "SaleLineRequest":
        payload = _require_dict(payload)
        return cls(
            item_id=_int_field(payload, "item_id", minimum=1),
            quantity=_int_field(payload, "quantity", minimum=1, maximum=MAX_QUANTITY),
            unit_price_cents=_int_field(payload, "unit_price_cents", minimum=0, maximum=MAX_PRICE_CENTS),
        )


@dataclass(frozen=True)
class CreateSaleRequest:
    customer_id: int
    items: tuple[SaleLineRequest, ...]
    payment_type: str
    discount_cents: int = 0
    paid_cents: int = 0

    @classmethod
    def from_payload(cls, payload: Any) -> "CreateSaleRequest":
        payload = _require_dict(payload)
        raw_items = payload.get("items")
        if not isinstance(raw_items, list) or not raw_items:
            raise ValidationError("items are required")
        items = []
        for index, raw in enumerate(raw_items):
            try:
                items.append(SaleLineRequest.from_payload(raw))
            except ValidationError as exc:
                raise ValidationError(f"items[{index}]: {exc}") from exc
        return cls(
            customer_id=_int_field(payload, "customer_id", minimum=1),
            items=tuple(items),
            payment_type=_str_field(payload, "payment_type", max_length=16),
            discount_cents=_int_field(payload, "discount_cents", required=False, default=0, minimum=0,
                                      maximum=MAX_PRICE_CENTS),
            paid_cents=_int_field(payload, "paid_cents", required=False, default=0, minimum=0,
                                  maximum=MAX_PRICE_CENTS),
        )


@dataclass(frozen=True)
class PaymentRequest:
    amount_cents: int
    payment_type: str

    @classmethod
    def from_payload(cls, payload: Any) -> "PaymentRequest":
        payload = _require_dict(payload)
        return cls(
            amount_cents=_int_field(payload, "amount_cents", maximum=MAX_PRICE_CENTS),
            payment_type=_str_field(payload, "payment_type", max_length=16),
        )


@dataclass(frozen=True)
class RefundRequest:
    amount_cents: int
    payment_type: str
    reason: str | None = None

    @classmethod
    def from_payload(cls, payload: Any) -> "RefundRequest":
        payload = _require_dict(payload)
        return cls(
            amount_cents=_int_field(payload, "amount_cents", maximum=MAX_PRICE_CENTS),
            payment_type=_str_field(payload, "payment_type", max_length=16),
            reason=_str_field(payload, "reason", required=False),
        )


@dataclass(frozen=True)
class StockMovementRequest:
    quantity: int
    note: str | None = None

    @classmethod
    def from_payload(cls, payload: Any) -> "StockMovementRequest":
        payload = _require_dict(payload)
        return cls(
            quantity=_int_field(payload, "quantity", maximum=MAX_QUANTITY),
            note=_str_field(payload, "note", required=False),
        )


def parse_range_bound(value: str | None, name: str) -> datetime | None:
    """Parse an optional ISO-8601 query-string bound."""
    try:
        return parse_iso_datetime(value)
    except ValueError:
        raise ValidationError(f"{name} must be an ISO-8601 datetime")


def parse_id_arg(value: str | None, name: str) -> int | None:
    """Parse an optional id from the query string; junk is a 400, not "no filter"."""
    if value is None or not value.strip():
        return None
    parsed = _strict_int(name, value)
    if not 1 <= parsed <= MAX_INT32:
        raise ValidationError(f"{name} must be a positive id")
    return parsed
