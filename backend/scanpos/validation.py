from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from sqlalchemy import Integer, String, Text
from sqlalchemy.orm import DeclarativeMeta


# Maximum price: 9,999,999.99 (999,999,999 cents)
MAX_PRICE_CENTS = 999_999_999

# 100% expressed in basis points
MAX_TAX_RATE_BPS = 10_000

MAX_QUANTITY = 1_000_000


class ServiceError(Exception):
    """Base for every error the engine reports to its callers."""

    kind = "internal"
    status_code = 500

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}

    def to_dict(self) -> dict:
        return {"error": str(self), "kind": self.kind, **self.details}


class ValidationError(ServiceError, ValueError):
    """400-level input problem."""

    kind = "invalid_argument"
    status_code = 400

    def __init__(self, message: str, field: str | None = None):
        super().__init__(message, details={"field": field} if field else None)
        self.field = field


class NotFoundError(ServiceError, LookupError):
    """404-level: referenced product/category/supplier does not exist."""

    kind = "not_found"
    status_code = 404


class ConflictError(ServiceError, ValueError):
    """409-level business rule conflict (e.g., duplicate barcode)."""

    kind = "conflict"
    status_code = 409


class InsufficientStockError(ServiceError):
    """409-level: a sale or adjustment would take stock below zero."""

    kind = "insufficient_stock"
    status_code = 409

    def __init__(self, *, available: int, requested: int):
        super().__init__(
            f"Insufficient stock. Available: {available}",
            details={"available": available, "requested": requested},
        )
        self.available = available
        self.requested = requested


class StorageError(ServiceError):
    """500-level: the database call failed. Message is intentionally generic."""

    kind = "internal"
    status_code = 500

    def __init__(self, message: str = "Internal server error"):
        super().__init__(message)


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
    """Strict integer coercion: rejects floats, decimals, booleans and scientific notation."""
    # Already an int (but not bool which is a subclass of int)
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{key} must be an integer", field=key)
        if "e" in stripped.lower():
            raise ValidationError(f"{key} must be a plain integer (scientific notation not allowed)", field=key)
        if "." in stripped:
            raise ValidationError(f"{key} must be an integer (no decimals)", field=key)
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{key} must be an integer", field=key)
    if isinstance(value, float):
        raise ValidationError(f"{key} must be an integer, not a decimal", field=key)
    raise ValidationError(f"{key} must be an integer", field=key)


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    if isinstance(coltype, Integer):
        return coerce_int(col.key, value)

    if isinstance(coltype, (String, Text)):
        if isinstance(value, (dict, list)):
            raise ValidationError(f"{col.key} must be a string", field=col.key)
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
            raise ValidationError(f"Missing required fields: {', '.join(missing)}", field=missing[0])

    cols = _columns_by_key(model)

    # Reject unknown / non-writable fields
    for k in payload.keys():
        if k not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {k}", field=k)
        if k not in cols:
            raise ValidationError(f"Unknown field: {k}", field=k)

    patch: dict = {}

    for k, raw in payload.items():
        col = cols[k]

        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{k} cannot be null", field=k)
            patch[k] = None
            continue

        val = _coerce_value(col, raw)

        # Blank string check for non-nullable text fields
        if isinstance(col.type, (String, Text)) and not col.nullable:
            if isinstance(val, str) and val == "":
                raise ValidationError(f"{k} cannot be blank", field=k)

        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}", field=k)

        patch[k] = val

    return patch


# Decimal field name -> (stored field name, converter name in calculations)
DECIMAL_ALIASES = {
    "cost_price": ("cost_price_cents", "to_cents"),
    "sale_price": ("sale_price_cents", "to_cents"),
    "unit_price": ("unit_price_cents", "to_cents"),
    "tax_rate": ("tax_rate_bps", "percent_to_bps"),
}


def normalize_decimal_aliases(payload: dict) -> dict:
    """
    Accept decimal amounts ("sale_price": 2.00, "tax_rate": 16) next to the
    stored integer fields ("sale_price_cents", "tax_rate_bps").

    Sending both spellings of one field is rejected.
    """
    from .services import calculations

    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    out = dict(payload)
    for alias, (target, converter) in DECIMAL_ALIASES.items():
        if alias not in out:
            continue
        if target in out:
            raise ValidationError(f"Send either {alias} or {target}, not both", field=alias)
        raw = out.pop(alias)
        out[target] = None if raw is None else getattr(calculations, converter)(raw, field=alias)
    return out


def enforce_rules_product(patch: dict) -> None:
    """
    Business rules that are not captured by SQLAlchemy metadata alone.
    Keep these small and centralized.
    """
    for key in ("cost_price_cents", "sale_price_cents"):
        if key in patch and patch[key] is not None:
            price = patch[key]
            if price < 0:
                raise ValidationError(f"{key} must be >= 0", field=key)
            if price > MAX_PRICE_CENTS:
                raise ValidationError(f"{key} cannot exceed {MAX_PRICE_CENTS}", field=key)

    if "tax_rate_bps" in patch and patch["tax_rate_bps"] is not None:
        if not 0 <= patch["tax_rate_bps"] <= MAX_TAX_RATE_BPS:
            raise ValidationError(
                f"tax_rate_bps must be between 0 and {MAX_TAX_RATE_BPS}", field="tax_rate_bps"
            )

    for key in ("current_stock", "min_stock"):
        if key in patch and patch[key] is not None and patch[key] < 0:
            raise ValidationError(f"{key} must be >= 0", field=key)


@dataclass(frozen=True)
class StockEntryRequest:
    product_ref: int | str
    quantity: int
    unit_price_cents: int | None = None
    notes: str | None = None


@dataclass(frozen=True)
class SaleRequest:
    product_ref: int | str
    quantity: int
    unit_price_cents: int | None = None


@dataclass(frozen=True)
class AdjustmentRequest:
    product_ref: int | str
    quantity_delta: int
    notes: str | None = None


def _reject_unknown(payload: dict, allowed: set[str]) -> None:
    for k in payload.keys():
        if k not in allowed:
            raise ValidationError(f"Field not allowed: {k}", field=k)


def _product_ref(payload: dict, product_ref) -> int | str:
    if product_ref is not None:
        return product_ref
    key = "product_ref" if payload.get("product_ref") is not None else "barcode"
    ref = payload.get(key)
    if ref is None or str(ref).strip() == "":
        raise ValidationError("barcode is required", field="barcode")
    if isinstance(ref, bool) or not isinstance(ref, (int, str)):
        raise ValidationError(f"{key} must be a string or integer", field=key)
    # A scanned barcode is always text, even when the client sent a JSON number
    if key == "barcode":
        return str(ref).strip()
    return ref.strip() if isinstance(ref, str) else ref


def _required_quantity(payload: dict, key: str) -> int:
    if key not in payload or payload[key] is None:
        raise ValidationError(f"{key} is required", field=key)
    return coerce_int(key, payload[key])


def _optional_text(payload: dict, key: str, max_length: int) -> str | None:
    raw = payload.get(key)
    if raw is None:
        return None
    text = str(raw).strip()
    if len(text) > max_length:
        raise ValidationError(f"{key} exceeds max length {max_length}", field=key)
    return text or None


def _optional_price(payload: dict) -> int | None:
    raw = payload.get("unit_price_cents")
    if raw is None:
        return None
    price = coerce_int("unit_price_cents", raw)
    if price < 0:
        raise ValidationError("unit_price_cents must be >= 0", field="unit_price_cents")
    if price > MAX_PRICE_CENTS:
        raise ValidationError(f"unit_price_cents cannot exceed {MAX_PRICE_CENTS}", field="unit_price_cents")
    return price


def parse_stock_entry(payload: dict, *, product_ref=None) -> StockEntryRequest:
    payload = normalize_decimal_aliases(payload or {})
    _reject_unknown(payload, {"product_ref", "barcode", "quantity", "unit_price_cents", "notes"})

    quantity = _required_quantity(payload, "quantity")
    if quantity <= 0:
        raise ValidationError("quantity must be > 0", field="quantity")

    return StockEntryRequest(
        product_ref=_product_ref(payload, product_ref),
        quantity=quantity,
        unit_price_cents=_optional_price(payload),
        notes=_optional_text(payload, "notes", 255),
    )


def parse_sale(payload: dict, *, product_ref=None) -> SaleRequest:
    payload = normalize_decimal_aliases(payload or {})
    _reject_unknown(payload, {"product_ref", "barcode", "quantity", "unit_price_cents"})

    quantity = _required_quantity(payload, "quantity")
    if quantity <= 0:
        raise ValidationError("quantity must be > 0", field="quantity")

    return SaleRequest(
        product_ref=_product_ref(payload, product_ref),
        quantity=quantity,
        unit_price_cents=_optional_price(payload),
    )


def parse_adjustment(payload: dict, *, product_ref=None) -> AdjustmentRequest:
    payload = payload or {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    _reject_unknown(payload, {"product_ref", "barcode", "quantity_delta", "notes"})

    delta = _required_quantity(payload, "quantity_delta")
    if delta == 0:
        raise ValidationError("quantity_delta must be non-zero", field="quantity_delta")

    return AdjustmentRequest(
        product_ref=_product_ref(payload, product_ref),
        quantity_delta=delta,
        notes=_optional_text(payload, "notes", 255),
    )
