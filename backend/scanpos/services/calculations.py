# Overview: Pure money/quantity arithmetic for sale lines and stock valuation.

"""
Money is integer cents; tax rates are integer basis points (1% = 100 bps).

Rounding policy: round exactly once, half-up, at the point an amount is
computed for storage (the tax on a line). Stored cents are never re-derived,
so reports that sum stored values always agree with the stored sales.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from ..validation import ValidationError, MAX_TAX_RATE_BPS

BPS_PER_UNIT = 10_000


@dataclass(frozen=True)
class SaleAmounts:
    subtotal_cents: int
    tax_amount_cents: int
    total_cents: int


def _require_int(name: str, value) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{name} must be an integer", field=name)
    return value


def round_half_up_div(numerator: int, denominator: int) -> int:
    """Integer division rounded to nearest, halves away from zero."""
    if denominator <= 0:
        raise ValidationError("denominator must be > 0")
    quotient, remainder = divmod(abs(numerator), denominator)
    if remainder * 2 >= denominator:
        quotient += 1
    return quotient if numerator >= 0 else -quotient


def compute_sale_amounts(quantity: int, unit_price_cents: int, tax_rate_bps: int) -> SaleAmounts:
    quantity = _require_int("quantity", quantity)
    unit_price_cents = _require_int("unit_price_cents", unit_price_cents)
    tax_rate_bps = _require_int("tax_rate_bps", tax_rate_bps)

    if quantity <= 0:
        raise ValidationError("quantity must be > 0", field="quantity")
    if unit_price_cents < 0:
        raise ValidationError("unit_price_cents must be >= 0", field="unit_price_cents")
    if not 0 <= tax_rate_bps <= MAX_TAX_RATE_BPS:
        raise ValidationError(
            f"tax_rate_bps must be between 0 and {MAX_TAX_RATE_BPS}", field="tax_rate_bps"
        )

    subtotal = quantity * unit_price_cents
    tax = round_half_up_div(subtotal * tax_rate_bps, BPS_PER_UNIT)
    return SaleAmounts(subtotal_cents=subtotal, tax_amount_cents=tax, total_cents=subtotal + tax)


def compute_stock_value(quantity: int, unit_price_cents: int) -> int:
    """Value of `quantity` units at `unit_price_cents`; sign follows quantity."""
    quantity = _require_int("quantity", quantity)
    unit_price_cents = _require_int("unit_price_cents", unit_price_cents)
    if unit_price_cents < 0:
        raise ValidationError("unit_price_cents must be >= 0", field="unit_price_cents")
    return quantity * unit_price_cents


def _to_decimal(value, field: str) -> Decimal:
    if isinstance(value, bool) or isinstance(value, (dict, list)):
        raise ValidationError(f"{field} must be a number", field=field)
    if isinstance(value, float):
        value = repr(value)
    try:
        number = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{field} must be a number", field=field)
    if not number.is_finite():
        raise ValidationError(f"{field} must be a finite number", field=field)
    return number


def _scaled_by_100(number: Decimal, field: str) -> int:
    try:
        return int((number * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    except InvalidOperation:
        # quantize fails once the value carries more digits than the context precision
        raise ValidationError(f"{field} is out of range", field=field)


def to_cents(value, field: str = "amount") -> int:
    """Decimal amount ("2.00", 1.2) -> integer cents, half-up."""
    return _scaled_by_100(_to_decimal(value, field), field)


def percent_to_bps(value, field: str = "tax_rate") -> int:
    """Percentage (16, "7.5") -> integer basis points, half-up."""
    return _scaled_by_100(_to_decimal(value, field), field)


def cents_to_str(cents: int) -> str:
    """Display helper: 696 -> "6.96"."""
    sign = "-" if cents < 0 else ""
    whole, frac = divmod(abs(cents), 100)
    return f"{sign}{whole}.{frac:02d}"
