from __future__ import annotations

from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from .errors import ValidationError
from .time_utils import parse_iso_date


# Maximum price: 9,999,999.99 (999,999,999 cents)
# This prevents database overflow issues and nonsensical prices
MAX_PRICE_CENTS = 999_999_999
MAX_TAX_RATE_BPS = 10_000
MAX_QUANTITY = Decimal("999999999.999")


def coerce_int(field: str, value: Any) -> int:
    """
    Strict integer coercion: ints and plain digit strings only.

    Rejects floats, bools, decimals and scientific notation.
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


def coerce_price_cents(field: str, value: Any) -> int:
    cents = coerce_int(field, value)
    if cents < 0:
        raise ValidationError(f"{field} must not be negative")
    if cents > MAX_PRICE_CENTS:
        raise ValidationError(f"{field} exceeds maximum of {MAX_PRICE_CENTS}")
    return cents


def coerce_tax_rate_bps(field: str, value: Any) -> int:
    bps = coerce_int(field, value)
    if bps < 0 or bps > MAX_TAX_RATE_BPS:
        raise ValidationError(f"{field} must be between 0 and {MAX_TAX_RATE_BPS}")
    return bps


def coerce_quantity(field: str, value: Any) -> Decimal:
    """Positive decimal with at most three fractional digits."""
    if isinstance(value, bool) or value is None:
        raise ValidationError(f"{field} must be a number")
    try:
        quantity = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{field} must be a number")
    if not quantity.is_finite():
        raise ValidationError(f"{field} must be a number")
    if quantity <= 0:
        raise ValidationError(f"{field} must be greater than zero")
    if quantity > MAX_QUANTITY:
        raise ValidationError(f"{field} is too large")
    if quantity != quantity.quantize(Decimal("0.001")):
        raise ValidationError(f"{field} allows at most 3 decimal places")
    return quantity


def coerce_date(field: str, value: Any) -> Optional[date]:
    if value is None or value == "":
        return None
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be an ISO date (YYYY-MM-DD)")
    try:
        return parse_iso_date(value)
    except ValueError:
        raise ValidationError(f"{field} must be an ISO date (YYYY-MM-DD)")


def coerce_text(field: str, value: Any, *, max_length: Optional[int] = None, required: bool = False) -> Optional[str]:
    if value is None:
        if required:
            raise ValidationError(f"{field} is required")
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string")
    text = value.strip()
    if not text:
        if required:
            raise ValidationError(f"{field} is required")
        return None
    if max_length is not None and len(text) > max_length:
        raise ValidationError(f"{field} must be at most {max_length} characters")
    return text


def reject_unknown_fields(payload: dict, allowed: set[str]) -> None:
    unknown = set(payload) - allowed
    if unknown:
        raise ValidationError(f"Unknown fields: {', '.join(sorted(unknown))}")


def require_json_object(payload: Any) -> dict:
    if not isinstance(payload, dict):
        raise ValidationError("JSON object body required")
    return payload
