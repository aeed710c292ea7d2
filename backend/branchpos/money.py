from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Optional

from .errors import ValidationError


CENT = Decimal("0.01")
ZERO = Decimal("0")
HUNDRED = Decimal("100")

# Largest value a Numeric(12, 2) money column holds
MAX_AMOUNT = Decimal("9999999999.99")


def to_decimal(value: Any, field: str = "amount") -> Decimal:
    """
    Coerce a JSON number or numeric string to Decimal.

    Floats go through str() so 10.1 stays 10.1 instead of its binary expansion.
    Booleans are rejected even though they are ints, and magnitudes above
    MAX_AMOUNT are rejected as out of range.
    """
    if value is None:
        return ZERO
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a number")
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value).strip())
        except (InvalidOperation, ValueError):
            raise ValidationError(f"{field} must be a number")
    if not result.is_finite():
        raise ValidationError(f"{field} must be a finite number")
    if abs(result) > MAX_AMOUNT:
        raise ValidationError(f"{field} is out of range", details={"max": float(MAX_AMOUNT)})
    return result


def quantize_money(value: Decimal) -> Decimal:
    try:
        return value.quantize(CENT, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        raise ValidationError("Amount is out of range")


def money_to_float(value: Optional[Decimal]) -> float:
    if value is None:
        return 0.0
    return float(quantize_money(Decimal(value)))
