"""Decimal amount helpers shared by the ledger and the marketplace."""

from __future__ import annotations

from decimal import ROUND_HALF_EVEN, Decimal, InvalidOperation
from typing import Any

from .exceptions import ValidationError

AMOUNT_PLACES = 6
AMOUNT_QUANTUM = Decimal(1).scaleb(-AMOUNT_PLACES)


def to_decimal(value: Any) -> Decimal:
    """Decimal from a stored or aggregated value; floats go through ``str``."""
    if value is None:
        return Decimal(0)
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def to_micro(value: Any) -> int:
    """Integer count of millionths, as amounts are stored."""
    amount = to_decimal(value).quantize(AMOUNT_QUANTUM, rounding=ROUND_HALF_EVEN)
    return int(amount.scaleb(AMOUNT_PLACES))


def from_micro(value: int) -> Decimal:
    return Decimal(int(value)).scaleb(-AMOUNT_PLACES).quantize(AMOUNT_QUANTUM)


def require_positive(value: Any, field: str) -> Decimal:
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError) as exc:
        raise ValidationError(f"{field} must be a decimal number", field=field) from exc
    if not amount.is_finite() or amount <= 0:
        raise ValidationError(f"{field} must be greater than zero", field=field)
    if -amount.as_tuple().exponent > AMOUNT_PLACES:
        raise ValidationError(f"{field} supports at most {AMOUNT_PLACES} decimal places", field=field)
    return amount


__all__ = ["AMOUNT_PLACES", "AMOUNT_QUANTUM", "from_micro", "require_positive", "to_decimal", "to_micro"]
