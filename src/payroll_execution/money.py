"""Parsing and rounding of monetary amounts."""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from payroll_execution.errors import ValidationError

CENTS = Decimal("0.01")


def quantize(amount: Decimal) -> Decimal:
    """Round to cents (half up)."""
    return amount.quantize(CENTS, rounding=ROUND_HALF_UP)


def parse_amount(
    value: Decimal | int | str,
    field: str,
    *,
    allow_negative: bool = False,
    positive: bool = False,
) -> Decimal:
    """Convert an incoming amount to a cent-rounded Decimal.

    Floats are refused outright. Otherwise ValidationError is raised for
    malformed or non-finite values, and for negatives unless allowed
    (or zero as well when positive=True).
    """
    if isinstance(value, float):
        raise ValidationError(f"{field} must be given as a string or Decimal, not a float")
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{field} must be a number, got {value!r}") from None

    if not amount.is_finite():
        raise ValidationError(f"{field} must be a finite amount")

    amount = quantize(amount)
    if positive and amount <= 0:
        raise ValidationError(f"{field} must be greater than zero")
    if not allow_negative and amount < 0:
        raise ValidationError(f"{field} cannot be negative")
    return amount
