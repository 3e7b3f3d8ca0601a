"""
Values -- Decimal coercion and rounding helpers.

Responsibility:
    Every quantity and monetary amount in the kernel is a ``Decimal``.
    These helpers are the single place where caller input (int, str,
    Decimal) is turned into a ``Decimal`` and where amounts are rounded
    for presentation.

Invariants enforced:
    - Float input is rejected: binary floats silently drift under
      weighted averaging.
    - Non-numeric, NaN and infinite input raise ``ValidationError`` naming
      the offending field.

Non-goals:
    - Single currency only; no currency code travels with amounts.
"""

from __future__ import annotations

from decimal import ROUND_FLOOR, ROUND_HALF_UP, Decimal, InvalidOperation

from pos_kernel.exceptions import ValidationError

ZERO = Decimal("0")

NumberLike = Decimal | int | str


def to_decimal(value: object, field: str) -> Decimal:
    """
    Coerce ``value`` to a finite ``Decimal``.

    Raises:
        ValidationError: if the value is a float, None, non-numeric, or
            not finite.
    """
    if isinstance(value, bool) or isinstance(value, float) or value is None:
        raise ValidationError(field, "must be a Decimal, int or numeric string", value)
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, (int, str)):
        try:
            result = Decimal(str(value).strip())
        except InvalidOperation as e:
            raise ValidationError(field, "is not numeric", value) from e
    else:
        raise ValidationError(field, "must be a Decimal, int or numeric string", value)
    if not result.is_finite():
        raise ValidationError(field, "must be finite", value)
    return result


def to_non_negative(value: object, field: str) -> Decimal:
    """Coerce and require ``>= 0``."""
    result = to_decimal(value, field)
    if result < ZERO:
        raise ValidationError(field, "cannot be negative", value)
    return result


def to_positive(value: object, field: str) -> Decimal:
    """Coerce and require ``> 0``."""
    result = to_decimal(value, field)
    if result <= ZERO:
        raise ValidationError(field, "must be greater than 0", value)
    return result


def floor_int(value: Decimal) -> int:
    """Largest integer not greater than ``value``."""
    return int(value.to_integral_value(rounding=ROUND_FLOOR))


def round_money(amount: Decimal, places: int = 2) -> Decimal:
    """Round half-up to ``places`` decimal places for display and export."""
    quantum = Decimal(1).scaleb(-places) if places > 0 else Decimal(1)
    return amount.quantize(quantum, rounding=ROUND_HALF_UP)
