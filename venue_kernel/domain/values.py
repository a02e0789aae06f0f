"""
Values -- amount and quantity primitives.

Responsibility:
    Normalizes monetary amounts to ``Decimal`` and validates integer
    quantities at every boundary where caller data enters the engine.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced:
    - Monetary amounts are ``Decimal``, never ``float``.
    - Produced amounts are quantized to two places with ROUND_HALF_UP.
    - Unit prices carry at most two decimal places, so line totals and
      invoice amounts share one scale.
    - Elapsed seconds are not money: finite floats are accepted and
      converted through ``str``.
    - Quantities are plain ``int`` (``bool`` rejected) and strictly positive.

Failure modes:
    - TypeError when a float or unsupported type is passed as an amount.
    - InvalidArgumentError for negative amounts or non-positive quantities.
"""

from __future__ import annotations

import math
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from venue_kernel.exceptions import InvalidArgumentError

TWO_PLACES = Decimal("0.01")
ZERO = Decimal("0")


def to_decimal(value: Decimal | int | str) -> Decimal:
    """Convert an amount to Decimal. Floats are rejected."""
    if isinstance(value, bool) or isinstance(value, float):
        raise TypeError(f"Amounts must be Decimal, int or str, got {type(value).__name__}")
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError) as e:
        raise TypeError(f"Invalid amount: {value!r}") from e


def quantize_amount(value: Decimal) -> Decimal:
    """Round an amount to two decimal places."""
    return value.quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def non_negative_amount(name: str, value: Decimal | int | str) -> Decimal:
    """Convert and require ``value >= 0``."""
    amount = to_decimal(value)
    if not amount.is_finite():
        raise InvalidArgumentError(name, value, "must be finite")
    if amount < ZERO:
        raise InvalidArgumentError(name, value, "must be non-negative")
    return amount


def price_amount(name: str, value: Decimal | int | str) -> Decimal:
    """
    Convert a unit price, requiring ``value >= 0`` and whole cents.

    ``Decimal("15.000000000")`` read back from a Numeric column is accepted;
    ``Decimal("0.125")`` is not.
    """
    amount = non_negative_amount(name, value)
    if amount != quantize_amount(amount):
        raise InvalidArgumentError(name, value, "must have at most two decimal places")
    return quantize_amount(amount)


def non_negative_seconds(name: str, value: object) -> Decimal:
    """Convert an elapsed-time reading (int, Decimal, str or finite float) to Decimal."""
    if isinstance(value, bool):
        raise InvalidArgumentError(name, value, "must be a number of seconds")
    if isinstance(value, float):
        if not math.isfinite(value):
            raise InvalidArgumentError(name, value, "must be finite")
        seconds = Decimal(str(value))
    else:
        try:
            seconds = to_decimal(value)
        except TypeError:
            raise InvalidArgumentError(name, value, "must be a number of seconds") from None
    if not seconds.is_finite():
        raise InvalidArgumentError(name, value, "must be finite")
    if seconds < ZERO:
        raise InvalidArgumentError(name, value, "must be non-negative")
    return seconds


def positive_quantity(name: str, value: object) -> int:
    """Require a strictly positive integer quantity."""
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidArgumentError(name, value, "must be an integer")
    if value <= 0:
        raise InvalidArgumentError(name, value, "must be greater than zero")
    return value
