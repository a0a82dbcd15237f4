"""
Fixed-point money arithmetic.

Stored and calculated amounts carry 4 fractional digits; the UI shows 2. Every
operation returns a value already rounded to the internal precision, half away
from zero.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from ticketflow.core.errors import DivisionByZero

INTERNAL_PLACES = 4
DISPLAY_PLACES = 2
# Numeric(18, 4) columns hold 14 integer digits.
MAX_AMOUNT = Decimal(10) ** 14

Number = Decimal | int | float | str


def _to_decimal(value: Number) -> Decimal:
    if isinstance(value, bool):
        raise ValueError("Booleans are not amounts")
    if isinstance(value, Decimal):
        d = value
    elif isinstance(value, float):
        # repr() gives the shortest round-tripping form, so 1.1 stays 1.1
        d = Decimal(repr(value))
    elif isinstance(value, (int, str)):
        try:
            d = Decimal(str(value).strip())
        except InvalidOperation as e:
            raise ValueError(f"Not a number: {value!r}") from e
    else:
        raise ValueError(f"Not a number: {value!r}")
    if not d.is_finite():
        raise ValueError(f"Not a finite number: {value!r}")
    return d


def round_to(value: Number, places: int) -> Decimal:
    d = _to_decimal(value)
    try:
        return d.quantize(Decimal(1).scaleb(-places), rounding=ROUND_HALF_UP)
    except InvalidOperation as e:
        raise ValueError(f"Too many digits to round: {value!r}") from e


def round_to_internal(value: Number) -> Decimal:
    return round_to(value, INTERNAL_PLACES)


def round_amount(value: Number) -> Decimal:
    """`round_to_internal` for amounts that must fit a stored money column."""
    d = round_to_internal(value)
    if abs(d) >= MAX_AMOUNT:
        raise ValueError(f"Amount out of range: {value!r}")
    return d


def to_display(value: Number) -> Decimal:
    return round_to(value, DISPLAY_PLACES)


def add(a: Number, b: Number) -> Decimal:
    return round_to_internal(_to_decimal(a) + _to_decimal(b))


def subtract(a: Number, b: Number) -> Decimal:
    return round_to_internal(_to_decimal(a) - _to_decimal(b))


def multiply(a: Number, b: Number) -> Decimal:
    return round_to_internal(_to_decimal(a) * _to_decimal(b))


def divide(a: Number, b: Number) -> Decimal:
    divisor = _to_decimal(b)
    if divisor == 0:
        raise DivisionByZero()
    return round_to_internal(_to_decimal(a) / divisor)


def calculate_vat(base: Number, rate_percent: Number) -> Decimal:
    return multiply(base, divide(rate_percent, 100))


def total_with_vat(base: Number, vat: Number) -> Decimal:
    return add(base, vat)


def canonical_string(value: Number) -> str:
    """Plain decimal text of the internally-rounded value, without trailing zeros."""
    d = round_to_internal(value).normalize()
    if d == 0:
        return "0"
    return format(d, "f")
