from decimal import ROUND_CEILING, ROUND_HALF_UP, Decimal
from typing import Union

Number = Union[int, float, Decimal, str]

ONE_DECIMAL = Decimal("0.1")


def to_decimal(value: Number) -> Decimal:
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        # repr round-trips, so 2.5 stays 2.5 rather than its binary expansion
        return Decimal(repr(value))
    return Decimal(value)


def round_money(value: Number) -> int:
    """Half-up rounding to whole currency units (2.5 -> 3, -2.5 -> -3)."""
    return int(to_decimal(value).quantize(Decimal(1), rounding=ROUND_HALF_UP))


def round_hours(value: Number) -> Decimal:
    return to_decimal(value).quantize(ONE_DECIMAL, rounding=ROUND_HALF_UP)


def ceil_money(value: Number) -> int:
    return int(to_decimal(value).quantize(Decimal(1), rounding=ROUND_CEILING))


def ceil_div(numerator: int, denominator: int) -> int:
    if denominator <= 0:
        return int(numerator)
    return -(-int(numerator) // int(denominator))
