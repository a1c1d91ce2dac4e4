from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Union

# Minor unit precision for every currency the marketplace settles in.
CENT = Decimal("0.01")
ZERO = Decimal("0.00")

Number = Union[Decimal, int, str]


def to_money(value: Number) -> Decimal:
    """Coerce to Decimal without ever routing through float."""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        raise TypeError("money values must not be floats")
    return Decimal(str(value))


def quantize_money(value: Number) -> Decimal:
    """Round half-up to the currency's minor unit (19.99 * 10% -> 2.00)."""
    return to_money(value).quantize(CENT, rounding=ROUND_HALF_UP)


def sum_money(values: Iterable[Decimal]) -> Decimal:
    return quantize_money(sum(values, ZERO))
