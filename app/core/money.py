# app/core/money.py
from decimal import Decimal, ROUND_HALF_UP

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def to_money(value) -> Decimal:
    """
    Normalize a number to a 2-place Decimal (cents), rounding half-up.

    Floats are converted through str() so 0.1 stays 0.10 instead of
    0.1000000000000000055511151231257827.
    """
    if isinstance(value, float):
        value = str(value)
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)
