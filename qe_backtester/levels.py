"""
Price Levels
------------
Quarter levels: prices that sit on a multiple of 25 ticks.
"""

from __future__ import annotations

from decimal import ROUND_CEILING, ROUND_DOWN, ROUND_FLOOR, Decimal

from .indicators import to_decimal

QUARTER_TICKS = 25


def quarter_levels_in_range(low: float, high: float, increment: float) -> list[float]:
    """
    Returns every multiple of ``25 * increment`` in [low, high], ascending.
    Both bounds are first truncated to the decimal places of `increment`.
    """
    if increment <= 0:
        raise ValueError(f"increment must be > 0, got {increment}")
    if high < low:
        return []

    step = to_decimal(increment) * QUARTER_TICKS
    places = Decimal(1).scaleb(to_decimal(increment).as_tuple().exponent)
    lo = to_decimal(low).quantize(places, rounding=ROUND_DOWN)
    hi = to_decimal(high).quantize(places, rounding=ROUND_DOWN)

    first = (lo / step).to_integral_value(rounding=ROUND_CEILING)
    last = (hi / step).to_integral_value(rounding=ROUND_FLOOR)

    return [float(k * step) for k in range(int(first), int(last) + 1)]


def nearest_quarter_level(
    low: float, high: float, increment: float, price: float
) -> float | None:
    """The quarter level inside [low, high] closest to `price`, or None."""
    levels = quarter_levels_in_range(low, high, increment)
    if not levels:
        return None
    return min(levels, key=lambda lvl: (abs(lvl - price), lvl))
