"""
Tests for qe_backtester.indicators
----------------------------------
Coverage:
- RollingWindow eviction and running sum.
- Moving average: warm-up sentinel, rolling value, half-up rounding.
- ATR: reference sample, Wilder smoothing, both True Range modes.
- Defining range: freeze, breakout latch, session reset.
"""

from decimal import Decimal

import pytest

from qe_backtester.indicators import (
    AverageTrueRangeIndicator,
    DefiningRangeIndicator,
    MovingAverageIndicator,
    RollingWindow,
    round_half_up,
)
from qe_backtester.models import Direction

from tests.utils import bar, flat, t


# ----------------------------------------------------------------
# Rolling window
# ----------------------------------------------------------------


def test_rolling_window_keeps_latest_values():
    w = RollingWindow(3)
    evicted = [w.push(Decimal(v)) for v in (1, 2, 3, 4)]

    assert evicted == [None, None, None, Decimal(1)]
    assert w.values() == [Decimal(2), Decimal(3), Decimal(4)]
    assert w.total == Decimal(9)
    assert len(w) == 3 and w.is_full


def test_rolling_window_rejects_zero_capacity():
    with pytest.raises(ValueError):
        RollingWindow(0)


def test_round_half_up():
    assert round_half_up(Decimal("0.005")) == Decimal("0.01")
    assert round_half_up(Decimal("1.125")) == Decimal("1.13")
    assert round_half_up(Decimal("1.124")) == Decimal("1.12")


# ----------------------------------------------------------------
# Moving average
# ----------------------------------------------------------------


def test_moving_average_none_until_full():
    ma = MovingAverageIndicator(3)
    assert ma.get() is None
    ma.add(flat("09:30", 10.0))
    ma.add(flat("09:31", 11.0))
    assert ma.get() is None
    ma.add(flat("09:32", 12.0))
    assert ma.get() == 11.0


def test_moving_average_of_identical_values():
    ma = MovingAverageIndicator(5)
    for i in range(5):
        ma.add(flat(f"09:3{i}", 21.37))
    assert ma.get() == 21.37


def test_moving_average_rolls_after_n_plus_one():
    ma = MovingAverageIndicator(3)
    for i, c in enumerate((1.0, 2.0, 3.0, 4.0)):
        ma.add(flat(f"09:3{i}", c))
    assert ma.get() == 3.0


def test_moving_average_rounds_half_up():
    ma = MovingAverageIndicator(2)
    ma.add(flat("09:30", 0.00))
    ma.add(flat("09:31", 0.01))
    assert ma.get() == 0.01


# ----------------------------------------------------------------
# ATR
# ----------------------------------------------------------------


def test_atr_none_before_length(atr_candles):
    atr = AverageTrueRangeIndicator(14)
    for c in atr_candles[:-1]:
        atr.add(c)
    assert atr.get() is None


def test_atr_reference_sample(atr_candles):
    atr = AverageTrueRangeIndicator(14)
    for c in atr_candles:
        atr.add(c)
    assert atr.get() == 1.19

    atr.add(bar("09:44", 24.89, 25.86, 24.66, 25.20))
    assert atr.get() == 1.19


def test_atr_wilder_true_range_uses_previous_close():
    atr = AverageTrueRangeIndicator(2, true_range="wilder")
    atr.add(bar("09:30", 9.5, 10.0, 9.0, 9.5))  # tr 1.0
    atr.add(bar("09:31", 11.5, 12.0, 11.0, 11.5))  # gap: |12 - 9.5| = 2.5
    assert atr.get() == 1.75

    atr.add(bar("09:32", 11.6, 12.0, 11.5, 11.8))  # tr 0.5
    assert atr.get() == 1.13  # (1.75 + 0.5) / 2 = 1.125


def test_atr_intrabar_ignores_gaps():
    atr = AverageTrueRangeIndicator(2)
    atr.add(bar("09:30", 9.5, 10.0, 9.0, 9.5))
    atr.add(bar("09:31", 11.5, 12.0, 11.0, 11.5))
    assert atr.get() == 1.0

    atr.add(bar("09:32", 11.6, 12.0, 11.5, 11.8))
    assert atr.get() == 0.75


def test_atr_rejects_bad_arguments():
    with pytest.raises(ValueError):
        AverageTrueRangeIndicator(0)
    with pytest.raises(ValueError, match="true_range"):
        AverageTrueRangeIndicator(14, true_range="typical")  # type: ignore[arg-type]


# ----------------------------------------------------------------
# Defining range
# ----------------------------------------------------------------


def _formed_range() -> DefiningRangeIndicator:
    dr = DefiningRangeIndicator(t("09:30"), t("10:30"))
    dr.add(bar("09:00", 90.0, 110.0, 80.0, 95.0))  # before the window
    dr.add(bar("09:30", 100.0, 101.0, 99.0, 100.0))
    dr.add(bar("10:00", 100.0, 103.0, 98.0, 102.0))
    dr.add(bar("10:25", 102.0, 102.0, 100.0, 101.0))
    return dr


def test_defining_range_not_formed_inside_window():
    dr = _formed_range()
    assert dr.get() is None
    assert not dr.is_formed
    assert not dr.has_breakout


def test_defining_range_freezes_at_window_end():
    dr = _formed_range()
    dr.add(bar("10:30", 101.0, 102.0, 101.0, 101.5))

    rng = dr.get()
    assert rng is not None
    assert (rng.dr_high, rng.dr_low) == (103.0, 98.0)
    assert (rng.idr_high, rng.idr_low) == (102.0, 100.0)
    assert not dr.has_breakout

    # Candles after the freeze never widen the range.
    dr.add(bar("10:35", 101.0, 150.0, 50.0, 101.0))
    assert dr.get() == rng


def test_breakout_latch_persists_for_the_session():
    dr = _formed_range()
    dr.add(bar("10:30", 101.0, 102.0, 101.0, 101.5))
    dr.add(bar("10:35", 102.0, 104.5, 101.9, 104.0))
    assert dr.has_breakout
    assert dr.breakout_direction is Direction.BUY

    dr.add(bar("10:40", 104.0, 104.0, 99.5, 100.0))
    dr.add(bar("11:00", 100.0, 100.0, 96.0, 97.0))
    assert dr.has_breakout
    assert dr.breakout_direction is Direction.BUY


def test_breakout_on_open_outside_range():
    dr = _formed_range()
    dr.add(bar("10:30", 97.0, 99.5, 96.5, 99.0))
    assert dr.breakout_direction is Direction.SELL


def test_defining_range_resets_on_new_session():
    dr = _formed_range()
    dr.add(bar("10:35", 102.0, 104.5, 101.9, 104.0))
    assert dr.has_breakout

    dr.add(bar("08:00", 100.0, 100.0, 100.0, 100.0, date="2024-01-03"))
    assert dr.get() is None
    assert not dr.has_breakout
    assert dr.breakout_direction is None


def test_defining_range_needs_window_candles():
    dr = DefiningRangeIndicator(t("09:30"), t("10:30"))
    dr.add(bar("11:00", 100.0, 101.0, 99.0, 100.0))
    assert dr.get() is None


def test_defining_range_rejects_inverted_window():
    with pytest.raises(ValueError):
        DefiningRangeIndicator(t("10:30"), t("09:30"))
