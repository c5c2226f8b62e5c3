"""
Strategies
----------
A strategy owns its indicators. The session feeds it every candle through
`push(candle)` and then asks `get_status()` for at most one new order intent.

Included policies:
- MovingAverageCrossoverStrategy: market orders on fast/slow SMA crossovers.
- DefiningRangeBreakoutStrategy: one resting order per session at a quarter
  level inside the morning defining range, bracketed by one ATR.
"""

from __future__ import annotations

import logging
from datetime import time
from typing import Callable, Protocol

from .config import Config
from .indicators import (
    AverageTrueRangeIndicator,
    DefiningRangeIndicator,
    Indicator,
    MovingAverageIndicator,
    TrueRangeMode,
)
from .levels import nearest_quarter_level
from .models import Candle, Direction, ExcursionStats, Order, OrderStatus

logger = logging.getLogger(__name__)


class Strategy(Protocol):
    def push(self, candle: Candle) -> None: ...

    def get_status(self) -> Order | None: ...


StrategyFactory = Callable[[], Strategy]


class MovingAverageCrossoverStrategy:
    """
    Trades the crossover of a fast SMA through a slow SMA.

    The trend state is sampled *before* the new candle is ingested, so an
    intent is emitted exactly on the candle where the fast average moves to the
    other side of the slow one. The order is ACTIVE immediately (market fill at
    the close), with the stop `stop_loss_ticks` and the target
    `take_profit_ticks` increments away from the entry.
    """

    def __init__(
        self,
        fast_period: int,
        slow_period: int,
        increment: float,
        *,
        stop_loss_ticks: float = 10.0,
        take_profit_ticks: float = 15.0,
    ) -> None:
        if fast_period >= slow_period:
            raise ValueError("fast_period must be shorter than slow_period")
        if increment <= 0:
            raise ValueError(f"increment must be > 0, got {increment}")
        self.fast = MovingAverageIndicator(fast_period)
        self.slow = MovingAverageIndicator(slow_period)
        self.increment = increment
        self.stop_loss_ticks = stop_loss_ticks
        self.take_profit_ticks = take_profit_ticks
        self._bullish: bool | None = None
        self._candle: Candle | None = None

    def push(self, candle: Candle) -> None:
        fast, slow = self.fast.get(), self.slow.get()
        self._bullish = fast > slow if fast is not None and slow is not None else None

        self.fast.add(candle)
        self.slow.add(candle)
        self._candle = candle

    def get_status(self) -> Order | None:
        fast, slow = self.fast.get(), self.slow.get()
        if fast is None or slow is None or self._candle is None:
            return None
        # The first candle with both averages available has no prior trend.
        if self._bullish is None:
            return None

        if self._bullish and fast < slow:
            direction = Direction.SELL
        elif not self._bullish and fast > slow:
            direction = Direction.BUY
        else:
            return None

        # Consume the crossover so a repeated call on the same candle is silent.
        self._bullish = direction is Direction.BUY
        return self._market_order(direction, self._candle)

    def _market_order(self, direction: Direction, candle: Candle) -> Order:
        entry = candle.close
        sl_dist = self.stop_loss_ticks * self.increment
        tp_dist = self.take_profit_ticks * self.increment
        sign = direction.sign

        order = Order(
            stop_loss=entry - sign * sl_dist,
            take_profit=entry + sign * tp_dist,
            entry_price=entry,
            direction=direction,
            status=OrderStatus.ACTIVE,
            start_time=candle.time,
            excursion=ExcursionStats.at(entry),
        )
        logger.debug(
            "crossover %s at %s %s: %s",
            direction.value,
            candle.date,
            candle.time,
            order,
        )
        return order


class DefiningRangeBreakoutStrategy:
    """
    Places one PENDING order per session once the defining range has formed
    and price has broken out of it.

    Entry is the quarter level inside [dr_low, dr_high] nearest to the
    breakout candle's close, so the order waits for a retrace into the range.
    Stop and target sit one ATR either side of the entry. Intents are only
    considered between `range_end` and `last_candle_time`; a candle at or
    after `last_candle_time` re-arms the strategy for the next session.
    """

    def __init__(
        self,
        atr_period: int,
        increment: float,
        *,
        range_start: time,
        range_end: time,
        last_candle_time: time,
        true_range: TrueRangeMode = "intrabar",
    ) -> None:
        if increment <= 0:
            raise ValueError(f"increment must be > 0, got {increment}")
        self.atr = AverageTrueRangeIndicator(atr_period, true_range=true_range)
        self.defining_range = DefiningRangeIndicator(range_start, range_end)
        self._indicators: tuple[Indicator, ...] = (self.atr, self.defining_range)
        self.increment = increment
        self.range_end = range_end
        self.last_candle_time = last_candle_time
        self._ordered = False
        self._candle: Candle | None = None

    def push(self, candle: Candle) -> None:
        for indicator in self._indicators:
            indicator.add(candle)
        self._candle = candle

        if candle.time >= self.last_candle_time:
            self._ordered = False

    def get_status(self) -> Order | None:
        candle = self._candle
        if candle is None or self._ordered:
            return None
        if not (self.range_end <= candle.time < self.last_candle_time):
            return None

        rng = self.defining_range.get()
        atr = self.atr.get()
        direction = self.defining_range.breakout_direction
        if rng is None or atr is None or direction is None:
            return None

        entry = nearest_quarter_level(
            rng.dr_low, rng.dr_high, self.increment, candle.close
        )
        if entry is None:
            logger.debug("no quarter level inside %s on %s", rng, candle.date)
            return None

        self._ordered = True
        sign = direction.sign
        order = Order(
            stop_loss=entry - sign * atr,
            take_profit=entry + sign * atr,
            entry_price=entry,
            direction=direction,
            status=OrderStatus.PENDING,
        )
        logger.debug("breakout order on %s %s: %s", candle.date, candle.time, order)
        return order


def build_strategy(cfg: Config) -> Strategy:
    """Constructs the strategy named in `cfg.strategy.name`."""
    st = cfg.strategy
    if st.name == "ma_crossover":
        return MovingAverageCrossoverStrategy(
            int(st.fast_period),
            int(st.slow_period),
            float(cfg.increment),
            stop_loss_ticks=float(st.stop_loss_ticks),
            take_profit_ticks=float(st.take_profit_ticks),
        )
    if st.name == "dr_breakout":
        return DefiningRangeBreakoutStrategy(
            int(st.atr_period),
            float(cfg.increment),
            range_start=cfg.session.range_start_time,
            range_end=cfg.session.range_end_time,
            last_candle_time=cfg.session.last_candle_time,
            true_range=st.true_range,  # type: ignore[arg-type]
        )
    raise ValueError(f"Unknown strategy: {st.name!r}")
