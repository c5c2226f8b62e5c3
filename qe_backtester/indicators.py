"""
Streaming Indicators
--------------------
Incremental indicators fed one candle at a time:
- Simple moving average of closes (rolling window + running sum)
- Average True Range (SMA seed, then Wilder smoothing)
- Defining Range / Implied Defining Range with a breakout latch

Every indicator exposes `add(candle)` and `get()`. `get()` returns None until
the indicator has seen enough data, it never raises for a short history.
"""

from __future__ import annotations

import logging
from collections import deque
from datetime import time
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Literal, Protocol

from .models import Candle, DefiningRange, Direction

logger = logging.getLogger(__name__)

TrueRangeMode = Literal["intrabar", "wilder"]

_CENTS = Decimal("0.01")


def to_decimal(value: float | int | str | Decimal) -> Decimal:
    """Converts through str so 21.95 stays 21.95 rather than its binary expansion."""
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def round_half_up(value: Decimal, places: int = 2) -> Decimal:
    quantum = _CENTS if places == 2 else Decimal(1).scaleb(-places)
    return value.quantize(quantum, rounding=ROUND_HALF_UP)


class Indicator(Protocol):
    def add(self, candle: Candle) -> None: ...

    def get(self) -> Any: ...


class RollingWindow:
    """Fixed-capacity FIFO holding the latest `capacity` values and their sum."""

    def __init__(self, capacity: int) -> None:
        if capacity <= 0:
            raise ValueError(f"capacity must be > 0, got {capacity}")
        self.capacity = capacity
        self._values: deque[Decimal] = deque(maxlen=capacity)
        self._total = Decimal(0)

    def push(self, value: Decimal) -> Decimal | None:
        """Appends `value`, returning the evicted oldest value when full."""
        evicted = None
        if self.is_full:
            evicted = self._values[0]
            self._total -= evicted
        self._values.append(value)
        self._total += value
        return evicted

    @property
    def is_full(self) -> bool:
        return len(self._values) == self.capacity

    @property
    def total(self) -> Decimal:
        return self._total

    def values(self) -> list[Decimal]:
        return list(self._values)

    def __len__(self) -> int:
        return len(self._values)


class MovingAverageIndicator:
    """Simple moving average of closing prices, rounded half-up to cents."""

    def __init__(self, length: int) -> None:
        if length <= 0:
            raise ValueError(f"length must be > 0, got {length}")
        self.length = length
        self._window = RollingWindow(length)
        self._value: Decimal | None = None

    def add(self, candle: Candle) -> None:
        self._window.push(to_decimal(candle.close))
        self._value = round_half_up(self._window.total / self.length)

    def get(self) -> float | None:
        if not self._window.is_full or self._value is None:
            return None
        return float(self._value)


class AverageTrueRangeIndicator:
    """
    Average True Range.

    The first `length` True Range values are averaged to seed the ATR. After
    that each candle applies Wilder's recurrence
    ``atr = (atr * (length - 1) + tr) / length``. Values are kept at two
    decimals, rounded half-up.

    `true_range` selects how a candle's True Range is measured:

    - ``"intrabar"``: greatest of high-low, high-close and low-close, using the
      candle's own close with signed differences. This is the legacy QuarterEdge
      measure and reduces to the bar's high-low spread.
    - ``"wilder"``: greatest of high-low, ``|high - prev_close|`` and
      ``|low - prev_close|``. The first candle, which has no previous close,
      uses high-low.
    """

    def __init__(self, length: int, true_range: TrueRangeMode = "intrabar") -> None:
        if length <= 0:
            raise ValueError(f"length must be > 0, got {length}")
        if true_range not in ("intrabar", "wilder"):
            raise ValueError(f"unknown true_range mode: {true_range!r}")
        self.length = length
        self.true_range_mode = true_range
        self._seed = RollingWindow(length)
        self._atr: Decimal | None = None
        self._prev_close: Decimal | None = None

    def true_range(self, candle: Candle) -> Decimal:
        high = to_decimal(candle.high)
        low = to_decimal(candle.low)
        close = to_decimal(candle.close)

        if self.true_range_mode == "wilder":
            if self._prev_close is None:
                tr = high - low
            else:
                tr = max(
                    high - low,
                    abs(high - self._prev_close),
                    abs(low - self._prev_close),
                )
        else:
            tr = max(high - low, high - close, low - close)

        self._prev_close = close
        return round_half_up(tr)

    def add(self, candle: Candle) -> None:
        tr = self.true_range(candle)

        if self._atr is None:
            self._seed.push(tr)
            if self._seed.is_full:
                self._atr = round_half_up(self._seed.total / self.length)
            return

        self._atr = round_half_up((self._atr * (self.length - 1) + tr) / self.length)

    def get(self) -> float | None:
        return float(self._atr) if self._atr is not None else None


class DefiningRangeIndicator:
    """
    Defining Range (high/low) and Implied Defining Range (close high/low)
    captured in the intraday window [session_start, session_end).

    The range freezes at the first candle at or after `session_end`. While
    frozen, any candle opening or closing outside [dr_low, dr_high] latches a
    breakout in that direction. A candle earlier than `session_start` marks a
    new session and clears everything.
    """

    def __init__(self, session_start: time, session_end: time) -> None:
        if session_start >= session_end:
            raise ValueError(
                f"session_start {session_start} must be before "
                f"session_end {session_end}"
            )
        self.session_start = session_start
        self.session_end = session_end
        self._reset()

    def _reset(self) -> None:
        self._dr_high: float | None = None
        self._dr_low: float | None = None
        self._idr_high: float | None = None
        self._idr_low: float | None = None
        self._snapshot: DefiningRange | None = None
        self._breakout = False
        self._breakout_direction: Direction | None = None

    def add(self, candle: Candle) -> None:
        t = candle.time

        if t < self.session_start:
            if self._snapshot is not None or self._dr_high is not None:
                self._reset()
            return

        if self._snapshot is not None:
            self._check_breakout(candle)
            return

        if t < self.session_end:
            self._accumulate(candle)
            return

        if self._dr_high is None:
            # Nothing traded inside the window, so there is no range to freeze.
            return

        self._snapshot = DefiningRange(
            dr_high=float(self._dr_high),
            dr_low=float(self._dr_low),  # type: ignore[arg-type]
            idr_high=float(self._idr_high),  # type: ignore[arg-type]
            idr_low=float(self._idr_low),  # type: ignore[arg-type]
        )
        logger.debug("defining range formed on %s: %s", candle.date, self._snapshot)
        self._check_breakout(candle)

    def _accumulate(self, candle: Candle) -> None:
        if self._dr_high is None:
            self._dr_high, self._dr_low = candle.high, candle.low
            self._idr_high = self._idr_low = candle.close
            return
        self._dr_high = max(self._dr_high, candle.high)
        self._dr_low = min(self._dr_low, candle.low)  # type: ignore[type-var]
        self._idr_high = max(self._idr_high, candle.close)  # type: ignore[type-var]
        self._idr_low = min(self._idr_low, candle.close)  # type: ignore[type-var]

    def _check_breakout(self, candle: Candle) -> None:
        if self._breakout or self._snapshot is None:
            return
        rng = self._snapshot
        if candle.close > rng.dr_high or candle.open > rng.dr_high:
            self._breakout_direction = Direction.BUY
        elif candle.close < rng.dr_low or candle.open < rng.dr_low:
            self._breakout_direction = Direction.SELL
        else:
            return
        self._breakout = True
        logger.debug(
            "breakout %s at %s %s",
            self._breakout_direction.value,
            candle.date,
            candle.time,
        )

    def get(self) -> DefiningRange | None:
        return self._snapshot

    @property
    def is_formed(self) -> bool:
        return self._snapshot is not None

    @property
    def has_breakout(self) -> bool:
        return self._breakout

    @property
    def breakout_direction(self) -> Direction | None:
        return self._breakout_direction
