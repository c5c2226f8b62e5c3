"""
Domain Models
-------------
Immutable value types shared by the indicators, strategies, the session state
machine and the performance layer.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import time
from enum import Enum


class Direction(str, Enum):
    BUY = "BUY"
    SELL = "SELL"

    @property
    def sign(self) -> int:
        return 1 if self is Direction.BUY else -1


class OrderStatus(str, Enum):
    PENDING = "PENDING"
    ACTIVE = "ACTIVE"
    CLOSED_TP_HIT = "CLOSED_TP_HIT"
    CLOSED_SL_HIT = "CLOSED_SL_HIT"
    CLOSED_MANUAL = "CLOSED_MANUAL"
    CLOSED_CANCELED = "CLOSED_CANCELED"
    CLOSED_UNKNOWN = "CLOSED_UNKNOWN"

    @property
    def is_closed(self) -> bool:
        return self.value.startswith("CLOSED_")


class SessionStatus(str, Enum):
    PENDING = "PENDING"
    STARTED = "STARTED"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


@dataclass(frozen=True)
class Candle:
    """One OHLCV bar. `time` is the bar's time-of-day within its session."""

    date: str
    time: time
    open: float
    high: float
    low: float
    close: float
    volume: float = 0.0

    def contains(self, price: float) -> bool:
        """True when `price` lies within [low, high]."""
        return self.low <= price <= self.high


@dataclass(frozen=True)
class ExcursionStats:
    maximum_favorable_price: float
    maximum_adverse_price: float

    @classmethod
    def at(cls, price: float) -> ExcursionStats:
        return cls(maximum_favorable_price=price, maximum_adverse_price=price)

    def extend(self, candle: Candle, direction: Direction) -> ExcursionStats:
        """Widens the excursion with the candle's range, seen from `direction`."""
        if direction is Direction.BUY:
            return ExcursionStats(
                maximum_favorable_price=max(self.maximum_favorable_price, candle.high),
                maximum_adverse_price=min(self.maximum_adverse_price, candle.low),
            )
        return ExcursionStats(
            maximum_favorable_price=min(self.maximum_favorable_price, candle.low),
            maximum_adverse_price=max(self.maximum_adverse_price, candle.high),
        )


@dataclass(frozen=True)
class Order:
    """
    A simulated order. Instances are never mutated: every state transition
    produces a new Order via `evolve`, which the owning session stores at the
    same list position.
    """

    stop_loss: float
    take_profit: float
    entry_price: float
    direction: Direction
    status: OrderStatus = OrderStatus.PENDING
    close_price: float | None = None
    start_time: time | None = None
    close_time: time | None = None
    excursion: ExcursionStats | None = field(default=None)

    def __post_init__(self) -> None:
        if self.excursion is None:
            object.__setattr__(self, "excursion", ExcursionStats.at(self.entry_price))

    def evolve(self, **changes: object) -> Order:
        return replace(self, **changes)  # type: ignore[arg-type]


@dataclass(frozen=True)
class DefiningRange:
    """Frozen high/low of price (DR) and of closes (IDR) for one session."""

    dr_high: float
    dr_low: float
    idr_high: float
    idr_low: float
