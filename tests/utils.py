from __future__ import annotations

from datetime import time

import numpy as np
import pandas as pd

from qe_backtester.models import Candle, Order

# Reference ATR sample as (open, high, low, close). Fourteen rows give a
# 14-period ATR of 1.19.
ATR_SAMPLE = [
    (21.51, 21.95, 20.22, 21.51),
    (21.51, 22.25, 21.10, 21.61),
    (21.61, 21.50, 20.34, 20.83),
    (20.83, 23.25, 22.13, 22.65),
    (22.65, 23.03, 21.87, 22.41),
    (22.41, 23.34, 22.18, 22.67),
    (22.67, 23.66, 22.57, 23.05),
    (23.05, 23.97, 22.80, 23.31),
    (23.31, 24.29, 23.15, 23.68),
    (23.68, 24.60, 23.45, 23.97),
    (23.97, 24.92, 23.76, 24.31),
    (24.31, 25.23, 24.09, 24.60),
    (24.60, 25.55, 24.39, 24.89),
    (24.89, 25.86, 24.69, 25.20),
]


def t(hhmm: str) -> time:
    return time.fromisoformat(hhmm)


def bar(
    hhmm: str,
    o: float,
    h: float,
    l: float,
    c: float,
    date: str = "2024-01-02",
    volume: float = 1000.0,
) -> Candle:
    return Candle(
        date=date, time=t(hhmm), open=o, high=h, low=l, close=c, volume=volume
    )


def flat(hhmm: str, price: float, date: str = "2024-01-02") -> Candle:
    return bar(hhmm, price, price, price, price, date=date)


class ScriptedStrategy:
    """Emits pre-built orders at fixed times of day and records what it saw."""

    def __init__(self, script: dict[str, Order] | None = None) -> None:
        self.script = {t(k): v for k, v in (script or {}).items()}
        self.pushed: list[Candle] = []
        self.asked: list[time] = []

    def push(self, candle: Candle) -> None:
        self.pushed.append(candle)

    def get_status(self) -> Order | None:
        now = self.pushed[-1].time
        self.asked.append(now)
        return self.script.pop(now, None)


class ExplodingStrategy(ScriptedStrategy):
    """ScriptedStrategy that raises when it is pushed the candle at `fail_at`."""

    def __init__(self, fail_at: str, script: dict[str, Order] | None = None) -> None:
        super().__init__(script)
        self.fail_at = t(fail_at)

    def push(self, candle: Candle) -> None:
        if candle.time == self.fail_at:
            raise RuntimeError("feed exploded")
        super().push(candle)


def make_session_frame(
    start: str = "2024-01-01 18:00",
    sessions: int = 3,
    freq: str = "5min",
    seed: int = 7,
) -> pd.DataFrame:
    """
    Random-walk candles laid out as futures sessions: each session opens at
    18:00 and closes with the 16:55 bar of the next calendar day.
    """
    rng = np.random.default_rng(seed)
    frames = []
    price = 75.0
    for d in range(sessions):
        first = pd.Timestamp(start) + pd.Timedelta(days=d)
        last = first + pd.Timedelta(hours=22, minutes=55)
        idx = pd.date_range(first, last, freq=freq)
        close = price + rng.standard_normal(len(idx)).cumsum() / 20
        frames.append(
            pd.DataFrame(
                {
                    "date": idx.strftime("%Y-%m-%d"),
                    "time": idx.strftime("%H:%M:%S"),
                    "open": np.round(close + rng.uniform(-0.03, 0.03, len(idx)), 2),
                    "high": np.round(close + rng.uniform(0.04, 0.12, len(idx)), 2),
                    "low": np.round(close - rng.uniform(0.04, 0.12, len(idx)), 2),
                    "close": np.round(close, 2),
                    "volume": rng.integers(50, 500, len(idx)),
                }
            )
        )
        price = float(close[-1])
    return pd.concat(frames, ignore_index=True)
