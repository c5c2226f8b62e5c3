"""
Backtest Engine
---------------
Runs a BacktestSession per trading day and collects the resulting orders in
session order.

Two scheduling modes:
- shared strategy: one strategy instance is carried across sessions (indicator
  history continues from day to day); sessions run sequentially.
- strategy factory: every session gets a fresh strategy, so sessions are
  independent and can be spread over worker processes.
"""

from __future__ import annotations

import logging
from concurrent.futures import ProcessPoolExecutor
from dataclasses import dataclass, field
from datetime import time
from functools import partial
from typing import Mapping, Sequence, cast

from .config import Config
from .models import Candle, Order, SessionStatus
from .session import BacktestSession
from .strategies import Strategy, StrategyFactory, build_strategy

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SessionResult:
    session_id: str
    status: SessionStatus
    orders: tuple[Order, ...]


@dataclass
class BacktestResult:
    sessions: list[SessionResult] = field(default_factory=list)

    @property
    def order_lists(self) -> list[list[Order]]:
        """Orders grouped per session, the input shape of the metrics layer."""
        return [list(s.orders) for s in self.sessions]

    @property
    def failed(self) -> list[str]:
        return [s.session_id for s in self.sessions if s.status is SessionStatus.FAILED]


def run_session(
    strategy: Strategy,
    session_id: str,
    candles: Sequence[Candle],
    *,
    first_candle_time: time,
    last_candle_time: time,
) -> SessionResult:
    session = BacktestSession(
        strategy,
        candles,
        first_candle_time=first_candle_time,
        last_candle_time=last_candle_time,
        session_id=session_id,
    )
    status = session.start_session()
    return SessionResult(session_id=session_id, status=status, orders=session.orders)


def _run_fresh_session(
    factory: StrategyFactory,
    session_id: str,
    candles: Sequence[Candle],
    first_candle_time: time,
    last_candle_time: time,
) -> SessionResult:
    return run_session(
        factory(),
        session_id,
        candles,
        first_candle_time=first_candle_time,
        last_candle_time=last_candle_time,
    )


def run_backtest(
    sessions: Mapping[str, Sequence[Candle]],
    *,
    first_candle_time: time,
    last_candle_time: time,
    strategy: Strategy | None = None,
    strategy_factory: StrategyFactory | None = None,
    workers: int = 1,
) -> BacktestResult:
    """
    Replays `sessions` (session id -> ordered candles, in chronological order).

    Exactly one of `strategy` (shared, sequential) or `strategy_factory`
    (fresh per session) must be given. `workers > 1` requires a factory that
    can be pickled, e.g. a module-level function or a functools.partial.
    """
    if (strategy is None) == (strategy_factory is None):
        raise ValueError("pass exactly one of strategy or strategy_factory")
    if workers < 1:
        raise ValueError(f"workers must be >= 1, got {workers}")
    if strategy is not None and workers > 1:
        raise ValueError("a shared strategy cannot be run in parallel workers")

    result = BacktestResult()
    items = list(sessions.items())
    if not items:
        return result

    if strategy is not None:
        for session_id, candles in items:
            result.sessions.append(
                run_session(
                    strategy,
                    session_id,
                    candles,
                    first_candle_time=first_candle_time,
                    last_candle_time=last_candle_time,
                )
            )
    elif workers == 1:
        factory = cast(StrategyFactory, strategy_factory)
        for session_id, candles in items:
            result.sessions.append(
                _run_fresh_session(
                    factory,
                    session_id,
                    candles,
                    first_candle_time,
                    last_candle_time,
                )
            )
    else:
        n = min(workers, len(items))
        with ProcessPoolExecutor(max_workers=n) as pool:
            futures = [
                pool.submit(
                    _run_fresh_session,
                    strategy_factory,
                    session_id,
                    list(candles),
                    first_candle_time,
                    last_candle_time,
                )
                for session_id, candles in items
            ]
            # Collected in submission order so the reduction stays deterministic.
            result.sessions.extend(f.result() for f in futures)

    if result.failed:
        logger.warning("%d session(s) failed: %s", len(result.failed), result.failed)
    return result


def run_from_config(
    sessions: Mapping[str, Sequence[Candle]], cfg: Config
) -> BacktestResult:
    """Builds the configured strategy and schedules sessions per `cfg.engine`."""
    first = cfg.session.first_candle_time
    last = cfg.session.last_candle_time

    if cfg.engine.share_strategy:
        return run_backtest(
            sessions,
            first_candle_time=first,
            last_candle_time=last,
            strategy=build_strategy(cfg),
        )

    return run_backtest(
        sessions,
        first_candle_time=first,
        last_candle_time=last,
        strategy_factory=partial(build_strategy, cfg),
        workers=int(cfg.engine.workers),
    )
