"""
Tests for qe_backtester.engine
------------------------------
Coverage:
- Shared-strategy vs fresh-strategy scheduling.
- Parallel workers reproduce the sequential result in session order.
- Failed sessions are reported without aborting the run.
- Argument validation.
"""

from functools import partial

import pytest

from qe_backtester.config import Config, EngineCfg
from qe_backtester.data_io import load_sessions
from qe_backtester.engine import run_backtest, run_from_config
from qe_backtester.models import SessionStatus
from qe_backtester.strategies import build_strategy

from tests.utils import ExplodingStrategy, ScriptedStrategy, flat, t

FIRST = t("18:00")
LAST = t("16:55")


@pytest.fixture
def sessions(synth_csv):
    return load_sessions(str(synth_csv), LAST)


def test_fresh_strategy_sequential_matches_parallel(sessions):
    factory = partial(build_strategy, Config())
    kw = dict(first_candle_time=FIRST, last_candle_time=LAST, strategy_factory=factory)

    seq = run_backtest(sessions, **kw)
    par = run_backtest(sessions, workers=2, **kw)

    assert [s.session_id for s in par.sessions] == list(sessions)
    assert par.sessions == seq.sessions
    assert all(s.status is SessionStatus.COMPLETED for s in seq.sessions)


def test_shared_strategy_carries_history(sessions):
    cfg = Config()
    shared = run_backtest(
        sessions,
        first_candle_time=FIRST,
        last_candle_time=LAST,
        strategy=build_strategy(cfg),
    )
    fresh = run_backtest(
        sessions,
        first_candle_time=FIRST,
        last_candle_time=LAST,
        strategy_factory=partial(build_strategy, cfg),
    )
    # Both start cold, so only the first session is guaranteed to agree.
    assert shared.sessions[0] == fresh.sessions[0]
    assert len(shared.order_lists) == len(sessions)


def test_failed_session_does_not_stop_the_run():
    day = [flat("18:00", 1.0), flat("20:00", 1.0), flat("16:55", 1.0)]
    result = run_backtest(
        {"2024-01-02": day, "2024-01-03": day},
        first_candle_time=FIRST,
        last_candle_time=LAST,
        strategy=ExplodingStrategy("20:00"),
    )
    assert result.failed == ["2024-01-02", "2024-01-03"]
    assert result.order_lists == [[], []]


def test_run_from_config_parallel(sessions):
    cfg = Config(engine=EngineCfg(workers=2, share_strategy=False))
    result = run_from_config(sessions, cfg)
    assert [s.session_id for s in result.sessions] == list(sessions)
    assert result.failed == []


def test_empty_input():
    result = run_backtest(
        {}, first_candle_time=FIRST, last_candle_time=LAST, strategy=ScriptedStrategy()
    )
    assert result.sessions == []
    assert result.order_lists == []


def test_argument_validation():
    kw = dict(first_candle_time=FIRST, last_candle_time=LAST)
    with pytest.raises(ValueError, match="exactly one"):
        run_backtest({}, **kw)
    with pytest.raises(ValueError, match="exactly one"):
        run_backtest(
            {}, strategy=ScriptedStrategy(), strategy_factory=ScriptedStrategy, **kw
        )
    with pytest.raises(ValueError, match="parallel"):
        run_backtest({}, strategy=ScriptedStrategy(), workers=2, **kw)
    with pytest.raises(ValueError, match="workers"):
        run_backtest({}, strategy_factory=ScriptedStrategy, workers=0, **kw)
