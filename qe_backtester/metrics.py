"""
Performance Metrics
-------------------
Reduces the per-session order lists produced by the engine into summary
statistics: win/loss split, R-multiples, expectancy, MFE/MAE, streaks,
compounded drawdown and a Sharpe ratio over session (daily) returns.

Inputs are never mutated. Canceled orders are excluded everywhere; orders
without a resolved close price are counted as `unresolved` and not scored.
"""

from __future__ import annotations

import math
from typing import Any, Sequence

import numpy as np
import pandas as pd

from .config import RiskCfg
from .models import Direction, Order, OrderStatus
from .portfolio import equity_stats_from_r, sharpe_ratio

NO_ORDERS_MESSAGE = "No orders to calculate performance metrics."

_TRADE_COLS = [
    "session",
    "direction",
    "status",
    "entry",
    "stop",
    "target",
    "close",
    "start_time",
    "close_time",
    "pnl",
    "risk",
    "r",
    "mfe",
    "mae",
]


def _is_scorable(order: Order) -> bool:
    return order.status is not OrderStatus.CLOSED_CANCELED and (
        order.status.is_closed and order.close_price is not None
    )


def _excursions(order: Order) -> tuple[float, float]:
    """MFE capped at the target and MAE capped at the stop, as price distances."""
    exc = order.excursion
    fav = exc.maximum_favorable_price if exc is not None else order.entry_price
    adv = exc.maximum_adverse_price if exc is not None else order.entry_price

    if order.direction is Direction.BUY:
        mfe = min(fav, order.take_profit) - order.entry_price
        mae = max(adv, order.stop_loss) - order.entry_price
    else:
        mfe = order.entry_price - max(fav, order.take_profit)
        mae = order.entry_price - min(adv, order.stop_loss)
    return mfe, mae


def orders_to_frame(sessions: Sequence[Sequence[Order]]) -> pd.DataFrame:
    """One row per scored trade, in session then insertion order."""
    rows: list[dict[str, object]] = []
    for session_idx, orders in enumerate(sessions):
        for order in orders:
            if not _is_scorable(order):
                continue
            close = float(order.close_price)  # type: ignore[arg-type]
            sign = order.direction.sign
            pnl = sign * (close - order.entry_price)
            risk = sign * (order.entry_price - order.stop_loss)
            mfe, mae = _excursions(order)
            rows.append(
                {
                    "session": session_idx,
                    "direction": order.direction.value,
                    "status": order.status.value,
                    "entry": order.entry_price,
                    "stop": order.stop_loss,
                    "target": order.take_profit,
                    "close": close,
                    "start_time": order.start_time,
                    "close_time": order.close_time,
                    "pnl": pnl,
                    "risk": risk,
                    "r": pnl / risk if risk != 0 else math.nan,
                    "mfe": mfe,
                    "mae": mae,
                }
            )
    return pd.DataFrame(rows, columns=_TRADE_COLS)


def count_unresolved(sessions: Sequence[Sequence[Order]]) -> int:
    """Orders that were neither canceled nor closed at a known price."""
    return sum(
        1
        for orders in sessions
        for o in orders
        if o.status is not OrderStatus.CLOSED_CANCELED and not _is_scorable(o)
    )


def longest_streaks(pnl: pd.Series) -> tuple[int, int]:
    """Longest run of consecutive wins (pnl > 0) and of consecutive losses."""
    best_win = best_loss = 0
    run = 0
    prev_win: bool | None = None
    for value in pnl.to_numpy(dtype=float):
        win = bool(value > 0)
        run = run + 1 if win == prev_win else 1
        prev_win = win
        if win:
            best_win = max(best_win, run)
        else:
            best_loss = max(best_loss, run)
    return best_win, best_loss


def daily_returns(
    trades: pd.DataFrame, n_sessions: int, risk_per_trade: float
) -> pd.Series:
    """Sum of r * risk_per_trade per session; sessions without trades return 0."""
    per_session = (trades["r"] * risk_per_trade).groupby(trades["session"]).sum()
    return per_session.reindex(range(n_sessions), fill_value=0.0)


def expectancy(
    win_rate: float, loss_rate: float, avg_win_r: float, avg_loss_r: float
) -> float:
    """
    Expected R per trade. `avg_loss_r` is the (non-positive) mean R of losing
    trades; its magnitude is subtracted, so the sign of the input never flips
    the result.
    """
    return win_rate * avg_win_r - loss_rate * abs(avg_loss_r)


def _empty_summary(unresolved: int, n_sessions: int) -> dict[str, Any]:
    return {
        "trades": 0,
        "sessions": n_sessions,
        "unresolved": unresolved,
        "message": NO_ORDERS_MESSAGE,
    }


def summary(
    sessions: Sequence[Sequence[Order]], risk: RiskCfg | None = None
) -> dict[str, Any]:
    """
    Generates the performance report for a run.

    Ratios with an empty denominator (no wins, no losses, fewer than two
    sessions) are reported as NaN rather than zero.
    """
    risk = risk or RiskCfg()
    n_sessions = len(sessions)
    unresolved = count_unresolved(sessions)

    trades = orders_to_frame(sessions)
    n = int(len(trades))
    if n == 0:
        return _empty_summary(unresolved, n_sessions)

    is_win = trades["pnl"] > 0
    wins = trades.loc[is_win, "r"]
    losses = trades.loc[~is_win, "r"]

    win_rate = float(len(wins) / n)
    loss_rate = float(len(losses) / n)
    avg_win = float(wins.mean()) if len(wins) else math.nan
    avg_loss = float(losses.mean()) if len(losses) else math.nan

    win_streak, loss_streak = longest_streaks(trades["pnl"])

    eq = equity_stats_from_r(
        trades["r"].to_numpy(dtype=float),
        risk_per_trade=risk.risk_per_trade,
        start_equity=risk.starting_balance,
    )
    daily = daily_returns(trades, n_sessions, risk.risk_per_trade)

    return {
        "trades": n,
        "sessions": n_sessions,
        "unresolved": unresolved,
        "wins": int(len(wins)),
        "losses": int(len(losses)),
        "win_rate": win_rate,
        "loss_rate": loss_rate,
        "avg_win_R": avg_win,
        "avg_loss_R": avg_loss,
        "expectancy_R": expectancy(win_rate, loss_rate, avg_win, avg_loss),
        "sum_R": float(trades["r"].sum()),
        "avg_MFE": float(trades["mfe"].mean()),
        "avg_MAE": float(trades["mae"].mean()),
        "max_win_streak": win_streak,
        "max_loss_streak": loss_streak,
        "maxDD": eq.max_drawdown,
        "maxDD_pct": eq.max_drawdown_pct,
        "final_equity": eq.final_equity,
        "sharpe": sharpe_ratio(daily.to_numpy(), trading_days=risk.trading_days),
    }


def compute_summary(
    sessions: Sequence[Sequence[Order]], risk: RiskCfg | None = None
) -> dict[str, Any]:
    """Alias for summary()."""
    return summary(sessions, risk)


def format_report(s: dict[str, Any]) -> str:
    """Human-readable rendering of a summary() result."""
    if not s.get("trades"):
        return NO_ORDERS_MESSAGE

    def _f(value: float, spec: str = ".2f") -> str:
        return "n/a" if value is None or np.isnan(value) else format(value, spec)

    lines = [
        f"Trades: {s['trades']} over {s['sessions']} sessions"
        f" ({s['unresolved']} unresolved)",
        f"Wins: {s['wins']}",
        f"Losses: {s['losses']}",
        f"Win Rate: {_f(s['win_rate'] * 100)}%",
        f"Avg Win R: {_f(s['avg_win_R'])}",
        f"Avg Loss R: {_f(s['avg_loss_R'])}",
        f"Avg MFE: {_f(s['avg_MFE'])}",
        f"Avg MAE: {_f(s['avg_MAE'])}",
        f"Max Win Streak: {s['max_win_streak']}",
        f"Max Loss Streak: {s['max_loss_streak']}",
        f"Max DrawDown: {_f(s['maxDD'])} ({_f(s['maxDD_pct'] * 100)}%)",
        f"Final Equity: {_f(s['final_equity'])}",
        f"Sharpe Ratio: {_f(s['sharpe'])}",
        f"Expectancy: {_f(s['expectancy_R'])}",
    ]
    return "\n".join(lines)
