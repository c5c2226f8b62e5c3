"""
Portfolio Utilities
-------------------
Simulated account growth from a series of trade returns (R): fixed-fractional
equity curve, peak-to-trough drawdown and an annualised Sharpe ratio.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np


@dataclass(frozen=True)
class EquityStats:
    final_equity: float
    max_drawdown: float
    max_drawdown_pct: float


def equity_curve_from_r(
    r: np.ndarray,
    *,
    risk_per_trade: float,
    start_equity: float = 1.0,
) -> np.ndarray:
    """
    Computes an equity curve using fixed fractional position sizing.
    Formula: Equity_{t+1} = Equity_t * (1 + risk * R_t)
    """
    r = np.asarray(r, dtype=float)
    n = int(r.size)

    eq = np.empty(n + 1, dtype=float)
    eq[0] = float(start_equity)

    for i in range(n):
        mult = 1.0 + float(risk_per_trade) * float(r[i])
        if mult <= 0.0:
            eq[i + 1 :] = 0.0
            break
        eq[i + 1] = eq[i] * mult

    return eq


def max_drawdown(equity: np.ndarray) -> float:
    """Largest gap between a running peak and a later equity value."""
    equity = np.asarray(equity, dtype=float)
    if equity.size <= 1:
        return 0.0

    peak = np.maximum.accumulate(equity)
    return float(np.max(peak - equity))


def max_drawdown_pct(equity: np.ndarray) -> float:
    """Calculates the maximum percentage drawdown from peak equity."""
    equity = np.asarray(equity, dtype=float)
    if equity.size <= 1:
        return 0.0

    peak = np.maximum.accumulate(equity)
    with np.errstate(divide="ignore", invalid="ignore"):
        dd = np.where(peak > 0.0, (peak - equity) / peak, 0.0)

    mdd = float(np.nanmax(dd)) if dd.size else 0.0
    if not np.isfinite(mdd):
        return 0.0
    return max(0.0, min(1.0, mdd))


def sharpe_ratio(daily_returns: np.ndarray, *, trading_days: int) -> float:
    """
    mean / sample standard deviation of daily returns, scaled by
    sqrt(trading_days). NaN when fewer than two days or zero dispersion.
    """
    x = np.asarray(daily_returns, dtype=float)
    if x.size < 2:
        return float("nan")
    sd = float(x.std(ddof=1))
    if sd == 0.0 or not np.isfinite(sd):
        return float("nan")
    return float(x.mean() / sd * np.sqrt(trading_days))


def equity_stats_from_r(
    r: np.ndarray,
    *,
    risk_per_trade: float,
    start_equity: float = 1.0,
) -> EquityStats:
    """Aggregates drawdown statistics for a sequence of trade returns."""
    eq = equity_curve_from_r(
        r, risk_per_trade=risk_per_trade, start_equity=start_equity
    )
    return EquityStats(
        final_equity=float(eq[-1]),
        max_drawdown=max_drawdown(eq),
        max_drawdown_pct=max_drawdown_pct(eq),
    )
