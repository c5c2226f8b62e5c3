"""
Configuration Schemas
---------------------
Defines the dataclasses used to validate and structure the YAML configuration.
Acts as the single source of truth for session boundaries, strategy parameters
and the risk model used by the performance report.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import time
from pathlib import Path
from typing import Any

import yaml

from .validator import validate_keys

STRATEGY_NAMES = ("ma_crossover", "dr_breakout")


def parse_time(value: str | time) -> time:
    """Parses 'HH:MM' or 'HH:MM:SS' into a time-of-day."""
    if isinstance(value, time):
        return value
    if not isinstance(value, str):
        raise ValueError(
            f"Configuration Error: expected a quoted 'HH:MM' time, got {value!r}"
        )
    try:
        return time.fromisoformat(value.strip())
    except ValueError as exc:
        raise ValueError(f"Configuration Error: invalid time {value!r}") from exc


@dataclass
class SessionCfg:
    """Session clock. A trading day runs from `first_candle` to `last_candle`."""

    first_candle: str = "18:00"
    last_candle: str = "16:55"
    range_start: str = "09:30"
    range_end: str = "10:30"

    @property
    def first_candle_time(self) -> time:
        return parse_time(self.first_candle)

    @property
    def last_candle_time(self) -> time:
        return parse_time(self.last_candle)

    @property
    def range_start_time(self) -> time:
        return parse_time(self.range_start)

    @property
    def range_end_time(self) -> time:
        return parse_time(self.range_end)


@dataclass
class StrategyCfg:
    """Strategy selection and indicator periods."""

    name: str = "ma_crossover"
    fast_period: int = 5
    slow_period: int = 20
    atr_period: int = 14
    true_range: str = "intrabar"
    stop_loss_ticks: float = 10.0
    take_profit_ticks: float = 15.0


@dataclass
class RiskCfg:
    """Risk model for the simulated equity curve and the Sharpe ratio."""

    risk_per_trade: float = 0.01
    starting_balance: float = 100_000.0
    trading_days: int = 252


@dataclass
class EngineCfg:
    """How sessions are scheduled."""

    workers: int = 1
    share_strategy: bool = True


@dataclass
class Config:
    """Root configuration object."""

    instrument: str = "CL"
    increment: float = 0.01
    session: SessionCfg = field(default_factory=SessionCfg)
    strategy: StrategyCfg = field(default_factory=StrategyCfg)
    risk: RiskCfg = field(default_factory=RiskCfg)
    engine: EngineCfg = field(default_factory=EngineCfg)

    def __post_init__(self) -> None:
        self.validate()

    def validate(self) -> None:
        """Raises ValueError on settings the engine cannot run with."""
        if self.increment <= 0:
            raise ValueError(
                f"Configuration Error: increment must be > 0, got {self.increment}"
            )

        s = self.session
        if s.range_start_time >= s.range_end_time:
            raise ValueError(
                f"Configuration Error: range_start ({s.range_start}) must be "
                f"before range_end ({s.range_end})"
            )
        if s.first_candle_time == s.last_candle_time:
            raise ValueError(
                "Configuration Error: first_candle and last_candle must differ"
            )

        st = self.strategy
        if st.name not in STRATEGY_NAMES:
            raise ValueError(
                f"Configuration Error: unknown strategy {st.name!r}; "
                f"expected one of {list(STRATEGY_NAMES)}"
            )
        for name in ("fast_period", "slow_period", "atr_period"):
            if int(getattr(st, name)) <= 0:
                raise ValueError(f"Configuration Error: {name} must be > 0")
        if st.fast_period >= st.slow_period:
            raise ValueError(
                "Configuration Error: fast_period must be shorter than slow_period"
            )
        if st.true_range not in ("intrabar", "wilder"):
            raise ValueError(
                f"Configuration Error: true_range must be 'intrabar' or 'wilder', "
                f"got {st.true_range!r}"
            )
        if st.stop_loss_ticks <= 0 or st.take_profit_ticks <= 0:
            raise ValueError("Configuration Error: SL/TP ticks must be > 0")

        r = self.risk
        if not 0.0 < r.risk_per_trade < 1.0:
            raise ValueError(
                f"Risk Cap Violation: risk_per_trade must be in (0, 1), "
                f"got {r.risk_per_trade}"
            )
        if r.starting_balance <= 0 or r.trading_days <= 0:
            raise ValueError(
                "Configuration Error: starting_balance and trading_days must be > 0"
            )

        e = self.engine
        if e.workers < 1:
            raise ValueError("Configuration Error: workers must be >= 1")
        if e.workers > 1 and e.share_strategy:
            raise ValueError(
                "Configuration Error: parallel workers need share_strategy: false"
            )


def _coerce(default: Any, value: Any, key: str) -> Any:
    """Casts a YAML scalar to the type of the field default it replaces."""
    if isinstance(default, bool):
        if isinstance(value, bool):
            return value
        raise ValueError(
            f"Configuration Error: {key} must be true or false, got {value!r}"
        )
    if isinstance(default, (int, float)):
        if isinstance(value, bool):
            raise ValueError(
                f"Configuration Error: {key} must be a number, got {value!r}"
            )
        try:
            number = float(value)
        except (TypeError, ValueError) as exc:
            raise ValueError(
                f"Configuration Error: {key} must be a number, got {value!r}"
            ) from exc
        if isinstance(default, int):
            if not number.is_integer():
                raise ValueError(
                    f"Configuration Error: {key} must be an integer, got {value!r}"
                )
            return int(number)
        return number
    return value


def _merge_dc(obj: Any, patch: dict[str, Any], *, path: str = "") -> Any:
    """Recursively merges a dictionary into a dataclass."""
    if not isinstance(patch, dict):
        return obj
    for k, v in patch.items():
        if not hasattr(obj, k):
            continue
        cur = getattr(obj, k)

        if hasattr(cur, "__dataclass_fields__"):
            if v is None:
                continue
            if not isinstance(v, dict):
                raise ValueError(
                    f"Configuration Error: {path}{k} must be a section, got {v!r}"
                )
            _merge_dc(cur, v, path=path + k + ".")
        else:
            setattr(obj, k, _coerce(cur, v, path + k))
    return obj


def load_config(path: str | Path) -> Config:
    """
    Loads configuration from a YAML file.
    Unknown keys fail fast, missing keys keep their defaults, and the merged
    result is validated before it is returned.
    """
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    with open(p, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}

    validate_keys(data, Config)

    cfg = Config()
    _merge_dc(cfg, data)
    cfg.validate()

    return cfg
