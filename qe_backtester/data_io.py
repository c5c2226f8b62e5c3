"""
Data IO Layer
-------------
Loading and normalization of OHLCV candles.
Reads `date,time,open,high,low,close,volume` rows (comma or whitespace
separated, header optional), skips malformed rows with a warning, groups the
stream into trading sessions and resamples to coarser timeframes.
"""

from __future__ import annotations

import logging
from datetime import time
from typing import Any, Iterable, cast

import pandas as pd

from .models import Candle

logger = logging.getLogger(__name__)

CSV_COLS = ("date", "time", "open", "high", "low", "close", "volume")
PRICE_COLS = ("open", "high", "low", "close", "volume")


def _looks_like_header(row: pd.Series) -> bool:
    return str(row.get("open", "")).strip().lower() == "open"


def _parse_times(s: pd.Series) -> pd.Series:
    parsed = pd.to_datetime(s, format="%H:%M:%S", errors="coerce")
    short = pd.to_datetime(s, format="%H:%M", errors="coerce")
    return parsed.fillna(short)


def load_candles_df(path: str) -> pd.DataFrame:
    """
    Loads a candle file into a frame with `date`, `time` (datetime.time),
    OHLCV floats and a `timestamp` column, sorted by timestamp.
    """
    def _bad_line(fields: list[str]) -> None:
        logger.warning("skipping malformed row in %s: %s", path, ",".join(fields))
        return None

    raw = pd.read_csv(
        path,
        sep=r"[,\s]+",
        engine="python",
        header=None,
        names=list(CSV_COLS),
        dtype=str,
        skip_blank_lines=True,
        on_bad_lines=_bad_line,
    )

    if len(raw) and _looks_like_header(raw.iloc[0]):
        raw = raw.iloc[1:]

    df = raw.copy()
    for col in PRICE_COLS:
        df[col] = pd.to_numeric(df[col], errors="coerce")

    clock = _parse_times(df["time"].astype(str).str.strip())
    df["timestamp"] = pd.to_datetime(
        df["date"].astype(str).str.strip() + " " + clock.dt.strftime("%H:%M:%S"),
        errors="coerce",
        format="mixed",
    )

    bad = df[list(PRICE_COLS)].isna().any(axis=1) | df["timestamp"].isna()
    for idx in df.index[bad]:
        logger.warning(
            "skipping malformed row %s in %s: %s",
            idx,
            path,
            ",".join(str(v) for v in raw.loc[idx].tolist()),
        )
    df = df.loc[~bad]

    df = df.sort_values("timestamp", kind="stable")
    df = df.drop_duplicates(subset="timestamp", keep="last")
    df["date"] = df["timestamp"].dt.strftime("%Y-%m-%d")
    df["time"] = df["timestamp"].dt.time
    return df.reset_index(drop=True)


def frame_to_candles(df: pd.DataFrame) -> list[Candle]:
    """Converts a normalized frame into Candle records, preserving row order."""
    return [
        Candle(
            date=str(row.date),
            time=cast(time, row.time),
            open=float(row.open),
            high=float(row.high),
            low=float(row.low),
            close=float(row.close),
            volume=float(row.volume),
        )
        for row in df.itertuples(index=False)
    ]


def group_sessions(
    candles: Iterable[Candle], last_candle_time: time
) -> dict[str, list[Candle]]:
    """
    Splits a chronological candle stream into sessions. A session ends with
    the candle stamped `last_candle_time` and is keyed by that candle's date.
    A trailing session without its closing candle is kept under the date of
    its final candle, unless that date already names a completed session.
    """
    sessions: dict[str, list[Candle]] = {}
    current: list[Candle] = []
    for candle in candles:
        current.append(candle)
        if candle.time == last_candle_time:
            sessions[candle.date] = current
            current = []

    if current:
        key = current[-1].date
        if key in sessions:
            logger.warning(
                "dropping %d trailing candles after the %s session close",
                len(current),
                key,
            )
        else:
            logger.info("trailing session %s has no %s candle", key, last_candle_time)
            sessions[key] = current
    return sessions


def slice_dates(
    df: pd.DataFrame, date_from: str | None = None, date_to: str | None = None
) -> pd.DataFrame:
    """Keeps rows whose calendar date lies in [date_from, date_to] inclusive."""
    if df is None or df.empty or (date_from is None and date_to is None):
        return df

    day = df["timestamp"].dt.normalize()
    mask = pd.Series(True, index=df.index)
    if date_from:
        mask &= day >= pd.Timestamp(date_from).normalize()
    if date_to:
        mask &= day <= pd.Timestamp(date_to).normalize()
    return df.loc[mask]


def resample(df: pd.DataFrame, rule: str = "5min") -> pd.DataFrame:
    """
    Resamples candles to a coarser timeframe. Bars are stamped with the start
    of their interval, matching the bar-open convention of the input files.
    """
    if df.empty:
        return df

    agg = {
        "open": "first",
        "high": "max",
        "low": "min",
        "close": "last",
        "volume": "sum",
    }
    out = cast(
        pd.DataFrame,
        df.set_index("timestamp")[list(PRICE_COLS)]
        .resample(rule, label="left", closed="left")
        .agg(cast(Any, agg))
        .dropna(how="any", subset=["open", "high", "low", "close"]),
    )
    out = out.reset_index()
    out["date"] = out["timestamp"].dt.strftime("%Y-%m-%d")
    out["time"] = out["timestamp"].dt.time
    return out[["date", "time", *PRICE_COLS, "timestamp"]]


def load_sessions(
    path: str,
    last_candle_time: time,
    *,
    rule: str | None = None,
    date_from: str | None = None,
    date_to: str | None = None,
) -> dict[str, list[Candle]]:
    """Load -> optional date slice -> optional resample -> session grouping."""
    df = load_candles_df(path)
    df = slice_dates(df, date_from, date_to)
    if rule:
        df = resample(df, rule)
    return group_sessions(frame_to_candles(df), last_candle_time)
