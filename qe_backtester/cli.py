"""
QuarterEdge Backtester CLI

Glue layer: config -> data -> sessions -> engine -> performance report.
"""

from __future__ import annotations

import argparse
import json
import logging
import math
from dataclasses import asdict, is_dataclass
from pathlib import Path
from typing import Any

from .config import load_config
from .data_io import load_candles_df, load_sessions, resample, slice_dates
from .engine import run_from_config
from .log_config import setup_logging
from .metrics import compute_summary, format_report

logger = logging.getLogger(__name__)


# -----------------------------
# Helpers
# -----------------------------
def _json_default(x: Any) -> Any:
    if is_dataclass(x) and not isinstance(x, type):
        return asdict(x)
    if hasattr(x, "__dict__"):
        return dict(x.__dict__)
    return str(x)


def _nan_to_none(x: Any) -> Any:
    if isinstance(x, float) and not math.isfinite(x):
        return None
    if isinstance(x, dict):
        return {k: _nan_to_none(v) for k, v in x.items()}
    if isinstance(x, (list, tuple)):
        return [_nan_to_none(v) for v in x]
    return x


def _print_compact_json(obj: Any) -> None:
    """Strict JSON: NaN and infinities become null."""
    print(
        json.dumps(
            _nan_to_none(obj),
            default=_json_default,
            separators=(",", ":"),
            allow_nan=False,
        )
    )


# -----------------------------
# Commands
# -----------------------------
def cmd_backtest(
    config_path: str,
    data_path: str,
    *,
    date_from: str | None = None,
    date_to: str | None = None,
    rule: str | None = None,
    workers: int | None = None,
    report: str = "text",
) -> dict[str, Any]:
    cfg = load_config(config_path)
    if workers is not None:
        cfg.engine.workers = int(workers)
        if cfg.engine.workers > 1:
            cfg.engine.share_strategy = False
        cfg.validate()

    sessions = load_sessions(
        data_path,
        cfg.session.last_candle_time,
        rule=rule,
        date_from=date_from,
        date_to=date_to,
    )
    logger.info("loaded %d sessions from %s", len(sessions), data_path)

    result = run_from_config(sessions, cfg)
    summary = compute_summary(result.order_lists, cfg.risk)
    summary["failed_sessions"] = result.failed

    if report == "json":
        _print_compact_json(summary)
    else:
        print(format_report(summary))
    return summary


def cmd_resample(
    data_path: str,
    out_path: str,
    *,
    rule: str = "5min",
    date_from: str | None = None,
    date_to: str | None = None,
) -> Path:
    df = slice_dates(load_candles_df(data_path), date_from, date_to)
    out = resample(df, rule)

    p = Path(out_path)
    p.parent.mkdir(parents=True, exist_ok=True)
    out.drop(columns=["timestamp"]).to_csv(p, index=False, float_format="%.2f")
    logger.info("wrote %d %s bars to %s", len(out), rule, p)
    return p


def _add_backtest_args(p: argparse.ArgumentParser) -> None:
    p.add_argument("--config", required=True)
    p.add_argument("--data", required=True)
    p.add_argument("--from", dest="date_from", default=None)
    p.add_argument("--to", dest="date_to", default=None)
    p.add_argument(
        "--resample",
        dest="rule",
        default=None,
        help="Resample candles before the run, e.g. 5min.",
    )
    p.add_argument(
        "--workers",
        type=int,
        default=None,
        help="Run sessions in N worker processes (fresh strategy per session).",
    )
    p.add_argument("--report", choices=("text", "json"), default="text")


def main(argv: list[str] | None = None) -> None:
    p = argparse.ArgumentParser(description="QuarterEdge Backtester CLI")
    p.add_argument("--log-level", default="WARNING")
    sub = p.add_subparsers(dest="cmd", required=True)

    # ---------------- backtest ----------------
    p_bt = sub.add_parser("backtest", help="Run a backtest over a candle file")
    _add_backtest_args(p_bt)

    p_bt_old = sub.add_parser("run-backtest", help="Alias for backtest")
    _add_backtest_args(p_bt_old)

    # ---------------- resample ----------------
    p_rs = sub.add_parser("resample", help="Resample a candle file")
    p_rs.add_argument("--data", required=True)
    p_rs.add_argument("--out", required=True)
    p_rs.add_argument("--rule", default="5min")
    p_rs.add_argument("--from", dest="date_from", default=None)
    p_rs.add_argument("--to", dest="date_to", default=None)

    args = p.parse_args(argv)
    setup_logging(args.log_level)

    if args.cmd in ("backtest", "run-backtest"):
        cmd_backtest(
            args.config,
            args.data,
            date_from=args.date_from,
            date_to=args.date_to,
            rule=args.rule,
            workers=args.workers,
            report=args.report,
        )
        return

    if args.cmd == "resample":
        cmd_resample(
            args.data,
            args.out,
            rule=args.rule,
            date_from=args.date_from,
            date_to=args.date_to,
        )
        return


if __name__ == "__main__":
    main()
