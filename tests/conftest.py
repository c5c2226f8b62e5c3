"""
Pytest Fixtures
---------------
Shared resources for testing.
- atr_candles: The 14-row reference sample for the ATR indicator.
- synth_csv: Three synthetic 5-minute sessions written as a headed CSV file.
"""

from __future__ import annotations

from pathlib import Path

import pytest

from qe_backtester.models import Candle

from tests.utils import ATR_SAMPLE, bar, make_session_frame


@pytest.fixture
def atr_candles() -> list[Candle]:
    return [
        bar(f"09:{30 + i:02d}", o, h, l, c) for i, (o, h, l, c) in enumerate(ATR_SAMPLE)
    ]


@pytest.fixture
def synth_csv(tmp_path: Path) -> Path:
    """
    Creates a synthetic candle file for integration/CLI tests.
    Sessions close on 2024-01-02, 2024-01-03 and 2024-01-04 at 16:55.
    """
    p = tmp_path / "synth_3s_5min.csv"
    make_session_frame().to_csv(p, index=False)
    return p
