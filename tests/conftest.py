"""
Shared fixtures for backtester tests.
"""

from typing import Callable, Optional, Sequence

import numpy as np
import pandas as pd
import pytest

from backtester.backtesting.models import BacktestConfig


def build_candles(
    closes: Sequence[float],
    spread: float = 0.5,
    start: str = "2024-01-01",
    freq: str = "1h",
    highs: Optional[Sequence[float]] = None,
    lows: Optional[Sequence[float]] = None,
) -> pd.DataFrame:
    """OHLCV frame with high/low at close +/- spread unless given explicitly."""
    closes = np.asarray(closes, dtype=float)
    return pd.DataFrame(
        {
            "timestamp": pd.date_range(start, periods=len(closes), freq=freq),
            "open": closes,
            "high": np.asarray(highs, dtype=float) if highs is not None else closes + spread,
            "low": np.asarray(lows, dtype=float) if lows is not None else closes - spread,
            "close": closes,
            "volume": np.full(len(closes), 1000.0),
        }
    )


@pytest.fixture
def make_candles() -> Callable[..., pd.DataFrame]:
    return build_candles


@pytest.fixture
def ramp_candles() -> pd.DataFrame:
    """100 bars, closes rising 100..199 in 1-point steps."""
    return build_candles(np.arange(100, 200))


@pytest.fixture
def sma_trend_config() -> BacktestConfig:
    """Long-only SMA trend rule used across engine / optimizer tests."""
    return BacktestConfig.model_validate(
        {
            "initialCapital": 10000,
            "riskPercent": 1,
            "strategy": {
                "longEntry": "close > SMA_50",
                "shortEntry": "false",
                "stopLossPercent": 2,
                "takeProfitPercent": 4,
            },
            "indicators": [{"type": "SMA", "period": 50}],
        }
    )


@pytest.fixture
def random_walk_candles() -> pd.DataFrame:
    rng = np.random.default_rng(42)
    closes = 100 + np.cumsum(rng.normal(0, 1.0, 300))
    return build_candles(closes, spread=1.0)
