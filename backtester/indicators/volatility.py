"""
Volatility indicators: Bollinger Bands and ATR (Average True Range).
"""

from dataclasses import dataclass

import numpy as np
import pandas as pd
from numpy.lib.stride_tricks import sliding_window_view

from backtester.indicators.moving_averages import (
    ArrayLike,
    calculate_sma,
    is_invalid_period,
    to_array,
    to_series,
    undefined_like,
)


@dataclass
class BollingerBands:
    upper: pd.Series
    middle: pd.Series
    lower: pd.Series


def calculate_bollinger_bands(
    values: ArrayLike,
    period: int = 20,
    std_dev: float = 2.0,
) -> BollingerBands:
    """
    Bollinger Bands.

    middle = SMA(period)
    upper/lower = middle +/- std_dev * population std of the trailing window
    """
    prices = to_array(values)
    if is_invalid_period(period, len(prices)):
        empty = undefined_like(values)
        return BollingerBands(upper=empty, middle=empty.copy(), lower=empty.copy())

    middle = calculate_sma(prices, period).to_numpy()
    std = np.full(len(prices), np.nan)
    std[period - 1:] = sliding_window_view(prices, period).std(axis=1, ddof=0)

    return BollingerBands(
        upper=to_series(middle + std_dev * std, values),
        middle=to_series(middle, values),
        lower=to_series(middle - std_dev * std, values),
    )


def calculate_true_range(high: ArrayLike, low: ArrayLike, close: ArrayLike) -> np.ndarray:
    """
    True Range for bars 1..n-1 (the first bar has no previous close).

    TR[i] = max(high - low, |high - prev_close|, |low - prev_close|)

    Returns:
        np.ndarray of length ``n - 1``
    """
    high = to_array(high)
    low = to_array(low)
    close = to_array(close)
    if len(close) < 2:
        return np.empty(0)

    prev_close = close[:-1]
    hl = high[1:] - low[1:]
    hc = np.abs(high[1:] - prev_close)
    lc = np.abs(low[1:] - prev_close)
    return np.maximum(np.maximum(hl, hc), lc)


def calculate_atr(
    high: ArrayLike,
    low: ArrayLike,
    close: ArrayLike,
    period: int = 14,
) -> pd.Series:
    """
    Average True Range.

    ATR = SMA(True Range, period), shifted right by one slot so it aligns with
    the candles. Defined from index ``period`` onwards.
    """
    tr = calculate_true_range(high, low, close)
    if is_invalid_period(period, len(tr)):
        return undefined_like(close)

    atr = np.concatenate(([np.nan], calculate_sma(tr, period).to_numpy()))
    return to_series(atr, close)
