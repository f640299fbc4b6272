"""
Moving averages (SMA / EMA).

All indicator functions take a 1-D price sequence (list, ndarray or Series) and
return a ``pd.Series`` aligned 1:1 with the input. Positions that cannot be
computed hold NaN, the undefined marker used throughout the engine.
"""

from __future__ import annotations

from typing import Sequence, Union

import numpy as np
import pandas as pd
from numpy.lib.stride_tricks import sliding_window_view

ArrayLike = Union[Sequence[float], np.ndarray, pd.Series]


def to_array(values: ArrayLike) -> np.ndarray:
    return np.asarray(values, dtype=float)


def to_series(result: np.ndarray, like: ArrayLike) -> pd.Series:
    """Wrap ``result`` in a Series sharing the input's index (if it has one)."""
    index = like.index if isinstance(like, pd.Series) else None
    return pd.Series(result, index=index, dtype=float)


def is_invalid_period(period: int, length: int) -> bool:
    """Insufficient data (or nonsense period) means an all-undefined series."""
    return period is None or period <= 0 or period > length


def undefined_like(values: ArrayLike) -> pd.Series:
    return to_series(np.full(len(values), np.nan), values)


def calculate_sma(values: ArrayLike, period: int) -> pd.Series:
    """
    Simple Moving Average.

    Args:
        values: Price series
        period: Window length

    Returns:
        Mean of the trailing ``period`` values; NaN for indices < period-1
    """
    arr = to_array(values)
    if is_invalid_period(period, len(arr)):
        return undefined_like(values)

    result = np.full(len(arr), np.nan)
    windows = sliding_window_view(arr, period)
    result[period - 1:] = windows.sum(axis=1) / period
    return to_series(result, values)


def calculate_ema(values: ArrayLike, period: int) -> pd.Series:
    """
    Exponential Moving Average seeded with the first value.

    ema[0] = price[0]
    ema[i] = (price[i] - ema[i-1]) * k + ema[i-1],  k = 2 / (period + 1)

    The series is defined from index 0 (no SMA warm-up seed). Every signal
    downstream depends on this seeding, so it must not be swapped for the
    SMA-seeded variant.
    """
    arr = to_array(values)
    if is_invalid_period(period, len(arr)):
        return undefined_like(values)

    k = 2.0 / (period + 1)
    result = np.empty(len(arr))
    ema = arr[0]
    result[0] = ema
    for i in range(1, len(arr)):
        ema = (arr[i] - ema) * k + ema
        result[i] = ema
    return to_series(result, values)
