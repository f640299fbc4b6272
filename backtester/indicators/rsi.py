"""
RSI (Relative Strength Index) Indicator

Simple-average RSI: gains and losses are plain means over the trailing
``period`` price changes (no Wilder smoothing).
"""

import numpy as np
import pandas as pd

from backtester.indicators.moving_averages import (
    ArrayLike,
    is_invalid_period,
    to_array,
    to_series,
    undefined_like,
)

# Floor for the average loss. A window without losses would otherwise divide
# by zero; with the floor RS becomes large and RSI approaches 100.
RSI_EPSILON = 1e-4


def calculate_rsi(values: ArrayLike, period: int = 14) -> pd.Series:
    """
    Calculate RSI (Relative Strength Index)

    Args:
        values: Price series
        period: RSI period (default 14)

    Returns:
        Series with RSI values (0-100), NaN for the first ``period + 1`` bars

    Formula:
        delta[j] = price[j+1] - price[j]
        for delta index i >= period, using delta[i-period:i]:
            avg_gain = sum(positive deltas) / period
            avg_loss = |sum(negative deltas)| / period
            RS = avg_gain / max(avg_loss, RSI_EPSILON)
            RSI = 100 - (100 / (1 + RS))
        The result is shifted by one slot so it aligns with prices.
    """
    close = to_array(values)
    if is_invalid_period(period, len(close)):
        return undefined_like(values)

    deltas = np.diff(close)
    gains = np.where(deltas > 0, deltas, 0.0)
    losses = np.where(deltas < 0, deltas, 0.0)

    rsi_values = np.full(len(close), np.nan)
    for i in range(period, len(deltas)):
        avg_gain = gains[i - period:i].sum() / period
        avg_loss = abs(losses[i - period:i].sum()) / period
        rs = avg_gain / max(avg_loss, RSI_EPSILON)
        # +1 aligns delta index with price index
        rsi_values[i + 1] = 100.0 - (100.0 / (1.0 + rs))

    return to_series(rsi_values, values)
