"""
MACD (Moving Average Convergence Divergence)
"""

from dataclasses import dataclass

import pandas as pd

from backtester.indicators.moving_averages import ArrayLike, calculate_ema, to_array, to_series


@dataclass
class MACDResult:
    macd: pd.Series
    signal: pd.Series
    histogram: pd.Series


def calculate_macd(
    values: ArrayLike,
    fast: int = 12,
    slow: int = 26,
    signal: int = 9,
) -> MACDResult:
    """
    Calculate MACD line, signal line and histogram.

    Args:
        values: Price series
        fast: Fast EMA period (default 12)
        slow: Slow EMA period (default 26)
        signal: Signal EMA period applied to the MACD line (default 9)

    Returns:
        MACDResult with three series aligned to ``values``

    Both EMAs are seeded with the first price, so the MACD line is defined from
    the first bar whenever the periods are valid for the series length.
    """
    prices = to_array(values)
    macd_line = calculate_ema(prices, fast).to_numpy() - calculate_ema(prices, slow).to_numpy()
    signal_line = calculate_ema(macd_line, signal).to_numpy()
    histogram = macd_line - signal_line

    return MACDResult(
        macd=to_series(macd_line, values),
        signal=to_series(signal_line, values),
        histogram=to_series(histogram, values),
    )
