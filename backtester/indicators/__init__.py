"""
Technical indicators.

Every function returns series aligned 1:1 with its input; NaN marks values
that are undefined (warm-up or insufficient data).
"""

from backtester.indicators.calculator import calculate_indicators
from backtester.indicators.macd import MACDResult, calculate_macd
from backtester.indicators.moving_averages import calculate_ema, calculate_sma
from backtester.indicators.rsi import RSI_EPSILON, calculate_rsi
from backtester.indicators.volatility import (
    BollingerBands,
    calculate_atr,
    calculate_bollinger_bands,
    calculate_true_range,
)

__all__ = [
    "BollingerBands",
    "MACDResult",
    "RSI_EPSILON",
    "calculate_atr",
    "calculate_bollinger_bands",
    "calculate_ema",
    "calculate_indicators",
    "calculate_macd",
    "calculate_rsi",
    "calculate_sma",
    "calculate_true_range",
]
