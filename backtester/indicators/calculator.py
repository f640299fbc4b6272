"""
Indicator Calculator

Turns a list of IndicatorSpec into the named series exposed to strategy
conditions (``SMA_50``, ``RSI_14``, ``MACD``, ``BB_UPPER``, ...).
"""

from typing import Any, Iterable, Mapping, Union

import pandas as pd
from loguru import logger

from backtester.backtesting.models import IndicatorKind, IndicatorSpec
from backtester.core.exceptions import ConfigError
from backtester.indicators.macd import calculate_macd
from backtester.indicators.moving_averages import calculate_ema, calculate_sma
from backtester.indicators.rsi import calculate_rsi
from backtester.indicators.volatility import calculate_atr, calculate_bollinger_bands

SpecLike = Union[IndicatorSpec, Mapping[str, Any]]


def validate_spec(spec: IndicatorSpec) -> None:
    """Reject settings that can never produce a meaningful series."""
    kind = IndicatorKind(spec.kind)
    if kind == IndicatorKind.MACD:
        for name in ("fast", "slow", "signal"):
            value = getattr(spec, name)
            if value <= 0:
                raise ConfigError(
                    f"MACD {name} period must be positive",
                    param_name=name,
                    param_value=value,
                )
        return

    if spec.period is None or spec.period <= 0:
        raise ConfigError(
            f"{kind.value} period must be positive",
            param_name="period",
            param_value=spec.period,
        )
    if kind == IndicatorKind.BOLLINGER and spec.std_dev <= 0:
        raise ConfigError(
            "Bollinger std_dev must be positive",
            param_name="std_dev",
            param_value=spec.std_dev,
        )


def calculate_indicators(
    candles: pd.DataFrame,
    specs: Iterable[SpecLike],
) -> dict[str, pd.Series]:
    """
    Compute every requested indicator over ``candles``.

    Args:
        candles: DataFrame with ``open/high/low/close`` columns
        specs: IndicatorSpec objects (or dicts accepted by IndicatorSpec)

    Returns:
        Mapping of indicator name to a series aligned with ``candles``

    Raises:
        ConfigError: If any spec carries a non-positive period
    """
    parsed = [s if isinstance(s, IndicatorSpec) else IndicatorSpec.model_validate(s) for s in specs]
    for spec in parsed:
        validate_spec(spec)

    close = candles["close"].reset_index(drop=True)
    result: dict[str, pd.Series] = {}

    for spec in parsed:
        kind = IndicatorKind(spec.kind)

        if kind == IndicatorKind.SMA:
            result[f"SMA_{spec.period}"] = calculate_sma(close, spec.period)
        elif kind == IndicatorKind.EMA:
            result[f"EMA_{spec.period}"] = calculate_ema(close, spec.period)
        elif kind == IndicatorKind.RSI:
            result[f"RSI_{spec.period}"] = calculate_rsi(close, spec.period)
        elif kind == IndicatorKind.MACD:
            macd = calculate_macd(close, spec.fast, spec.slow, spec.signal)
            result["MACD"] = macd.macd
            result["MACD_SIGNAL"] = macd.signal
            result["MACD_HIST"] = macd.histogram
        elif kind == IndicatorKind.BOLLINGER:
            bands = calculate_bollinger_bands(close, spec.period, spec.std_dev)
            result["BB_UPPER"] = bands.upper
            result["BB_MIDDLE"] = bands.middle
            result["BB_LOWER"] = bands.lower
        elif kind == IndicatorKind.ATR:
            result[f"ATR_{spec.period}"] = calculate_atr(
                candles["high"].reset_index(drop=True),
                candles["low"].reset_index(drop=True),
                close,
                spec.period,
            )

    logger.debug(f"Calculated {len(result)} indicator series over {len(close)} bars: {list(result)}")
    return result
