"""
Tests for the indicator functions and the indicator calculator.
"""

import numpy as np
import pandas as pd
import pytest

from backtester.backtesting.models import IndicatorSpec
from backtester.core.exceptions import ConfigError
from backtester.indicators import (
    RSI_EPSILON,
    calculate_atr,
    calculate_bollinger_bands,
    calculate_ema,
    calculate_indicators,
    calculate_macd,
    calculate_rsi,
    calculate_sma,
    calculate_true_range,
)


class TestMovingAverages:
    """SMA / EMA"""

    def test_sma_constant_series(self):
        values = [42.5] * 30
        sma = calculate_sma(values, 5)

        assert sma.iloc[:4].isna().all()
        assert (sma.iloc[4:] == 42.5).all()

    def test_sma_values(self):
        sma = calculate_sma([1, 2, 3, 4, 5], 3)

        assert sma.isna().tolist() == [True, True, False, False, False]
        assert sma.iloc[2:].tolist() == pytest.approx([2.0, 3.0, 4.0])

    @pytest.mark.parametrize("period", [0, -3, 6])
    def test_sma_invalid_period_is_undefined(self, period):
        sma = calculate_sma([1, 2, 3, 4, 5], period)

        assert len(sma) == 5
        assert sma.isna().all()

    def test_ema_seeded_with_first_value(self):
        ema = calculate_ema([10, 20, 30], 3)  # k = 0.5

        assert ema.tolist() == pytest.approx([10.0, 15.0, 22.5])

    def test_ema_defined_from_first_bar(self):
        ema = calculate_ema(np.linspace(1, 50, 50), 20)

        assert not ema.isna().any()
        assert ema.iloc[0] == 1.0

    def test_series_index_is_preserved(self):
        values = pd.Series([1.0, 2.0, 3.0], index=[10, 11, 12])

        assert calculate_sma(values, 2).index.tolist() == [10, 11, 12]


class TestRSI:
    """Simple-average RSI"""

    def test_hand_computed_values(self):
        rsi = calculate_rsi([1, 2, 1, 2, 1], 2)

        assert rsi.iloc[:3].isna().all()
        assert rsi.iloc[3:].tolist() == pytest.approx([50.0, 50.0])

    def test_undefined_prefix_length(self, random_walk_candles):
        period = 14
        rsi = calculate_rsi(random_walk_candles["close"], period)

        assert len(rsi) == len(random_walk_candles)
        assert rsi.iloc[: period + 1].isna().all()
        assert not rsi.iloc[period + 1:].isna().any()

    def test_bounded(self, random_walk_candles):
        rsi = calculate_rsi(random_walk_candles["close"], 14).dropna()

        assert ((rsi >= 0) & (rsi <= 100)).all()

    def test_no_losses_uses_epsilon(self):
        rsi = calculate_rsi(np.arange(1, 31, dtype=float), 14)
        expected = 100 - 100 / (1 + 1.0 / RSI_EPSILON)

        assert rsi.dropna().tolist() == pytest.approx([expected] * len(rsi.dropna()))

    def test_period_longer_than_series(self):
        assert calculate_rsi([1, 2, 3], 14).isna().all()


class TestMACD:
    def test_components(self, random_walk_candles):
        result = calculate_macd(random_walk_candles["close"], 12, 26, 9)

        np.testing.assert_allclose(result.histogram, result.macd - result.signal)
        assert result.macd.iloc[0] == 0.0
        assert result.signal.iloc[0] == 0.0

    def test_constant_series_is_flat(self):
        result = calculate_macd([100.0] * 40)

        assert (result.macd == 0).all()
        assert (result.histogram == 0).all()


class TestVolatility:
    def test_bollinger_population_std(self):
        bands = calculate_bollinger_bands([1, 2, 3], period=3, std_dev=2)
        std = np.std([1, 2, 3])  # ddof=0

        assert bands.middle.iloc[:2].isna().all()
        assert bands.middle.iloc[2] == pytest.approx(2.0)
        assert bands.upper.iloc[2] == pytest.approx(2.0 + 2 * std)
        assert bands.lower.iloc[2] == pytest.approx(2.0 - 2 * std)

    def test_bollinger_constant_series_collapses(self):
        bands = calculate_bollinger_bands([5.0] * 25, period=20)

        defined = bands.middle.notna()
        assert (bands.upper[defined] == bands.middle[defined]).all()
        assert (bands.lower[defined] == bands.middle[defined]).all()

    def test_true_range(self):
        tr = calculate_true_range(high=[11, 13, 12], low=[9, 10, 8], close=[10, 12, 9])

        # bar1: max(3, |13-10|, |10-10|) = 3; bar2: max(4, |12-12|, |8-12|) = 4
        assert tr.tolist() == [3.0, 4.0]

    def test_atr_shifted_by_one(self):
        close = np.array([10.0, 11.0, 12.0, 13.0])
        atr = calculate_atr(close + 1, close - 1, close, period=2)

        assert atr.isna().tolist() == [True, True, False, False]
        assert atr.iloc[2:].tolist() == pytest.approx([2.0, 2.0])

    def test_atr_insufficient_data(self):
        close = np.array([10.0, 11.0, 12.0, 13.0])

        assert calculate_atr(close + 1, close - 1, close, period=4).isna().all()


class TestCalculator:
    """calculate_indicators dispatch and validation"""

    def test_names_and_alignment(self, random_walk_candles):
        specs = [
            {"type": "SMA", "period": 50},
            {"type": "ema", "period": 20},
            {"type": "RSI"},
            {"type": "MACD"},
            {"type": "Bollinger", "period": 20, "stdDev": 2},
            {"type": "ATR", "period": 14},
        ]
        result = calculate_indicators(random_walk_candles, specs)

        assert set(result) == {
            "SMA_50", "EMA_20", "RSI_14", "ATR_14",
            "MACD", "MACD_SIGNAL", "MACD_HIST",
            "BB_UPPER", "BB_MIDDLE", "BB_LOWER",
        }
        for series in result.values():
            assert len(series) == len(random_walk_candles)

    def test_default_period_applied(self):
        spec = IndicatorSpec(kind="RSI")

        assert spec.period == 14

    def test_insufficient_data_is_not_an_error(self, make_candles):
        result = calculate_indicators(make_candles([1, 2, 3]), [IndicatorSpec(kind="SMA", period=10)])

        assert result["SMA_10"].isna().all()

    @pytest.mark.parametrize(
        "spec",
        [
            {"type": "SMA", "period": 0},
            {"type": "RSI", "period": -1},
            {"type": "MACD", "fast": 0},
            {"type": "BOLLINGER", "period": 20, "std_dev": 0},
        ],
    )
    def test_non_positive_settings_raise(self, make_candles, spec):
        with pytest.raises(ConfigError):
            calculate_indicators(make_candles([1, 2, 3]), [spec])
