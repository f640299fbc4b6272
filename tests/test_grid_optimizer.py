"""
Tests for GridOptimizer

Covers:
1. Parameter range enumeration and grid generation
2. Ranking (score descending, stable ties, failures last)
3. Failure recording
4. CSV export and summary
"""

import pandas as pd
import pytest

from backtester.backtesting.models import OptimizationEntry, ParamRange
from backtester.core.exceptions import ConfigError
from backtester.optimization import GridOptimizer, apply_params, rank_entries


class TestParamRange:
    def test_inclusive_integers(self):
        assert ParamRange(min=1, max=3, step=1).values() == [1, 2, 3]

    def test_float_steps_keep_max(self):
        assert ParamRange(min=0.1, max=0.3, step=0.1).values() == [0.1, 0.2, 0.3]
        assert ParamRange(min=0.5, max=1.5, step=0.5).values() == [0.5, 1, 1.5]

    def test_single_value(self):
        assert ParamRange(min=2, max=2, step=1).values() == [2]

    @pytest.mark.parametrize("bounds", [(1, 3, 0), (1, 3, -1), (3, 1, 1)])
    def test_invalid_range(self, bounds):
        lo, hi, step = bounds
        with pytest.raises(ConfigError):
            ParamRange(min=lo, max=hi, step=step).values("riskPercent")


class TestApplyParams:
    def test_config_and_strategy_fields(self, sma_trend_config):
        config = apply_params(sma_trend_config, {"riskPercent": 2, "stop_loss_percent": 1.5})

        assert config.risk_percent == 2
        assert config.strategy.stop_loss_percent == 1.5
        assert sma_trend_config.risk_percent == 1

    def test_unknown_param(self, sma_trend_config):
        with pytest.raises(ConfigError):
            apply_params(sma_trend_config, {"leverage": 3})


class TestGridOptimizer:
    def test_risk_percent_grid(self, ramp_candles, sma_trend_config):
        optimizer = GridOptimizer(
            ramp_candles,
            sma_trend_config,
            {"riskPercent": {"min": 1, "max": 3, "step": 1}},
        )
        entries = optimizer.optimize()

        assert len(entries) == 3
        assert {e.params["riskPercent"] for e in entries} == {1, 2, 3}
        scores = [e.score for e in entries]
        assert scores == sorted(scores, reverse=True)
        assert [e.rank for e in entries] == [1, 2, 3]
        # Every trade on the ramp is profitable, so more risk ranks higher
        assert entries[0].params["riskPercent"] == 3

    def test_grid_order(self, ramp_candles, sma_trend_config):
        optimizer = GridOptimizer(
            ramp_candles,
            sma_trend_config,
            {
                "stopLossPercent": {"min": 1, "max": 2, "step": 1},
                "takeProfitPercent": {"min": 3, "max": 4, "step": 1},
            },
        )
        grid = optimizer._generate_parameter_grid()

        assert grid == [
            {"stopLossPercent": 1, "takeProfitPercent": 3},
            {"stopLossPercent": 1, "takeProfitPercent": 4},
            {"stopLossPercent": 2, "takeProfitPercent": 3},
            {"stopLossPercent": 2, "takeProfitPercent": 4},
        ]

    def test_ties_keep_generation_order(self, ramp_candles, sma_trend_config):
        config = sma_trend_config.model_copy(
            update={"strategy": sma_trend_config.strategy.model_copy(update={"long_entry": "false"})}
        )
        entries = GridOptimizer(
            ramp_candles, config, {"riskPercent": {"min": 1, "max": 3, "step": 1}}
        ).optimize()

        assert [e.params["riskPercent"] for e in entries] == [1, 2, 3]
        assert all(e.score == 0 for e in entries)

    def test_failed_combination_is_recorded(self, ramp_candles, sma_trend_config):
        entries = GridOptimizer(
            ramp_candles, sma_trend_config, {"riskPercent": {"min": 0, "max": 1, "step": 1}}
        ).optimize()

        assert len(entries) == 2
        assert entries[0].params["riskPercent"] == 1
        assert entries[0].valid
        failed = entries[1]
        assert failed.params["riskPercent"] == 0
        assert failed.stats is None
        assert failed.score is None
        assert "Combination" in failed.error
        assert "riskPercent" in failed.error
        assert "ValidationError" in failed.error

    def test_unknown_parameter_fails_fast(self, ramp_candles, sma_trend_config):
        with pytest.raises(ConfigError):
            GridOptimizer(ramp_candles, sma_trend_config, {"leverage": {"min": 1, "max": 2, "step": 1}})

    def test_unknown_metric_fails_fast(self, ramp_candles, sma_trend_config):
        with pytest.raises(ConfigError):
            GridOptimizer(
                ramp_candles,
                sma_trend_config,
                {"riskPercent": {"min": 1, "max": 2, "step": 1}},
                metric="sharpe_ratio",
            )

    def test_camel_case_metric(self, ramp_candles, sma_trend_config):
        optimizer = GridOptimizer(
            ramp_candles,
            sma_trend_config,
            {"riskPercent": {"min": 1, "max": 2, "step": 1}},
            metric="winRate",
        )

        assert optimizer.metric == "win_rate"

    def test_parallel_matches_sequential(self, ramp_candles, sma_trend_config):
        ranges = {
            "riskPercent": {"min": 1, "max": 2, "step": 1},
            "takeProfitPercent": {"min": 2, "max": 4, "step": 1},
        }
        sequential = GridOptimizer(ramp_candles, sma_trend_config, ranges, max_workers=1).optimize()
        parallel = GridOptimizer(ramp_candles, sma_trend_config, ranges, max_workers=2).optimize()

        assert [e.params for e in parallel] == [e.params for e in sequential]
        assert [e.score for e in parallel] == pytest.approx([e.score for e in sequential])

    def test_export_and_summary(self, ramp_candles, sma_trend_config, tmp_path):
        optimizer = GridOptimizer(
            ramp_candles, sma_trend_config, {"riskPercent": {"min": 1, "max": 3, "step": 1}}
        )
        entries = optimizer.optimize()

        path = optimizer.export_results(entries, tmp_path / "results.csv", top_n=2)
        df = pd.read_csv(path)
        assert len(df) == 2
        assert list(df.columns[:2]) == ["riskPercent", "metric_initial_capital"]
        assert {"rank", "score", "metric_total_return"} <= set(df.columns)

        summary = optimizer.get_summary(entries)
        assert summary["total_combinations"] == 3
        assert summary["valid_results"] == 3
        assert summary["invalid_results"] == 0
        assert summary["best_parameters"] == {"riskPercent": 3}
        assert summary["best_score"] == entries[0].score


def test_rank_entries_puts_failures_last():
    entries = [
        OptimizationEntry(params={"a": 1}, stats=None, score=None, error="boom"),
        OptimizationEntry(params={"a": 2}, stats=None, score=1.0),
        OptimizationEntry(params={"a": 3}, stats=None, score=5.0),
        OptimizationEntry(params={"a": 4}, stats=None, score=1.0),
    ]

    ranked = rank_entries(entries)

    assert [e.params["a"] for e in ranked] == [3, 2, 4, 1]
    assert [e.rank for e in ranked] == [1, 2, 3, 4]
