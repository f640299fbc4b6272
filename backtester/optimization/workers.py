"""
Optimization Workers.

Per-combination evaluation plus a batch entry point for ProcessPoolExecutor.
Everything passed to ``run_batch`` is plain data so it pickles cheaply.
"""

from __future__ import annotations

from typing import Any, Mapping, Union

import pandas as pd
from loguru import logger
from pydantic.alias_generators import to_camel

from backtester.backtesting.models import BacktestConfig, OptimizationEntry, StrategyConfig
from backtester.core.backtest_engine import BacktestEngine
from backtester.core.exceptions import ConfigError, OptimizationCombinationFailure
from backtester.optimization.scoring import calculate_score


def resolve_param_target(name: str) -> tuple[str, str]:
    """
    Find which config field an optimized parameter overrides.

    Returns:
        ("config", field) for BacktestConfig fields or ("strategy", field)
        for StrategyConfig fields

    Raises:
        ConfigError: If the name matches neither
    """
    for field_name in BacktestConfig.model_fields:
        if field_name != "strategy" and name in (field_name, to_camel(field_name)):
            return "config", field_name
    for field_name in StrategyConfig.model_fields:
        if name in (field_name, to_camel(field_name)):
            return "strategy", field_name
    raise ConfigError(f"Unknown optimization parameter '{name}'", param_name=name)


def apply_params(base_config: BacktestConfig, params: Mapping[str, Any]) -> BacktestConfig:
    """Merge one grid point over the base config and re-validate the result."""
    data = base_config.model_dump()
    for name, value in params.items():
        target, field_name = resolve_param_target(name)
        if target == "strategy":
            data["strategy"][field_name] = value
        else:
            data[field_name] = value
    return BacktestConfig.model_validate(data)


def run_combination(
    candles: pd.DataFrame,
    base_config: BacktestConfig,
    params: dict[str, Any],
    metric: str,
    engine: Union[BacktestEngine, None] = None,
) -> OptimizationEntry:
    """Backtest one grid point. Failures are recorded on the entry, never raised."""
    engine = engine or BacktestEngine()
    try:
        config = apply_params(base_config, params)
        result = engine.run(candles, config)
        score = calculate_score(result.stats, metric)
        return OptimizationEntry(params=dict(params), stats=result.stats, score=score)
    except Exception as e:
        failure = OptimizationCombinationFailure(params, e)
        logger.warning(str(failure))
        return OptimizationEntry(params=dict(params), stats=None, score=None, error=str(failure))


def run_batch(
    batch: list[tuple[int, dict[str, Any]]],
    candles_records: list[dict],
    base_config: dict[str, Any],
    metric: str,
) -> list[tuple[int, OptimizationEntry]]:
    """
    Run a batch of combinations in a subprocess.

    Args:
        batch: (generation index, params) pairs
        candles_records: Candle snapshot as list of dicts
        base_config: BacktestConfig dump
        metric: Metric to score by

    Returns:
        (generation index, entry) pairs so the caller can restore order
    """
    candles = BacktestEngine.prepare_data(candles_records)
    config = BacktestConfig.model_validate(base_config)
    engine = BacktestEngine()
    return [(index, run_combination(candles, config, params, metric, engine)) for index, params in batch]
