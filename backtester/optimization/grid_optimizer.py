"""
Grid Optimizer - exhaustive parameter search over a backtest config.

Algorithm:
1. Build every combination of the parameter ranges (Cartesian product,
   first range varies slowest)
2. Merge each combination over the base config and run the BacktestEngine
3. Score by the selected Stats metric and rank, best first
4. Optionally export the top-N results to CSV
"""

import itertools
import math
from concurrent.futures import ProcessPoolExecutor, as_completed
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

import numpy as np
import pandas as pd
from loguru import logger
from tqdm import tqdm

from backtester.backtesting.models import BacktestConfig, OptimizationEntry, ParamRange
from backtester.conditions import compile_condition
from backtester.core.backtest_engine import BacktestEngine, CandleData
from backtester.indicators.calculator import validate_spec
from backtester.optimization.scoring import resolve_metric
from backtester.optimization.workers import resolve_param_target, run_batch, run_combination
from backtester.settings import SETTINGS
from backtester.utils.time import utc_now


def rank_entries(entries: List[OptimizationEntry]) -> List[OptimizationEntry]:
    """
    Sort best-first and assign ranks.

    Scored entries come first by descending score; failed entries follow.
    The sort is stable, so ties keep generation order.
    """
    ranked = sorted(entries, key=lambda e: (0, -e.score) if e.score is not None else (1, 0.0))
    for i, entry in enumerate(ranked, start=1):
        entry.rank = i
    return ranked


class GridOptimizer:
    """
    Grid search over BacktestConfig / StrategyConfig fields.

    Usage:
    ```python
    optimizer = GridOptimizer(
        candles=ohlcv_df,
        base_config=config,
        param_ranges={"riskPercent": {"min": 1, "max": 3, "step": 1}},
        metric="total_return",
    )
    entries = optimizer.optimize()
    optimizer.export_results(entries, "optimization_results.csv")
    ```
    """

    def __init__(
        self,
        candles: CandleData,
        base_config: Union[BacktestConfig, Mapping[str, Any]],
        param_ranges: Mapping[str, Union[ParamRange, Mapping[str, float]]],
        metric: Optional[str] = None,
        max_workers: Optional[int] = None,
        show_progress: Optional[bool] = None,
    ):
        if not isinstance(base_config, BacktestConfig):
            base_config = BacktestConfig.model_validate(base_config)

        self.data = BacktestEngine.prepare_data(candles)
        self.base_config = base_config
        self.param_ranges: Dict[str, ParamRange] = {
            name: r if isinstance(r, ParamRange) else ParamRange.model_validate(r)
            for name, r in param_ranges.items()
        }
        self.metric = resolve_metric(metric or SETTINGS.default_metric)
        self.max_workers = max_workers or SETTINGS.max_workers
        self.show_progress = SETTINGS.show_progress if show_progress is None else show_progress

        self._validate()

        # Statistics
        self.total_combinations = 0
        self.valid_results = 0
        self.invalid_results = 0
        self.start_time: Optional[datetime] = None
        self.end_time: Optional[datetime] = None

    def _validate(self) -> None:
        """Fail fast on settings that would break every combination."""
        for name in self.param_ranges:
            resolve_param_target(name)
        for spec in self.base_config.indicators:
            validate_spec(spec)
        strategy = self.base_config.strategy
        for text in (strategy.long_entry, strategy.short_entry, strategy.exit_condition):
            compile_condition(text)

    def _generate_parameter_grid(self) -> List[Dict[str, Any]]:
        """All combinations of parameter values (Cartesian product)."""
        param_names = list(self.param_ranges)
        param_values = [r.values(name) for name, r in self.param_ranges.items()]

        grid = [dict(zip(param_names, combo)) for combo in itertools.product(*param_values)]

        self.total_combinations = len(grid)
        logger.info(f"Generated {self.total_combinations} parameter combinations")
        return grid

    def _run_sequential(self, grid: List[Dict[str, Any]]) -> List[OptimizationEntry]:
        engine = BacktestEngine()
        return [
            run_combination(self.data, self.base_config, params, self.metric, engine)
            for params in tqdm(grid, desc="Optimization", disable=not self.show_progress)
        ]

    def _run_parallel(self, grid: List[Dict[str, Any]]) -> List[OptimizationEntry]:
        indexed = list(enumerate(grid))
        batch_size = max(1, math.ceil(len(indexed) / (self.max_workers * 4)))
        batches = [indexed[i:i + batch_size] for i in range(0, len(indexed), batch_size)]

        candles_records = self.data.to_dict("records")
        base_config = self.base_config.model_dump()
        collected: Dict[int, OptimizationEntry] = {}

        with ProcessPoolExecutor(max_workers=self.max_workers) as executor:
            futures = [
                executor.submit(run_batch, batch, candles_records, base_config, self.metric)
                for batch in batches
            ]
            with tqdm(total=len(grid), desc="Optimization", disable=not self.show_progress) as pbar:
                for future in as_completed(futures):
                    batch_result = future.result()
                    for index, entry in batch_result:
                        collected[index] = entry
                    pbar.update(len(batch_result))

        # Restore generation order so ranking matches the sequential run
        return [collected[i] for i in range(len(grid))]

    def optimize(self) -> List[OptimizationEntry]:
        """
        Run the grid search.

        Returns:
            Entries sorted best-first with ranks assigned
        """
        self.start_time = utc_now()
        grid = self._generate_parameter_grid()

        if self.max_workers > 1 and len(grid) > 1:
            logger.info(f"Running {len(grid)} backtests in parallel (workers={self.max_workers})")
            entries = self._run_parallel(grid)
        else:
            logger.info(f"Running {len(grid)} backtests sequentially")
            entries = self._run_sequential(grid)

        self.valid_results = sum(1 for e in entries if e.valid)
        self.invalid_results = len(entries) - self.valid_results
        results = rank_entries(entries)

        self.end_time = utc_now()
        duration = (self.end_time - self.start_time).total_seconds()
        logger.info(f"Optimization completed in {duration:.1f}s")
        logger.info(f"Valid results: {self.valid_results}/{self.total_combinations}")
        if self.invalid_results:
            logger.warning(f"Failed combinations: {self.invalid_results}/{self.total_combinations}")

        if results and results[0].valid:
            best = results[0]
            logger.info(f"Best result: {self.metric}={best.score:.4f}, Params={best.params}")

        return results

    def export_results(
        self,
        results: List[OptimizationEntry],
        filepath: Optional[Union[str, Path]] = None,
        top_n: Optional[int] = None,
    ) -> Optional[str]:
        """
        Export scored results to CSV.

        Args:
            results: Ranked entries from ``optimize``
            filepath: Target path (default: timestamped name in the cwd)
            top_n: Keep only the best N entries

        Returns:
            Path of the written file, or None when nothing was scored
        """
        if filepath is None:
            filepath = f"optimization_results_{utc_now():%Y%m%d_%H%M%S}.csv"

        valid = [r for r in results if r.valid]
        if top_n is not None:
            valid = valid[:top_n]

        if not valid:
            logger.warning("No valid results to export")
            return None

        df = pd.DataFrame([r.to_row() for r in valid])

        param_cols = list(self.param_ranges)
        metric_cols = [c for c in df.columns if c.startswith("metric_")]
        col_order = param_cols + metric_cols + ["rank", "score", "error"]
        df = df[[c for c in col_order if c in df.columns]]

        df.to_csv(filepath, index=False, float_format="%.4f")
        logger.info(f"Exported {len(df)} results to {filepath}")
        return str(filepath)

    def get_summary(self, results: List[OptimizationEntry]) -> Dict[str, Any]:
        """Summary statistics of an optimization run."""
        duration = (self.end_time - self.start_time).total_seconds() if self.end_time else 0
        valid = [r for r in results if r.valid]

        if not valid:
            return {
                "total_combinations": self.total_combinations,
                "valid_results": 0,
                "invalid_results": self.invalid_results,
                "duration_seconds": duration,
                "metric": self.metric,
                "best_score": None,
            }

        scores = [r.score for r in valid]
        return {
            "total_combinations": self.total_combinations,
            "valid_results": self.valid_results,
            "invalid_results": self.invalid_results,
            "duration_seconds": duration,
            "metric": self.metric,
            "best_score": valid[0].score,
            "worst_score": valid[-1].score,
            "mean_score": float(np.mean(scores)),
            "std_score": float(np.std(scores)),
            "best_parameters": valid[0].params,
        }
