"""
Parameter optimization (grid search).
"""

from backtester.optimization.grid_optimizer import GridOptimizer, rank_entries
from backtester.optimization.scoring import calculate_score, resolve_metric
from backtester.optimization.workers import apply_params, run_combination

__all__ = [
    "GridOptimizer",
    "apply_params",
    "calculate_score",
    "rank_entries",
    "resolve_metric",
    "run_combination",
]
