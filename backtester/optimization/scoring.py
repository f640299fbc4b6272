"""
Optimization Scoring Functions.

The score of a grid point is the selected Stats metric, unchanged: higher
ranks first for every metric, including ``max_drawdown`` and ``avg_loss``.
"""

from __future__ import annotations

from backtester.backtesting.models import Stats, resolve_metric_name
from backtester.core.exceptions import ConfigError


def resolve_metric(metric: str) -> str:
    """
    Map a metric name (snake_case or camelCase) to its Stats field.

    Raises:
        ConfigError: If no Stats field has that name
    """
    name = resolve_metric_name(metric)
    if name is None:
        raise ConfigError(
            f"Unknown metric '{metric}'. Available: {', '.join(Stats.metric_names())}",
            param_name="metric",
            param_value=metric,
        )
    return name


def calculate_score(stats: Stats, metric: str) -> float:
    return float(stats.get(metric))
