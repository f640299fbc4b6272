"""
Core: exceptions, logging, simulation engine and statistics.
"""

from backtester.core.exceptions import (
    BacktestError,
    ConfigError,
    DataError,
    EvaluationFault,
    OptimizationCombinationFailure,
)
from backtester.core.logging_config import setup_logging

__all__ = [
    "BacktestError",
    "ConfigError",
    "DataError",
    "EvaluationFault",
    "OptimizationCombinationFailure",
    "setup_logging",
]
