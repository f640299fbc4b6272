"""
Backtesting models, data providers and the service layer.

Only the models are re-exported here; import the service from
``backtester.backtesting.service``.
"""

from backtester.backtesting.models import (
    BacktestConfig,
    BacktestRequest,
    BacktestResult,
    Candle,
    EquityPoint,
    ExitReason,
    IndicatorKind,
    IndicatorSpec,
    OptimizationEntry,
    OptimizationRequest,
    ParamRange,
    Position,
    PositionSide,
    Stats,
    StrategyConfig,
    Trade,
)

__all__ = [
    "BacktestConfig",
    "BacktestRequest",
    "BacktestResult",
    "Candle",
    "EquityPoint",
    "ExitReason",
    "IndicatorKind",
    "IndicatorSpec",
    "OptimizationEntry",
    "OptimizationRequest",
    "ParamRange",
    "Position",
    "PositionSide",
    "Stats",
    "StrategyConfig",
    "Trade",
]
