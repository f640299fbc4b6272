"""
Backtesting Models

Pydantic schemas for backtest/optimization requests plus the dataclass
records produced by the simulation (positions, trades, equity points, stats).
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Literal, Optional

import pandas as pd
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from backtester.core.exceptions import ConfigError
from backtester.settings import SETTINGS


class IndicatorKind(str, Enum):
    """Supported indicator families"""

    SMA = "SMA"
    EMA = "EMA"
    RSI = "RSI"
    MACD = "MACD"
    BOLLINGER = "BOLLINGER"
    ATR = "ATR"


class PositionSide(str, Enum):
    LONG = "Long"
    SHORT = "Short"


class ExitReason(str, Enum):
    STOP_LOSS = "StopLoss"
    TAKE_PROFIT = "TakeProfit"
    STRATEGY_EXIT = "StrategyExit"
    END_OF_DATA = "EndOfData"


# Default lookback per indicator kind when the request omits ``period``
DEFAULT_PERIODS = {
    IndicatorKind.SMA: 20,
    IndicatorKind.EMA: 20,
    IndicatorKind.RSI: 14,
    IndicatorKind.BOLLINGER: 20,
    IndicatorKind.ATR: 14,
}


# =============================================================================
# REQUEST / CONFIG SCHEMAS
# =============================================================================


class IndicatorSpec(BaseModel):
    """One indicator to compute for a run.

    ``period`` drives SMA/EMA/RSI/BOLLINGER/ATR; MACD uses ``fast``/``slow``/``signal``
    and Bollinger additionally uses ``std_dev``.
    """

    model_config = ConfigDict(use_enum_values=True, populate_by_name=True)

    kind: IndicatorKind = Field(..., validation_alias=AliasChoices("kind", "type"))
    period: Optional[int] = None
    fast: int = 12
    slow: int = 26
    signal: int = 9
    std_dev: float = Field(default=2.0, validation_alias=AliasChoices("std_dev", "stdDev", "std"))

    @field_validator("kind", mode="before")
    @classmethod
    def normalize_kind(cls, v: Any) -> Any:
        if isinstance(v, str):
            v = v.strip().upper()
            if v in ("BB", "BOLLINGER_BANDS"):
                return IndicatorKind.BOLLINGER.value
        return v

    @model_validator(mode="after")
    def apply_default_period(self):
        if self.period is None and self.kind != IndicatorKind.MACD:
            self.period = DEFAULT_PERIODS[IndicatorKind(self.kind)]
        return self


class StrategyConfig(BaseModel):
    """Entry/exit rules written in the condition language plus fixed stop/target levels"""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    long_entry: str = Field(..., description="Expression that opens a long position")
    short_entry: str = Field(..., description="Expression that opens a short position")
    exit_condition: Optional[str] = Field(default=None, description="Optional strategy exit expression")
    stop_loss_percent: float = Field(default=2.0, gt=0, description="Stop distance from entry (%)")
    take_profit_percent: float = Field(default=4.0, ge=0, description="Target distance from entry (%)")


class BacktestConfig(BaseModel):
    """Engine-level configuration for a single simulation run"""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    initial_capital: float = Field(default=10000.0, gt=0, description="Starting equity")
    risk_percent: float = Field(default=1.0, gt=0, le=100, description="Equity risked per trade (%)")
    strategy: StrategyConfig
    indicators: list[IndicatorSpec] = Field(default_factory=list)
    warmup_bars: int = Field(default_factory=lambda: SETTINGS.warmup_bars, ge=0)
    # Which level fills when a bar touches both the stop and the target
    tie_break: Literal["stop_loss", "take_profit"] = "stop_loss"


class BacktestRequest(BacktestConfig):
    """Full backtest invocation: market selection plus engine configuration"""

    symbol: str = Field(..., min_length=1, max_length=30)
    start_date: datetime
    end_date: datetime
    timeframe: str = Field(default="1h")

    @model_validator(mode="after")
    def validate_dates(self):
        if self.end_date <= self.start_date:
            raise ValueError("end_date must be after start_date")
        return self

    def to_backtest_config(self) -> BacktestConfig:
        return BacktestConfig.model_validate(
            self.model_dump(include=set(BacktestConfig.model_fields))
        )


class ParamRange(BaseModel):
    """Inclusive numeric range for one optimized parameter"""

    min: float
    max: float
    step: float

    def values(self, name: str = "") -> list[float]:
        """Enumerate ``min, min+step, ...`` up to and including ``max``."""
        if self.step <= 0:
            raise ConfigError("step must be positive", param_name=name, param_value=self.step)
        if self.max < self.min:
            raise ConfigError("max must be >= min", param_name=name, param_value=(self.min, self.max))
        # Tolerance keeps ``max`` in the grid despite float error in the division
        num_steps = int((self.max - self.min) / self.step + 1e-9) + 1
        values = []
        for i in range(num_steps):
            v = round(self.min + i * self.step, 10)
            values.append(int(v) if float(v).is_integer() else v)
        return values


class OptimizationRequest(BacktestRequest):
    """Backtest invocation plus the grid to search and the metric to rank by"""

    param_ranges: dict[str, ParamRange]
    metric: str = Field(default_factory=lambda: SETTINGS.default_metric)
    max_workers: int = Field(default_factory=lambda: SETTINGS.max_workers, ge=1)


# =============================================================================
# SIMULATION RECORDS
# =============================================================================


@dataclass(frozen=True)
class Candle:
    timestamp: Any
    open: float
    high: float
    low: float
    close: float
    volume: float = 0.0


@dataclass
class Position:
    """Open position. At most one exists during a simulation."""

    side: PositionSide
    entry_price: float
    entry_time: Any
    stop_loss: float
    take_profit: float
    quantity: float
    entry_bar_index: int = 0

    @property
    def is_long(self) -> bool:
        return self.side == PositionSide.LONG


@dataclass(frozen=True)
class Trade:
    """Closed trade."""

    side: PositionSide
    entry_price: float
    exit_price: float
    entry_time: Any
    exit_time: Any
    quantity: float
    pnl: float
    exit_reason: ExitReason
    bars_held: int = 0


@dataclass(frozen=True)
class EquityPoint:
    timestamp: Any
    equity: float


@dataclass(frozen=True)
class Stats:
    """Summary statistics derived from a trade list and equity curve.

    Percent fields (total_return, win_rate, max_drawdown) are in percent units.
    """

    initial_capital: float
    final_equity: float
    total_return: float
    total_trades: int
    winning_trades: int
    losing_trades: int
    win_rate: float
    avg_win: float
    avg_loss: float
    profit_factor: float
    max_drawdown: float
    largest_win: float
    largest_loss: float

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def metric_names(cls) -> list[str]:
        return list(cls.__dataclass_fields__)

    def get(self, metric: str) -> float:
        """Look up a metric by snake_case or camelCase name."""
        name = resolve_metric_name(metric)
        if name is None:
            raise ConfigError(f"Unknown metric '{metric}'", param_name="metric", param_value=metric)
        return getattr(self, name)


def resolve_metric_name(metric: str) -> Optional[str]:
    for name in Stats.metric_names():
        if metric in (name, to_camel(name)):
            return name
    return None


def _iso(value: Any) -> Any:
    if hasattr(value, "isoformat"):
        return value.isoformat()
    return value


@dataclass
class BacktestResult:
    trades: list[Trade]
    equity_curve: list[EquityPoint]
    stats: Stats
    indicators: dict[str, pd.Series] = field(default_factory=dict, repr=False, compare=False)

    def to_dict(self, include_indicators: bool = False) -> dict[str, Any]:
        """JSON-serializable representation."""
        result: dict[str, Any] = {
            "trades": [
                {
                    "side": t.side.value,
                    "entry_price": float(t.entry_price),
                    "exit_price": float(t.exit_price),
                    "entry_time": _iso(t.entry_time),
                    "exit_time": _iso(t.exit_time),
                    "quantity": float(t.quantity),
                    "pnl": float(t.pnl),
                    "exit_reason": t.exit_reason.value,
                    "bars_held": int(t.bars_held),
                }
                for t in self.trades
            ],
            "equity_curve": [
                {"timestamp": _iso(p.timestamp), "equity": float(p.equity)}
                for p in self.equity_curve
            ],
            "stats": self.stats.to_dict(),
        }
        if include_indicators:
            # NaN (warm-up) becomes None
            result["indicators"] = {
                name: [None if pd.isna(v) else float(v) for v in series]
                for name, series in self.indicators.items()
            }
        return result


@dataclass
class OptimizationEntry:
    """One grid point. ``stats``/``score`` are None when the run failed."""

    params: dict[str, Any]
    stats: Optional[Stats]
    score: Optional[float]
    rank: int = 0
    error: Optional[str] = None

    @property
    def valid(self) -> bool:
        return self.score is not None

    def to_dict(self) -> dict[str, Any]:
        """Nested representation for JSON."""
        return {
            "params": dict(self.params),
            "stats": self.stats.to_dict() if self.stats is not None else None,
            "score": self.score,
            "rank": self.rank,
            "error": self.error,
        }

    def to_row(self) -> dict[str, Any]:
        """Flat representation for CSV."""
        metrics = self.stats.to_dict() if self.stats is not None else {}
        return {
            **self.params,
            **{f"metric_{k}": v for k, v in metrics.items()},
            "score": self.score,
            "rank": self.rank,
            "error": self.error or "",
        }


# Ordered best-first
OptimizationResult = list[OptimizationEntry]
