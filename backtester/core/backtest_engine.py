"""Backtest Engine - bar-by-bar simulation of a rule-based strategy.

The loop is an explicit two-state machine threaded through the bars:

    Flat(equity)  --entry fires-->  InPosition(equity, position)
    InPosition    --SL/TP/exit-->   Flat(equity + pnl)

``step_bar`` performs one transition and can be exercised on its own; the
engine only feeds it candles, indicator values and compiled rules.
"""
from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Mapping, Optional, Sequence, Union

import numpy as np
import pandas as pd
from loguru import logger
from pydantic.alias_generators import to_camel

from backtester.backtesting.models import (
    BacktestConfig,
    BacktestResult,
    Candle,
    EquityPoint,
    ExitReason,
    Position,
    PositionSide,
    Trade,
)
from backtester.conditions import Condition, compile_condition
from backtester.core.exceptions import DataError
from backtester.core.metrics_calculator import calculate_stats
from backtester.indicators import calculate_indicators

CANDLE_FIELDS = ("open", "high", "low", "close", "volume")
POSITION_ATTRIBUTES = ("entry_price", "stop_loss", "take_profit", "quantity", "is_long", "bars_held")

# Exit rules may spell position fields in snake_case or camelCase
POSITION_FIELDS = tuple(
    f"position.{name}" for attr in POSITION_ATTRIBUTES for name in dict.fromkeys((attr, to_camel(attr)))
)

CandleData = Union[pd.DataFrame, Sequence[Union[Candle, Mapping[str, Any]]]]


@dataclass(frozen=True)
class Flat:
    equity: float


@dataclass(frozen=True)
class InPosition:
    equity: float
    position: Position


EngineState = Union[Flat, InPosition]


@dataclass(frozen=True)
class BarOutcome:
    """Result of one bar: the next state and the trade closed on it, if any."""
    state: EngineState
    trade: Optional[Trade] = None


@dataclass(frozen=True)
class CompiledStrategy:
    """Strategy rules parsed once, plus the sizing/exit parameters."""
    long_entry: Condition
    short_entry: Condition
    exit_condition: Condition
    stop_loss_percent: float
    take_profit_percent: float
    risk_percent: float
    tie_break: str = "stop_loss"

    @classmethod
    def from_config(cls, config: BacktestConfig) -> "CompiledStrategy":
        strategy = config.strategy
        return cls(
            long_entry=compile_condition(strategy.long_entry),
            short_entry=compile_condition(strategy.short_entry),
            exit_condition=compile_condition(strategy.exit_condition),
            stop_loss_percent=strategy.stop_loss_percent,
            take_profit_percent=strategy.take_profit_percent,
            risk_percent=config.risk_percent,
            tie_break=config.tie_break,
        )


# =============================================================================
# SINGLE-BAR TRANSITIONS
# =============================================================================


def build_context(
    candle: Mapping[str, Any],
    indicator_values: Mapping[str, float],
    position: Optional[Position] = None,
    bar_index: int = 0,
) -> dict[str, Any]:
    """Named values visible to conditions on one bar."""
    context: dict[str, Any] = {name: candle[name] for name in CANDLE_FIELDS if name in candle}
    context.update(indicator_values)
    if position is not None:
        values = {
            "entry_price": position.entry_price,
            "stop_loss": position.stop_loss,
            "take_profit": position.take_profit,
            "quantity": position.quantity,
            "is_long": 1.0 if position.is_long else 0.0,
            "bars_held": float(bar_index - position.entry_bar_index),
        }
        for attr, value in values.items():
            context[f"position.{attr}"] = value
            context[f"position.{to_camel(attr)}"] = value
    return context


def open_position(
    side: PositionSide,
    candle: Mapping[str, Any],
    bar_index: int,
    equity: float,
    strategy: CompiledStrategy,
) -> Optional[Position]:
    """Size a new position by risk. Returns None if the stop distance is zero."""
    entry_price = float(candle["close"])
    sl_frac = strategy.stop_loss_percent / 100.0
    tp_frac = strategy.take_profit_percent / 100.0

    if side == PositionSide.LONG:
        stop_loss = entry_price * (1 - sl_frac)
        take_profit = entry_price * (1 + tp_frac)
    else:
        stop_loss = entry_price * (1 + sl_frac)
        take_profit = entry_price * (1 - tp_frac)

    stop_distance = abs(entry_price - stop_loss)
    if stop_distance == 0:
        logger.debug(f"Bar {bar_index}: zero stop distance at price {entry_price}, entry skipped")
        return None

    risk_amount = equity * (strategy.risk_percent / 100.0)
    return Position(
        side=side,
        entry_price=entry_price,
        entry_time=candle["timestamp"],
        stop_loss=stop_loss,
        take_profit=take_profit,
        quantity=risk_amount / stop_distance,
        entry_bar_index=bar_index,
    )


def close_position(
    position: Position,
    exit_price: float,
    exit_time: Any,
    reason: ExitReason,
    bar_index: int,
) -> Trade:
    if position.is_long:
        pnl = (exit_price - position.entry_price) * position.quantity
    else:
        pnl = (position.entry_price - exit_price) * position.quantity
    return Trade(
        side=position.side,
        entry_price=position.entry_price,
        exit_price=exit_price,
        entry_time=position.entry_time,
        exit_time=exit_time,
        quantity=position.quantity,
        pnl=pnl,
        exit_reason=reason,
        bars_held=bar_index - position.entry_bar_index,
    )


def check_price_exit(
    position: Position,
    candle: Mapping[str, Any],
    tie_break: str = "stop_loss",
) -> Optional[tuple[float, ExitReason]]:
    """Intrabar stop-loss / take-profit check against the bar's high and low."""
    high = float(candle["high"])
    low = float(candle["low"])

    if position.is_long:
        sl_hit = low <= position.stop_loss
        tp_hit = high >= position.take_profit
    else:
        sl_hit = high >= position.stop_loss
        tp_hit = low <= position.take_profit

    if sl_hit and tp_hit:
        if tie_break == "take_profit":
            return position.take_profit, ExitReason.TAKE_PROFIT
        return position.stop_loss, ExitReason.STOP_LOSS
    if sl_hit:
        return position.stop_loss, ExitReason.STOP_LOSS
    if tp_hit:
        return position.take_profit, ExitReason.TAKE_PROFIT
    return None


def step_bar(
    state: EngineState,
    bar_index: int,
    candle: Mapping[str, Any],
    indicator_values: Mapping[str, float],
    strategy: CompiledStrategy,
) -> BarOutcome:
    """
    Advance the state machine by one bar.

    Flat: long entry is checked first and wins when both entries fire.
    InPosition: stop/target are checked before the strategy exit; no new
    entry is considered on the bar a position closes.
    """
    if isinstance(state, Flat):
        context = build_context(candle, indicator_values, bar_index=bar_index)
        if strategy.long_entry.check(context, bar_index):
            side = PositionSide.LONG
        elif strategy.short_entry.check(context, bar_index):
            side = PositionSide.SHORT
        else:
            return BarOutcome(state)

        position = open_position(side, candle, bar_index, state.equity, strategy)
        if position is None:
            return BarOutcome(state)
        logger.debug(
            f"Bar {bar_index}: open {side.value} @ {position.entry_price:.4f} "
            f"qty={position.quantity:.6f} SL={position.stop_loss:.4f} TP={position.take_profit:.4f}"
        )
        return BarOutcome(InPosition(state.equity, position))

    position = state.position
    exit_fill = check_price_exit(position, candle, strategy.tie_break)

    if exit_fill is None and not strategy.exit_condition.is_blank:
        context = build_context(candle, indicator_values, position, bar_index)
        if strategy.exit_condition.check(context, bar_index):
            exit_fill = (float(candle["close"]), ExitReason.STRATEGY_EXIT)

    if exit_fill is None:
        return BarOutcome(state)

    exit_price, reason = exit_fill
    trade = close_position(position, exit_price, candle["timestamp"], reason, bar_index)
    logger.debug(
        f"Bar {bar_index}: close {position.side.value} @ {exit_price:.4f} "
        f"({reason.value}) pnl={trade.pnl:.2f}"
    )
    return BarOutcome(Flat(state.equity + trade.pnl), trade)


# =============================================================================
# ENGINE
# =============================================================================


class BacktestEngine:
    """Runs a strategy over a candle snapshot and returns trades, equity and stats."""

    def run(self, candles: CandleData, config: Union[BacktestConfig, Mapping[str, Any]]) -> BacktestResult:
        """Run a backtest.

        Args:
            candles: DataFrame with [timestamp, open, high, low, close, volume]
                or a sequence of Candle objects / dicts with the same fields
            config: BacktestConfig (or a dict accepted by it)

        Returns:
            BacktestResult with one equity point per candle

        Raises:
            DataError: Empty or malformed candles
            ConfigError: Invalid indicator settings or malformed expressions
        """
        if not isinstance(config, BacktestConfig):
            config = BacktestConfig.model_validate(config)

        df = self.prepare_data(candles)
        indicators = calculate_indicators(df, config.indicators)
        strategy = CompiledStrategy.from_config(config)
        self._warn_unresolvable(strategy, indicators)

        arrays = {name: series.to_numpy(dtype=float) for name, series in indicators.items()}
        records = df.to_dict("records")
        last_index = len(records) - 1

        state: EngineState = Flat(float(config.initial_capital))
        trades: list[Trade] = []
        equity_curve: list[EquityPoint] = []

        for i, candle in enumerate(records):
            if i >= config.warmup_bars:
                outcome = step_bar(state, i, candle, self._values_at(arrays, i), strategy)
                state = outcome.state
                if outcome.trade is not None:
                    trades.append(outcome.trade)

            if i == last_index and isinstance(state, InPosition):
                trade = close_position(
                    state.position, float(candle["close"]), candle["timestamp"], ExitReason.END_OF_DATA, i
                )
                trades.append(trade)
                state = Flat(state.equity + trade.pnl)
                logger.debug(f"Bar {i}: position force-closed at end of data, pnl={trade.pnl:.2f}")

            equity_curve.append(EquityPoint(timestamp=candle["timestamp"], equity=state.equity))

        stats = calculate_stats(trades, equity_curve, config.initial_capital)
        logger.info(
            f"Backtest finished: {len(records)} bars, {len(trades)} trades, "
            f"return={stats.total_return:.2f}%"
        )
        return BacktestResult(trades=trades, equity_curve=equity_curve, stats=stats, indicators=indicators)

    @staticmethod
    def prepare_data(candles: CandleData) -> pd.DataFrame:
        """Normalize input into a fresh DataFrame; the caller's data is never touched."""
        if isinstance(candles, pd.DataFrame):
            df = candles.copy()
        else:
            rows = [asdict(c) if isinstance(c, Candle) else dict(c) for c in candles]
            df = pd.DataFrame(rows)

        if df.empty:
            raise DataError("No candle data to backtest")

        if "timestamp" not in df.columns:
            if isinstance(df.index, pd.DatetimeIndex):
                df = df.rename_axis("timestamp").reset_index()
            else:
                raise DataError("Candle data must contain a 'timestamp' column", field="timestamp")

        if "close" not in df.columns:
            raise DataError("Candle data must contain a 'close' column", field="close")

        # Missing OHLC columns fall back to close
        for col in ("open", "high", "low"):
            if col not in df.columns:
                df[col] = df["close"]
        if "volume" not in df.columns:
            df["volume"] = 0.0

        df = df.reset_index(drop=True)
        for col in CANDLE_FIELDS:
            try:
                df[col] = pd.to_numeric(df[col]).astype(float)
            except (TypeError, ValueError) as e:
                raise DataError(f"Column '{col}' is not numeric", field=col, original_error=e)

        bad = df[["open", "high", "low", "close"]].isna().any(axis=1)
        if bad.any():
            raise DataError("Candle has missing price values", field="close", bar_index=int(bad.idxmax()))

        if pd.api.types.is_string_dtype(df["timestamp"]):
            try:
                df["timestamp"] = pd.to_datetime(df["timestamp"])
            except (TypeError, ValueError) as e:
                raise DataError("Candle timestamps cannot be parsed", field="timestamp", original_error=e)

        ts = df["timestamp"]
        try:
            ordered = ts.is_monotonic_increasing
        except TypeError as e:
            raise DataError("Candle timestamps are not comparable", field="timestamp", original_error=e)
        if not ordered:
            diffs = [i for i in range(1, len(ts)) if ts.iloc[i] < ts.iloc[i - 1]]
            raise DataError(
                "Candle timestamps must be in ascending order",
                field="timestamp",
                bar_index=diffs[0] if diffs else None,
            )

        return df[["timestamp", *CANDLE_FIELDS]]

    @staticmethod
    def _values_at(arrays: Mapping[str, np.ndarray], i: int) -> dict[str, float]:
        """Indicator values at bar ``i``; undefined values are left out."""
        return {name: float(arr[i]) for name, arr in arrays.items() if not np.isnan(arr[i])}

    @staticmethod
    def _warn_unresolvable(strategy: CompiledStrategy, indicators: Mapping[str, pd.Series]) -> None:
        entry_names = set(CANDLE_FIELDS) | set(indicators)
        exit_names = entry_names | set(POSITION_FIELDS)
        checks = (
            ("long_entry", strategy.long_entry, entry_names),
            ("short_entry", strategy.short_entry, entry_names),
            ("exit_condition", strategy.exit_condition, exit_names),
        )
        for rule_name, condition, known in checks:
            unknown = sorted(condition.identifiers - known)
            if unknown:
                logger.warning(
                    f"{rule_name} references {unknown}, which no indicator provides; "
                    f"those names are undefined on every bar"
                )


def run_backtest(candles: CandleData, config: Union[BacktestConfig, Mapping[str, Any]]) -> BacktestResult:
    """Convenience wrapper around ``BacktestEngine().run``."""
    return BacktestEngine().run(candles, config)
