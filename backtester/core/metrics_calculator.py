"""
Metrics Calculator - summary statistics for a finished backtest.

Everything is recomputed from the trade list and the equity curve on each
call, so the numbers can never drift from the arrays they describe.

Example:
    stats = calculate_stats(result.trades, result.equity_curve, 10000.0)
    print(f"Win rate: {stats.win_rate:.1f}%  Max DD: {stats.max_drawdown:.2f}%")
"""

from typing import Sequence

import numpy as np
from loguru import logger

from backtester.backtesting.models import EquityPoint, Stats, Trade


def calculate_max_drawdown(equity_curve: Sequence[EquityPoint], initial_capital: float) -> float:
    """
    Largest peak-to-trough decline in percent.

    The running peak starts at ``initial_capital``.
    """
    if not equity_curve:
        return 0.0

    equity = np.array([p.equity for p in equity_curve], dtype=float)
    peaks = np.maximum.accumulate(np.maximum(equity, initial_capital))
    with np.errstate(divide="ignore", invalid="ignore"):
        drawdowns = np.where(peaks > 0, (peaks - equity) / peaks * 100.0, 0.0)
    return max(float(drawdowns.max()), 0.0)


def calculate_stats(
    trades: Sequence[Trade],
    equity_curve: Sequence[EquityPoint],
    initial_capital: float,
) -> Stats:
    """
    Derive Stats from a trade list and equity curve.

    Args:
        trades: Closed trades in chronological order
        equity_curve: One point per bar
        initial_capital: Starting equity

    Returns:
        Stats with percentages expressed in percent units. Ratios whose
        denominator is zero are reported as 0.
    """
    wins = [t.pnl for t in trades if t.pnl > 0]
    losses = [t.pnl for t in trades if t.pnl < 0]
    total_trades = len(trades)

    if equity_curve:
        final_equity = float(equity_curve[-1].equity)
    else:
        final_equity = initial_capital + sum(t.pnl for t in trades)

    total_return = (final_equity - initial_capital) / initial_capital * 100.0 if initial_capital else 0.0
    win_rate = len(wins) / total_trades * 100.0 if total_trades else 0.0
    avg_win = sum(wins) / len(wins) if wins else 0.0
    avg_loss = abs(sum(losses) / len(losses)) if losses else 0.0

    # Equivalent to gross profit / |gross loss|
    denominator = avg_loss * len(losses)
    profit_factor = (avg_win * len(wins)) / denominator if denominator > 0 else 0.0

    stats = Stats(
        initial_capital=float(initial_capital),
        final_equity=final_equity,
        total_return=total_return,
        total_trades=total_trades,
        winning_trades=len(wins),
        losing_trades=len(losses),
        win_rate=win_rate,
        avg_win=avg_win,
        avg_loss=avg_loss,
        profit_factor=profit_factor,
        max_drawdown=calculate_max_drawdown(equity_curve, initial_capital),
        largest_win=max(wins) if wins else 0.0,
        largest_loss=min(losses) if losses else 0.0,
    )

    logger.debug(
        f"Stats: trades={total_trades}, return={total_return:.2f}%, "
        f"win_rate={win_rate:.1f}%, max_dd={stats.max_drawdown:.2f}%"
    )
    return stats
