"""
Backtest Service

Entry points for running a backtest or an optimization from a request:
fetch candles from a HistoricalDataProvider, then hand the snapshot to the
engine / optimizer.
"""

import time
from typing import Any, Mapping, Optional, Union

import pandas as pd
from loguru import logger

from backtester.backtesting.data_provider import HistoricalDataProvider
from backtester.backtesting.models import (
    BacktestRequest,
    BacktestResult,
    OptimizationEntry,
    OptimizationRequest,
)
from backtester.core.backtest_engine import BacktestEngine
from backtester.core.exceptions import BacktestError, DataError
from backtester.optimization.grid_optimizer import GridOptimizer
from backtester.utils.time import utc_now


class BacktestService:
    """
    Service layer for backtesting.

    Handles:
    - Fetching historical data from the configured provider
    - Running backtests via BacktestEngine
    - Running grid searches via GridOptimizer
    """

    def __init__(self, provider: HistoricalDataProvider, engine: Optional[BacktestEngine] = None):
        self.provider = provider
        self.engine = engine or BacktestEngine()
        self.last_optimizer: Optional[GridOptimizer] = None

    async def run_backtest(self, request: Union[BacktestRequest, Mapping[str, Any]]) -> BacktestResult:
        """
        Run a complete backtest.

        1. Fetch historical OHLCV data
        2. Run the strategy on it
        3. Return trades, equity curve and stats

        Raises:
            DataError: Provider failure or no candles in range
            ConfigError: Invalid indicators or expressions
        """
        if not isinstance(request, BacktestRequest):
            request = BacktestRequest.model_validate(request)

        logger.info(
            f"BacktestService: Starting backtest for {request.symbol} "
            f"{request.timeframe} from {request.start_date} to {request.end_date}"
        )
        started_at = time.perf_counter()

        candles = await self._fetch_candles(request)
        result = self.engine.run(candles, request.to_backtest_config())

        logger.info(
            f"BacktestService: {request.symbol} done in {time.perf_counter() - started_at:.2f}s "
            f"({result.stats.total_trades} trades, return={result.stats.total_return:.2f}%)"
        )
        return result

    async def run_optimization(
        self, request: Union[OptimizationRequest, Mapping[str, Any]]
    ) -> list[OptimizationEntry]:
        """
        Grid-search ``param_ranges`` over one candle snapshot.

        Returns:
            Entries sorted by score, best first
        """
        if not isinstance(request, OptimizationRequest):
            request = OptimizationRequest.model_validate(request)

        logger.info(
            f"BacktestService: Starting optimization for {request.symbol} {request.timeframe}, "
            f"params={list(request.param_ranges)}, metric={request.metric}"
        )

        # Fetched once; every combination runs on this snapshot
        candles = await self._fetch_candles(request)

        optimizer = GridOptimizer(
            candles=candles,
            base_config=request.to_backtest_config(),
            param_ranges=request.param_ranges,
            metric=request.metric,
            max_workers=request.max_workers,
        )
        self.last_optimizer = optimizer
        return optimizer.optimize()

    async def _fetch_candles(self, request: BacktestRequest) -> pd.DataFrame:
        """Fetch candles, turning provider failures and empty results into DataError."""
        try:
            candles = await self.provider.fetch_candles(
                symbol=request.symbol,
                start_date=request.start_date,
                end_date=request.end_date,
                timeframe=request.timeframe,
            )
        except BacktestError:
            raise
        except Exception as e:
            logger.error(f"Data provider failed for {request.symbol}: {e}")
            raise DataError(
                f"Failed to fetch candles for {request.symbol} {request.timeframe}",
                symbol=request.symbol,
                original_error=e,
            ) from e

        if candles is None or len(candles) == 0:
            raise DataError(
                f"No data available for {request.symbol} {request.timeframe} "
                f"between {request.start_date} and {request.end_date}",
                symbol=request.symbol,
            )

        logger.info(f"Fetched {len(candles)} candles at {utc_now().isoformat()}")
        return candles
