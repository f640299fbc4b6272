"""
Historical Data Providers

A provider returns an ordered OHLCV DataFrame for
``(symbol, start_date, end_date, timeframe)``. Fetching is the only async
step of a run; the engine works on the returned snapshot.
"""

import asyncio
from abc import ABC, abstractmethod
from datetime import datetime
from pathlib import Path
from typing import Mapping, Union

import pandas as pd
from loguru import logger

from backtester.core.exceptions import DataError
from backtester.utils.time import to_utc_timestamp

REQUIRED_COLUMNS = ("timestamp", "open", "high", "low", "close")


def slice_date_range(df: pd.DataFrame, start_date: datetime, end_date: datetime) -> pd.DataFrame:
    """Rows with ``start_date <= timestamp <= end_date``, sorted by timestamp."""
    if df.empty:
        return df.copy()
    timestamps = pd.to_datetime(df["timestamp"], utc=True)
    mask = (timestamps >= to_utc_timestamp(start_date)) & (timestamps <= to_utc_timestamp(end_date))
    out = df.loc[mask].copy()
    out["timestamp"] = timestamps[mask]
    return out.sort_values("timestamp", kind="stable").reset_index(drop=True)


class HistoricalDataProvider(ABC):
    """Source of historical candles."""

    @abstractmethod
    async def fetch_candles(
        self,
        symbol: str,
        start_date: datetime,
        end_date: datetime,
        timeframe: str,
    ) -> pd.DataFrame:
        """Return candles with columns timestamp, open, high, low, close, volume."""


class InMemoryDataProvider(HistoricalDataProvider):
    """
    Serves candles held in memory.

    ``candles`` is either one DataFrame used for every symbol, or a mapping
    keyed by ``symbol`` or ``"<symbol>_<timeframe>"``.
    """

    def __init__(self, candles: Union[pd.DataFrame, Mapping[str, pd.DataFrame]]):
        self._candles = candles

    def _lookup(self, symbol: str, timeframe: str) -> pd.DataFrame:
        if isinstance(self._candles, pd.DataFrame):
            return self._candles
        for key in (f"{symbol}_{timeframe}", symbol):
            if key in self._candles:
                return self._candles[key]
        raise DataError(f"No candles loaded for {symbol} {timeframe}", symbol=symbol)

    async def fetch_candles(
        self,
        symbol: str,
        start_date: datetime,
        end_date: datetime,
        timeframe: str,
    ) -> pd.DataFrame:
        return slice_date_range(self._lookup(symbol, timeframe), start_date, end_date)


class CsvDataProvider(HistoricalDataProvider):
    """Reads ``<data_dir>/<symbol>_<timeframe>.csv``."""

    def __init__(self, data_dir: Union[str, Path]):
        self.data_dir = Path(data_dir)

    def path_for(self, symbol: str, timeframe: str) -> Path:
        return self.data_dir / f"{symbol}_{timeframe}.csv"

    def _read(self, path: Path, symbol: str) -> pd.DataFrame:
        if not path.exists():
            raise DataError(f"Candle file not found: {path}", symbol=symbol)
        df = pd.read_csv(path)
        missing = [c for c in REQUIRED_COLUMNS if c not in df.columns]
        if missing:
            raise DataError(f"Candle file {path} is missing columns {missing}", symbol=symbol, field=missing[0])
        if "volume" not in df.columns:
            df["volume"] = 0.0
        return df

    async def fetch_candles(
        self,
        symbol: str,
        start_date: datetime,
        end_date: datetime,
        timeframe: str,
    ) -> pd.DataFrame:
        path = self.path_for(symbol, timeframe)
        logger.debug(f"Loading candles from {path}")
        df = await asyncio.to_thread(self._read, path, symbol)
        return slice_date_range(df, start_date, end_date)
