"""
Tests for BacktestService and the data providers.
"""

from datetime import datetime

import pandas as pd
import pytest
from pydantic import ValidationError

from backtester.backtesting.data_provider import (
    CsvDataProvider,
    HistoricalDataProvider,
    InMemoryDataProvider,
)
from backtester.backtesting.service import BacktestService
from backtester.core.exceptions import ConfigError, DataError


class FailingProvider(HistoricalDataProvider):
    async def fetch_candles(self, symbol, start_date, end_date, timeframe):
        raise ConnectionError("exchange unavailable")


@pytest.fixture
def request_payload():
    return {
        "symbol": "BTCUSDT",
        "startDate": "2024-01-01T00:00:00",
        "endDate": "2024-12-31T00:00:00",
        "timeframe": "1h",
        "initialCapital": 10000,
        "riskPercent": 1,
        "strategy": {
            "longEntry": "close > SMA_50",
            "shortEntry": "false",
            "stopLossPercent": 2,
            "takeProfitPercent": 4,
        },
        "indicators": [{"type": "SMA", "period": 50}],
    }


class TestBacktestService:
    @pytest.mark.asyncio
    async def test_run_backtest(self, ramp_candles, request_payload):
        service = BacktestService(InMemoryDataProvider(ramp_candles))

        result = await service.run_backtest(request_payload)

        assert len(result.equity_curve) == 100
        assert result.trades[0].entry_price == 150.0
        assert result.stats.total_trades == len(result.trades)

    @pytest.mark.asyncio
    async def test_date_range_filters_candles(self, ramp_candles, request_payload):
        service = BacktestService(InMemoryDataProvider(ramp_candles))
        payload = {**request_payload, "endDate": "2024-01-01T09:00:00"}

        result = await service.run_backtest(payload)

        assert len(result.equity_curve) == 10
        assert result.trades == []

    @pytest.mark.asyncio
    async def test_empty_range_raises_data_error(self, ramp_candles, request_payload):
        service = BacktestService(InMemoryDataProvider(ramp_candles))
        payload = {**request_payload, "startDate": "2030-01-01T00:00:00", "endDate": "2030-02-01T00:00:00"}

        with pytest.raises(DataError):
            await service.run_backtest(payload)

    @pytest.mark.asyncio
    async def test_provider_failure_raises_data_error(self, request_payload):
        service = BacktestService(FailingProvider())

        with pytest.raises(DataError) as exc_info:
            await service.run_backtest(request_payload)
        assert isinstance(exc_info.value.original_error, ConnectionError)

    @pytest.mark.asyncio
    async def test_malformed_rule_raises_config_error(self, ramp_candles, request_payload):
        service = BacktestService(InMemoryDataProvider(ramp_candles))
        payload = {**request_payload, "strategy": {**request_payload["strategy"], "longEntry": "close >"}}

        with pytest.raises(ConfigError):
            await service.run_backtest(payload)

    @pytest.mark.asyncio
    async def test_run_optimization(self, ramp_candles, request_payload):
        service = BacktestService(InMemoryDataProvider(ramp_candles))
        payload = {
            **request_payload,
            "paramRanges": {"riskPercent": {"min": 1, "max": 3, "step": 1}},
            "metric": "totalReturn",
        }

        entries = await service.run_optimization(payload)

        assert len(entries) == 3
        assert all(e.params["riskPercent"] in {1, 2, 3} for e in entries)
        assert [e.score for e in entries] == sorted((e.score for e in entries), reverse=True)
        assert service.last_optimizer is not None

    def test_end_before_start_is_rejected(self, request_payload):
        from backtester.backtesting.models import BacktestRequest

        with pytest.raises(ValidationError):
            BacktestRequest.model_validate({**request_payload, "endDate": "2023-01-01T00:00:00"})


class TestDataProviders:
    @pytest.mark.asyncio
    async def test_in_memory_mapping_lookup(self, ramp_candles):
        provider = InMemoryDataProvider({"ETHUSDT_4h": ramp_candles})

        df = await provider.fetch_candles("ETHUSDT", datetime(2024, 1, 1), datetime(2024, 1, 2), "4h")
        assert len(df) == 25  # hourly bars 00:00 .. next day 00:00 inclusive

        with pytest.raises(DataError):
            await provider.fetch_candles("BTCUSDT", datetime(2024, 1, 1), datetime(2024, 1, 2), "4h")

    @pytest.mark.asyncio
    async def test_csv_provider(self, ramp_candles, tmp_path):
        ramp_candles.to_csv(tmp_path / "BTCUSDT_1h.csv", index=False)
        provider = CsvDataProvider(tmp_path)

        df = await provider.fetch_candles("BTCUSDT", datetime(2024, 1, 1), datetime(2024, 12, 31), "1h")

        assert len(df) == 100
        assert df["close"].iloc[-1] == 199
        assert pd.api.types.is_datetime64_any_dtype(df["timestamp"])

    @pytest.mark.asyncio
    async def test_csv_provider_missing_file(self, tmp_path):
        provider = CsvDataProvider(tmp_path)

        with pytest.raises(DataError):
            await provider.fetch_candles("BTCUSDT", datetime(2024, 1, 1), datetime(2024, 2, 1), "1h")

    @pytest.mark.asyncio
    async def test_csv_provider_missing_columns(self, tmp_path):
        pd.DataFrame({"timestamp": ["2024-01-01"], "close": [1.0]}).to_csv(tmp_path / "X_1h.csv", index=False)

        with pytest.raises(DataError):
            await CsvDataProvider(tmp_path).fetch_candles("X", datetime(2024, 1, 1), datetime(2024, 2, 1), "1h")
