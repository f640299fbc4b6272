"""
Command line interface.

    journal-backtester backtest --config strategy.json --data-dir ./data
    journal-backtester optimize --config grid.json --data-dir ./data --output results.csv

The config file holds a backtest (or optimization) request in JSON; candles
are read from ``<data-dir>/<symbol>_<timeframe>.csv``.
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Any, Optional, Sequence

from loguru import logger
from pydantic import ValidationError

from backtester.backtesting.data_provider import CsvDataProvider
from backtester.backtesting.models import BacktestRequest, OptimizationRequest
from backtester.backtesting.service import BacktestService
from backtester.core.exceptions import BacktestError
from backtester.core.logging_config import setup_logging
from backtester.settings import SETTINGS


def _load_config(path: str) -> dict[str, Any]:
    with open(path, encoding="utf-8") as f:
        return json.load(f)


def _write_json(data: Any, output: Optional[str]) -> None:
    text = json.dumps(data, indent=2, default=str)
    if output:
        Path(output).write_text(text, encoding="utf-8")
        logger.info(f"Results written to {output}")
    else:
        print(text)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="journal-backtester",
        description="Backtest and optimize rule-based trading strategies",
    )
    parser.add_argument("--log-level", default=SETTINGS.log_level, help="DEBUG, INFO, WARNING, ...")
    parser.add_argument("--log-file", default=SETTINGS.log_file, help="Optional log file path")
    parser.add_argument("--log-json", action="store_true", default=SETTINGS.log_json, help="JSON log lines")

    sub = parser.add_subparsers(dest="command", required=True)
    for name, help_text in (("backtest", "Run a single backtest"), ("optimize", "Grid-search parameters")):
        cmd = sub.add_parser(name, help=help_text)
        cmd.add_argument("--config", required=True, help="Request JSON file")
        cmd.add_argument("--data-dir", required=True, help="Directory with <symbol>_<timeframe>.csv files")
        cmd.add_argument("--output", help="Output file (.json; .csv also accepted for optimize)")

    opt = sub.choices["optimize"]
    opt.add_argument("--top-n", type=int, default=None, help="Keep only the best N results")
    opt.add_argument("--workers", type=int, default=None, help="Worker processes")
    return parser


async def _run_backtest(service: BacktestService, config: dict[str, Any], output: Optional[str]) -> None:
    result = await service.run_backtest(BacktestRequest.model_validate(config))
    _write_json(result.to_dict(), output)


async def _run_optimize(service: BacktestService, config: dict[str, Any], args: argparse.Namespace) -> None:
    if args.workers:
        config = {**config, "max_workers": args.workers}
    entries = await service.run_optimization(OptimizationRequest.model_validate(config))
    optimizer = service.last_optimizer

    if args.output and args.output.lower().endswith(".csv"):
        optimizer.export_results(entries, args.output, top_n=args.top_n)
        return

    selected = entries[: args.top_n] if args.top_n else entries
    _write_json(
        {
            "summary": optimizer.get_summary(entries),
            "results": [e.to_dict() for e in selected],
        },
        args.output,
    )


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(args.log_level, args.log_file, args.log_json)

    try:
        config = _load_config(args.config)
    except (OSError, json.JSONDecodeError) as e:
        logger.error(f"Cannot read config {args.config}: {e}")
        return 2

    service = BacktestService(CsvDataProvider(args.data_dir))
    try:
        if args.command == "backtest":
            asyncio.run(_run_backtest(service, config, args.output))
        else:
            asyncio.run(_run_optimize(service, config, args))
    except ValidationError as e:
        logger.error(f"Invalid request: {e}")
        return 2
    except BacktestError as e:
        logger.error(f"{type(e).__name__}: {e}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
