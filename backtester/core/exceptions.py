"""
Backtester Exceptions

Error taxonomy for the indicator / simulation / optimization pipeline.
Fatal errors (DataError, ConfigError) abort a run before the first bar is
processed. EvaluationFault is recovered locally by the engine as "condition
false". OptimizationCombinationFailure is recorded on the grid entry.
"""

from typing import Any


class BacktestError(Exception):
    """Base exception for all backtester errors."""

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
        original_error: Exception | None = None,
    ):
        self.message = message
        self.details = details or {}
        self.original_error = original_error
        super().__init__(self.message)

    def __str__(self) -> str:
        result = self.message
        if self.details:
            result += f" | Details: {self.details}"
        if self.original_error:
            result += f" | Original: {type(self.original_error).__name__}: {self.original_error}"
        return result


class DataError(BacktestError):
    """Raised when candle data is missing, empty or malformed."""

    def __init__(
        self,
        message: str,
        symbol: str | None = None,
        field: str | None = None,
        bar_index: int | None = None,
        original_error: Exception | None = None,
    ):
        details: dict[str, Any] = {}
        if symbol:
            details["symbol"] = symbol
        if field:
            details["field"] = field
        if bar_index is not None:
            details["bar_index"] = bar_index
        super().__init__(message, details, original_error)


class ConfigError(BacktestError, ValueError):
    """Raised when an indicator, expression or optimization setting is invalid."""

    def __init__(
        self,
        message: str,
        param_name: str | None = None,
        param_value: Any | None = None,
        expression: str | None = None,
        position: int | None = None,
    ):
        details: dict[str, Any] = {}
        if param_name:
            details["param_name"] = param_name
        if param_value is not None:
            details["param_value"] = param_value
        if expression is not None:
            details["expression"] = expression
        if position is not None:
            details["position"] = position
        super().__init__(message, details)


class EvaluationFault(BacktestError):
    """Raised when a condition cannot be evaluated on a specific bar."""

    def __init__(
        self,
        message: str,
        identifier: str | None = None,
        bar_index: int | None = None,
    ):
        details: dict[str, Any] = {}
        if identifier:
            details["identifier"] = identifier
        if bar_index is not None:
            details["bar_index"] = bar_index
        super().__init__(message, details)


class OptimizationCombinationFailure(BacktestError):
    """Describes a grid point that failed to run; recorded on its entry."""

    def __init__(
        self,
        params: dict[str, Any],
        error: Exception,
    ):
        message = f"Combination {params} failed"
        super().__init__(message, {"params": dict(params)}, error)
