"""
Strategy condition language.

    >>> rule = compile_condition("close > SMA_50 && RSI_14 < 70")
    >>> rule.check({"close": 105.0, "SMA_50": 100.0, "RSI_14": 55.0})
    True
"""

from backtester.conditions.evaluator import Condition, compile_condition
from backtester.conditions.parser import BinaryOp, Identifier, Literal, UnaryOp, parse

__all__ = [
    "BinaryOp",
    "Condition",
    "Identifier",
    "Literal",
    "UnaryOp",
    "compile_condition",
    "parse",
]
