"""
Condition evaluator

Compiled trading rules evaluated against a per-bar context. Expressions are
interpreted over the parsed AST; no host-language ``eval`` is involved.
"""

from __future__ import annotations

import math
import numbers
from typing import Any, Mapping, Optional, Union

import numpy as np
from loguru import logger

from backtester.conditions.parser import BinaryOp, Identifier, Literal, Node, UnaryOp, parse
from backtester.core.exceptions import EvaluationFault

Value = Union[float, bool]

_COMPARISONS = {
    ">": lambda a, b: a > b,
    ">=": lambda a, b: a >= b,
    "<": lambda a, b: a < b,
    "<=": lambda a, b: a <= b,
}

_ARITHMETIC = {
    "+": lambda a, b: a + b,
    "-": lambda a, b: a - b,
    "*": lambda a, b: a * b,
}


def _collect_identifiers(node: Optional[Node], names: set[str]) -> set[str]:
    if isinstance(node, Identifier):
        names.add(node.name)
    elif isinstance(node, UnaryOp):
        _collect_identifiers(node.operand, names)
    elif isinstance(node, BinaryOp):
        _collect_identifiers(node.left, names)
        _collect_identifiers(node.right, names)
    return names


def _coerce(name: str, value: Any) -> Value:
    """Normalize a context value to bool or float; NaN counts as undefined."""
    if isinstance(value, (bool, np.bool_)):
        return bool(value)
    if isinstance(value, numbers.Real):
        result = float(value)
        if math.isnan(result):
            raise EvaluationFault(f"'{name}' is undefined on this bar", identifier=name)
        return result
    raise EvaluationFault(f"'{name}' has unsupported type {type(value).__name__}", identifier=name)


def _require_number(op: str, value: Value) -> float:
    if isinstance(value, bool):
        raise EvaluationFault(f"Operator '{op}' expects a number, got a boolean")
    return value


def _require_bool(op: str, value: Value) -> bool:
    if not isinstance(value, bool):
        raise EvaluationFault(f"Operator '{op}' expects a boolean, got a number")
    return value


class Condition:
    """
    A compiled rule.

    A blank rule never fires. ``evaluate`` raises EvaluationFault when the
    rule cannot be decided on a bar; ``check`` turns that into ``False``.
    """

    def __init__(self, text: str, ast: Optional[Node]):
        self.text = text
        self.ast = ast
        self.identifiers: frozenset[str] = frozenset(_collect_identifiers(ast, set()))

    @property
    def is_blank(self) -> bool:
        return self.ast is None

    def evaluate(self, context: Mapping[str, Any]) -> bool:
        if self.ast is None:
            return False
        result = self._eval(self.ast, context)
        if not isinstance(result, bool):
            raise EvaluationFault(f"Expression '{self.text}' does not produce a boolean")
        return result

    def check(self, context: Mapping[str, Any], bar_index: Optional[int] = None) -> bool:
        try:
            return self.evaluate(context)
        except EvaluationFault as e:
            logger.debug(f"Condition '{self.text}' treated as false on bar {bar_index}: {e.message}")
            return False

    def _eval(self, node: Node, context: Mapping[str, Any]) -> Value:
        if isinstance(node, Literal):
            return node.value

        if isinstance(node, Identifier):
            if node.name not in context:
                raise EvaluationFault(f"'{node.name}' is undefined on this bar", identifier=node.name)
            return _coerce(node.name, context[node.name])

        if isinstance(node, UnaryOp):
            operand = self._eval(node.operand, context)
            if node.op == "!":
                return not _require_bool(node.op, operand)
            return -_require_number(node.op, operand)

        op = node.op
        if op == "&&":
            if not _require_bool(op, self._eval(node.left, context)):
                return False
            return _require_bool(op, self._eval(node.right, context))
        if op == "||":
            if _require_bool(op, self._eval(node.left, context)):
                return True
            return _require_bool(op, self._eval(node.right, context))

        left = self._eval(node.left, context)
        right = self._eval(node.right, context)

        if op in ("==", "!="):
            if isinstance(left, bool) != isinstance(right, bool):
                raise EvaluationFault(f"Operator '{op}' cannot compare a boolean with a number")
            return (left == right) if op == "==" else (left != right)

        a = _require_number(op, left)
        b = _require_number(op, right)
        if op in _COMPARISONS:
            return _COMPARISONS[op](a, b)
        if op == "/":
            if b == 0:
                raise EvaluationFault("Division by zero")
            return a / b
        return _ARITHMETIC[op](a, b)

    def __repr__(self) -> str:
        return f"Condition({self.text!r})"


def compile_condition(text: Optional[str]) -> Condition:
    """
    Parse a rule once for repeated evaluation.

    Raises:
        ConfigError: If the expression is malformed
    """
    if text is None or not text.strip():
        return Condition(text or "", None)
    return Condition(text, parse(text))
