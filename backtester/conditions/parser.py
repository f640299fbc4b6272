"""
Condition parser

Recursive-descent parser producing a small tagged AST. Precedence, lowest
first::

    or          ||
    and         &&
    equality    == !=
    comparison  > >= < <=
    additive    + -
    term        * /
    unary       ! -
    primary     number | true | false | identifier | ( expr )
"""

from dataclasses import dataclass
from typing import Union

from backtester.conditions.lexer import Token, TokenType, tokenize
from backtester.core.exceptions import ConfigError


@dataclass(frozen=True)
class Literal:
    value: Union[float, bool]


@dataclass(frozen=True)
class Identifier:
    name: str


@dataclass(frozen=True)
class UnaryOp:
    op: str
    operand: "Node"


@dataclass(frozen=True)
class BinaryOp:
    op: str
    left: "Node"
    right: "Node"


Node = Union[Literal, Identifier, UnaryOp, BinaryOp]

# Parentheses and prefix operators nested deeper than this are rejected
MAX_NESTING_DEPTH = 32


class Parser:
    """Parses one expression; create a new instance per expression."""

    def __init__(self, text: str):
        self.text = text
        self.tokens = tokenize(text)
        self.pos = 0
        self.depth = 0

    def parse(self) -> Node:
        node = self._or()
        token = self._peek()
        if token.type != TokenType.EOF:
            self._error(f"Unexpected token '{token.value}'", token)
        return node

    # -- helpers -------------------------------------------------------------

    def _peek(self) -> Token:
        return self.tokens[self.pos]

    def _advance(self) -> Token:
        token = self.tokens[self.pos]
        self.pos += 1
        return token

    def _match(self, *ops: str) -> Union[Token, None]:
        token = self._peek()
        if token.type == TokenType.OP and token.value in ops:
            return self._advance()
        return None

    def _error(self, message: str, token: Token):
        raise ConfigError(
            f"{message} at position {token.position}",
            expression=self.text,
            position=token.position,
        )

    def _enter(self, token: Token) -> None:
        self.depth += 1
        if self.depth > MAX_NESTING_DEPTH:
            self._error(f"Expression nested deeper than {MAX_NESTING_DEPTH} levels", token)

    def _binary(self, next_level, *ops: str) -> Node:
        node = next_level()
        while True:
            token = self._match(*ops)
            if token is None:
                return node
            node = BinaryOp(token.value, node, next_level())

    # -- grammar -------------------------------------------------------------

    def _or(self) -> Node:
        return self._binary(self._and, "||")

    def _and(self) -> Node:
        return self._binary(self._equality, "&&")

    def _equality(self) -> Node:
        return self._binary(self._comparison, "==", "!=")

    def _comparison(self) -> Node:
        return self._binary(self._additive, ">", ">=", "<", "<=")

    def _additive(self) -> Node:
        return self._binary(self._term, "+", "-")

    def _term(self) -> Node:
        return self._binary(self._unary, "*", "/")

    def _unary(self) -> Node:
        token = self._match("!", "-")
        if token is not None:
            self._enter(token)
            node = UnaryOp(token.value, self._unary())
            self.depth -= 1
            return node
        return self._primary()

    def _primary(self) -> Node:
        token = self._peek()

        if token.type == TokenType.NUMBER:
            self._advance()
            return Literal(float(token.value))
        if token.type == TokenType.TRUE:
            self._advance()
            return Literal(True)
        if token.type == TokenType.FALSE:
            self._advance()
            return Literal(False)
        if token.type == TokenType.IDENT:
            self._advance()
            return Identifier(token.value)
        if token.type == TokenType.LPAREN:
            self._advance()
            self._enter(token)
            node = self._or()
            closing = self._peek()
            if closing.type != TokenType.RPAREN:
                self._error("Expected ')'", closing)
            self._advance()
            self.depth -= 1
            return node

        if token.type == TokenType.EOF:
            self._error("Unexpected end of expression", token)
        self._error(f"Unexpected token '{token.value}'", token)


def parse(text: str) -> Node:
    """Parse ``text`` into an AST, raising ConfigError on malformed or oversized input."""
    return Parser(text).parse()
