"""
Condition lexer

Splits a rule such as ``close > SMA_50 && RSI_14 < 30`` into tokens.
"""

from dataclasses import dataclass
from enum import Enum

from backtester.core.exceptions import ConfigError


class TokenType(str, Enum):
    NUMBER = "NUMBER"
    IDENT = "IDENT"
    TRUE = "TRUE"
    FALSE = "FALSE"
    OP = "OP"
    LPAREN = "LPAREN"
    RPAREN = "RPAREN"
    EOF = "EOF"


@dataclass(frozen=True)
class Token:
    type: TokenType
    value: str
    position: int


# Longest operators first so ">=" is not read as ">" followed by "="
OPERATORS = ("||", "&&", "==", "!=", ">=", "<=", ">", "<", "+", "-", "*", "/", "!")

KEYWORD_OPERATORS = {"and": "&&", "or": "||", "not": "!"}

# Upper bound on tokens per rule, EOF excluded
MAX_TOKENS = 512


def _is_ident_start(ch: str) -> bool:
    return ch.isascii() and (ch.isalpha() or ch == "_")


def _is_digit(ch: str) -> bool:
    return ch.isascii() and ch.isdigit()


def _is_ident_char(ch: str) -> bool:
    return ch.isascii() and (ch.isalnum() or ch == "_")


def tokenize(text: str) -> list[Token]:
    """
    Tokenize a condition expression.

    Raises:
        ConfigError: On a character that cannot start any token, or when
            the expression exceeds MAX_TOKENS
    """
    tokens: list[Token] = []
    i = 0
    n = len(text)

    while i < n:
        ch = text[i]

        if ch.isspace():
            i += 1
            continue

        if _is_digit(ch) or (ch == "." and i + 1 < n and _is_digit(text[i + 1])):
            start = i
            seen_dot = False
            while i < n and (_is_digit(text[i]) or (text[i] == "." and not seen_dot)):
                if text[i] == ".":
                    seen_dot = True
                i += 1
            tokens.append(Token(TokenType.NUMBER, text[start:i], start))
            continue

        if _is_ident_start(ch):
            start = i
            while i < n and _is_ident_char(text[i]):
                i += 1
            # Dotted names: position.entry_price
            while i + 1 < n and text[i] == "." and _is_ident_start(text[i + 1]):
                i += 1
                while i < n and _is_ident_char(text[i]):
                    i += 1
            word = text[start:i]
            lowered = word.lower()
            if lowered == "true":
                tokens.append(Token(TokenType.TRUE, word, start))
            elif lowered == "false":
                tokens.append(Token(TokenType.FALSE, word, start))
            elif lowered in KEYWORD_OPERATORS:
                tokens.append(Token(TokenType.OP, KEYWORD_OPERATORS[lowered], start))
            else:
                tokens.append(Token(TokenType.IDENT, word, start))
            continue

        if ch == "(":
            tokens.append(Token(TokenType.LPAREN, ch, i))
            i += 1
            continue
        if ch == ")":
            tokens.append(Token(TokenType.RPAREN, ch, i))
            i += 1
            continue

        for op in OPERATORS:
            if text.startswith(op, i):
                tokens.append(Token(TokenType.OP, op, i))
                i += len(op)
                break
        else:
            raise ConfigError(
                f"Unexpected character '{ch}' at position {i}",
                expression=text,
                position=i,
            )

    if len(tokens) > MAX_TOKENS:
        raise ConfigError(
            f"Expression has {len(tokens)} tokens, limit is {MAX_TOKENS}",
            expression=text,
            position=tokens[MAX_TOKENS].position,
        )

    tokens.append(Token(TokenType.EOF, "", n))
    return tokens
