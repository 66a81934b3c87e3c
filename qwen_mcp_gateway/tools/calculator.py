"""Arithmetic expression evaluator for the ``calculate`` tool.

Grammar (recursive descent, standard precedence, left associative)::

    expr   := term (('+' | '-') term)*
    term   := unary (('*' | '/') unary)*
    unary  := ('+' | '-') unary | atom
    atom   := NUMBER | '(' expr ')'
    NUMBER := DIGITS ['.' DIGITS*] | '.' DIGITS

Only numeric literals and ``+ - * / ( )`` are understood; there is no name
lookup of any kind, so nothing outside the expression text can be reached.

Arithmetic is IEEE-754 double precision throughout; results that are whole
numbers are reported as ``int`` and non-finite results are rejected.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from typing import List, Union

from ..core.exceptions import InvalidExpressionError

__all__ = ["ALLOWED_EXPRESSION", "evaluate", "validate_expression"]

Number = Union[int, float]

# Allow-list checked before any parsing happens
ALLOWED_EXPRESSION = re.compile(r"^[0-9+\-*/().\s]+$")

_TOKEN = re.compile(r"\s*(?:(\d+\.\d*|\.\d+|\d+)|(.))")

# Nesting cap keeps pathological inputs like '((((...' from hitting the recursion limit
_MAX_DEPTH = 100


@dataclass(frozen=True, slots=True)
class _Token:
    kind: str  # "num", "op" or "end"
    text: str
    pos: int


def validate_expression(expression: object) -> str:
    """Return ``expression`` if it passes the character allow-list.

    Raises:
        InvalidExpressionError: For non-strings and any disallowed character.
    """
    if not isinstance(expression, str) or not ALLOWED_EXPRESSION.fullmatch(expression):
        raise InvalidExpressionError(
            "Invalid expression: only numbers and arithmetic operators are allowed",
            expression=expression,
        )
    return expression


def _tokenize(expression: str) -> List[_Token]:
    tokens: List[_Token] = []
    pos = 0
    stripped_end = len(expression.rstrip())
    while pos < stripped_end:
        match = _TOKEN.match(expression, pos)
        if match is None:  # pragma: no cover - the pattern matches any char
            break
        number, op = match.groups()
        if number is not None:
            tokens.append(_Token("num", number, match.start(1)))
        else:
            tokens.append(_Token("op", op, match.start(2)))
        pos = match.end()
    tokens.append(_Token("end", "", len(expression)))
    return tokens


class _Parser:
    def __init__(self, expression: str) -> None:
        self.tokens = _tokenize(expression)
        self.index = 0
        self.depth = 0

    @property
    def current(self) -> _Token:
        return self.tokens[self.index]

    def _advance(self) -> _Token:
        token = self.current
        self.index += 1
        return token

    def _error(self, message: str) -> InvalidExpressionError:
        return InvalidExpressionError(f"Error evaluating expression: {message}")

    def parse(self) -> Number:
        value = self._expr()
        if self.current.kind != "end":
            raise self._error(f"unexpected '{self.current.text}' at position {self.current.pos}")
        return value

    def _expr(self) -> Number:
        value = self._term()
        while self.current.kind == "op" and self.current.text in "+-":
            op = self._advance().text
            rhs = self._term()
            value = value + rhs if op == "+" else value - rhs
        return value

    def _term(self) -> Number:
        value = self._unary()
        while self.current.kind == "op" and self.current.text in "*/":
            op = self._advance().text
            rhs = self._unary()
            if op == "*":
                value = value * rhs
            else:
                if rhs == 0:
                    raise self._error("division by zero")
                value = value / rhs
        return value

    def _unary(self) -> Number:
        if self.current.kind == "op" and self.current.text in "+-":
            op = self._advance().text
            self._enter()
            try:
                operand = self._unary()
            finally:
                self.depth -= 1
            return -operand if op == "-" else operand
        return self._atom()

    def _atom(self) -> Number:
        token = self._advance()
        if token.kind == "num":
            try:
                return float(token.text)
            except ValueError as exc:
                raise self._error(f"invalid number at position {token.pos}") from exc
        if token.kind == "op" and token.text == "(":
            self._enter()
            try:
                value = self._expr()
            finally:
                self.depth -= 1
            closing = self._advance()
            if closing.kind != "op" or closing.text != ")":
                raise self._error(f"expected ')' at position {closing.pos}")
            return value
        if token.kind == "end":
            raise self._error("unexpected end of expression")
        raise self._error(f"unexpected '{token.text}' at position {token.pos}")

    def _enter(self) -> None:
        self.depth += 1
        if self.depth > _MAX_DEPTH:
            raise self._error("expression is nested too deeply")


def _normalize(value: float) -> Number:
    """Collapse integral floats so ``4/2`` reports ``2``."""
    return int(value) if value.is_integer() else value


def evaluate(expression: object) -> Number:
    """Validate and evaluate an arithmetic expression.

    >>> evaluate("2+2*3")
    8
    >>> evaluate("(1 + 2) / 4")
    0.75

    Raises:
        InvalidExpressionError: If the input fails the allow-list, does not
            parse, divides by zero, or overflows.
    """
    text = validate_expression(expression)
    try:
        value = _Parser(text).parse()
    except (OverflowError, ValueError) as exc:
        raise InvalidExpressionError(f"Error evaluating expression: {exc}") from exc
    if not math.isfinite(value):
        raise InvalidExpressionError("Error evaluating expression: result is not a finite number")
    return _normalize(value)
