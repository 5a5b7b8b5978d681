"""Arithmetic-only expression evaluator for the ``calculate`` operator.

Expressions are tokenized, parsed by recursive descent into a small tagged AST
and evaluated. Nothing is ever handed to ``eval``.

Grammar::

    expr   := term (('+' | '-') term)*
    term   := unary (('*' | '/' | '%') unary)*
    unary  := ('+' | '-') unary | atom
    atom   := NUMBER | '(' expr ')'
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from typing import Union

from .exceptions import FormulaError

ALLOWED_CHARS = re.compile(r"^[0-9+\-*/().%\s]*$")
_TOKEN_RE = re.compile(r"\s*(?:(\d+(?:\.\d*)?|\.\d+)|(.))")


@dataclass(frozen=True)
class Number:
    value: float


@dataclass(frozen=True)
class UnaryOp:
    op: str
    operand: "Node"


@dataclass(frozen=True)
class BinaryOp:
    op: str
    left: "Node"
    right: "Node"


Node = Union[Number, UnaryOp, BinaryOp]


def tokenize(expression: str) -> list[str]:
    if not ALLOWED_CHARS.match(expression):
        raise FormulaError(f"unsupported characters in {expression!r}")
    tokens: list[str] = []
    for number, symbol in _TOKEN_RE.findall(expression):
        if number:
            tokens.append(number)
        elif symbol and not symbol.isspace():
            tokens.append(symbol)
    return tokens


class _Parser:
    def __init__(self, tokens: list[str]):
        self.tokens = tokens
        self.pos = 0

    def peek(self) -> str | None:
        return self.tokens[self.pos] if self.pos < len(self.tokens) else None

    def take(self) -> str:
        tok = self.peek()
        if tok is None:
            raise FormulaError("unexpected end of expression")
        self.pos += 1
        return tok

    def parse(self) -> Node:
        node = self.expr()
        if self.peek() is not None:
            raise FormulaError(f"unexpected token {self.peek()!r}")
        return node

    def expr(self) -> Node:
        node = self.term()
        while self.peek() in ("+", "-"):
            op = self.take()
            node = BinaryOp(op, node, self.term())
        return node

    def term(self) -> Node:
        node = self.unary()
        while self.peek() in ("*", "/", "%"):
            op = self.take()
            node = BinaryOp(op, node, self.unary())
        return node

    def unary(self) -> Node:
        if self.peek() in ("+", "-"):
            op = self.take()
            return UnaryOp(op, self.unary())
        return self.atom()

    def atom(self) -> Node:
        tok = self.take()
        if tok == "(":
            node = self.expr()
            if self.take() != ")":
                raise FormulaError("missing closing parenthesis")
            return node
        try:
            return Number(float(tok))
        except ValueError:
            raise FormulaError(f"unexpected token {tok!r}") from None


def parse(expression: str) -> Node:
    tokens = tokenize(expression)
    if not tokens:
        raise FormulaError("empty expression")
    return _Parser(tokens).parse()


def evaluate_node(node: Node) -> float:
    if isinstance(node, Number):
        return node.value
    if isinstance(node, UnaryOp):
        value = evaluate_node(node.operand)
        return -value if node.op == "-" else value
    left = evaluate_node(node.left)
    right = evaluate_node(node.right)
    if node.op == "+":
        return left + right
    if node.op == "-":
        return left - right
    if node.op == "*":
        return left * right
    if node.op == "/":
        return left / right
    return math.fmod(left, right)


def evaluate(expression: str) -> float | None:
    """Evaluate ``expression``; any rejected or failing expression yields None."""
    try:
        result = evaluate_node(parse(expression))
    except (FormulaError, ArithmeticError, ValueError):
        return None
    if math.isnan(result) or math.isinf(result):
        return None
    return result
