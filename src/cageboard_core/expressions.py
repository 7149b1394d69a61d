"""Closed-form boolean expressions over named signals.

Threshold rules, regime contributions and beat bonuses are written as small
boolean expressions such as ``seismic.bin == 'quake' || tilt.trend > 0.01``.
They are compiled once into an explicit tree of frozen nodes and evaluated
by walking that tree against a binding map; source text is never executed.

Grammar::

    expr       := or
    or         := and (("||" | "or") and)*
    and        := comparison (("&&" | "and") comparison)*
    comparison := unary (CMP unary)?
    unary      := ("!" | "not") unary | primary
    primary    := ["-"]NUMBER | STRING | "true" | "false" | "null"
                | IDENT ("." IDENT)* | "(" expr ")"

Negation binds tighter than comparison, so ``!a == b`` reads as ``(!a) == b``.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Iterator, List, Mapping, Tuple, Union

from cageboard_core.errors import ExpressionError

__all__ = [
    "And",
    "Comparison",
    "Expression",
    "Literal",
    "Not",
    "Or",
    "SignalRef",
    "compile_expression",
    "evaluate",
    "evaluate_bool",
    "referenced_signals",
]


@dataclass(frozen=True)
class Literal:
    value: Any


@dataclass(frozen=True)
class SignalRef:
    name: str


@dataclass(frozen=True)
class Comparison:
    operator: str
    left: "Expression"
    right: "Expression"


@dataclass(frozen=True)
class And:
    operands: Tuple["Expression", ...]


@dataclass(frozen=True)
class Or:
    operands: Tuple["Expression", ...]


@dataclass(frozen=True)
class Not:
    operand: "Expression"


Expression = Union[Literal, SignalRef, Comparison, And, Or, Not]


_TOKEN_PATTERN = re.compile(
    r"""
    (?P<ws>\s+)
  | (?P<number>-?(?:\d+\.\d*|\.\d+|\d+)(?:[eE][+-]?\d+)?)
  | (?P<string>'(?:[^'\\]|\\.)*'|"(?:[^"\\]|\\.)*")
  | (?P<op>===|!==|==|!=|<=|>=|&&|\|\||<|>|!|\(|\))
  | (?P<ident>[A-Za-z_][A-Za-z0-9_]*(?:\.[A-Za-z_][A-Za-z0-9_]*)*)
    """,
    re.VERBOSE,
)

_KEYWORD_OPERATORS = {"and": "&&", "or": "||", "not": "!"}
_KEYWORD_LITERALS = {"true": True, "false": False, "null": None}
_COMPARISON_OPERATORS = {
    "==": "==",
    "===": "==",
    "!=": "!=",
    "!==": "!=",
    "<": "<",
    "<=": "<=",
    ">": ">",
    ">=": ">=",
}


@dataclass(frozen=True)
class _Token:
    kind: str
    text: str
    position: int


def _tokenize(source: str) -> List[_Token]:
    tokens: List[_Token] = []
    position = 0
    while position < len(source):
        match = _TOKEN_PATTERN.match(source, position)
        if match is None:
            raise ExpressionError(
                f"Unexpected character {source[position]!r} at position {position}",
                source=source,
                position=position,
            )
        kind = match.lastgroup or ""
        text = match.group()
        if kind == "ident" and text in _KEYWORD_OPERATORS:
            tokens.append(_Token("op", _KEYWORD_OPERATORS[text], position))
        elif kind != "ws":
            tokens.append(_Token(kind, text, position))
        position = match.end()
    return tokens


def _unquote(text: str) -> str:
    body = text[1:-1]
    return re.sub(r"\\(.)", r"\1", body)


class _Parser:
    def __init__(self, source: str) -> None:
        self._source = source
        self._tokens = _tokenize(source)
        self._index = 0

    def parse(self) -> Expression:
        if not self._tokens:
            raise ExpressionError("Empty expression", source=self._source, position=0)
        node = self._parse_or()
        if self._index < len(self._tokens):
            token = self._tokens[self._index]
            raise self._error(f"Unexpected token {token.text!r}", token)
        return node

    def _error(self, message: str, token: _Token | None = None) -> ExpressionError:
        position = token.position if token is not None else len(self._source)
        return ExpressionError(message, source=self._source, position=position)

    def _peek(self) -> _Token | None:
        if self._index < len(self._tokens):
            return self._tokens[self._index]
        return None

    def _accept(self, text: str) -> bool:
        token = self._peek()
        if token is not None and token.kind == "op" and token.text == text:
            self._index += 1
            return True
        return False

    def _parse_or(self) -> Expression:
        operands = [self._parse_and()]
        while self._accept("||"):
            operands.append(self._parse_and())
        return operands[0] if len(operands) == 1 else Or(tuple(operands))

    def _parse_and(self) -> Expression:
        operands = [self._parse_comparison()]
        while self._accept("&&"):
            operands.append(self._parse_comparison())
        return operands[0] if len(operands) == 1 else And(tuple(operands))

    def _parse_comparison(self) -> Expression:
        left = self._parse_unary()
        token = self._peek()
        if token is not None and token.kind == "op" and token.text in _COMPARISON_OPERATORS:
            self._index += 1
            right = self._parse_unary()
            return Comparison(_COMPARISON_OPERATORS[token.text], left, right)
        return left

    def _parse_unary(self) -> Expression:
        if self._accept("!"):
            return Not(self._parse_unary())
        return self._parse_primary()

    def _parse_primary(self) -> Expression:
        token = self._peek()
        if token is None:
            raise self._error("Unexpected end of expression")
        self._index += 1
        if token.kind == "number":
            return Literal(float(token.text))
        if token.kind == "string":
            return Literal(_unquote(token.text))
        if token.kind == "ident":
            if token.text in _KEYWORD_LITERALS:
                return Literal(_KEYWORD_LITERALS[token.text])
            return SignalRef(token.text)
        if token.kind == "op" and token.text == "(":
            node = self._parse_or()
            if not self._accept(")"):
                raise self._error("Missing closing parenthesis", self._peek())
            return node
        raise self._error(f"Unexpected token {token.text!r}", token)


def compile_expression(source: str) -> Expression:
    """Compile ``source`` into an expression tree.

    Raises :class:`ExpressionError` when ``source`` is not a valid expression.
    """

    if not isinstance(source, str):
        raise ExpressionError(f"Expression must be a string, got {type(source).__name__}")
    return _Parser(source).parse()


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _compare(operator: str, left: Any, right: Any) -> bool:
    if operator == "==":
        return left == right
    if operator == "!=":
        return left != right
    if left is None or right is None:
        return False
    if _is_number(left) != _is_number(right):
        raise ExpressionError(
            f"Cannot order {type(left).__name__} against {type(right).__name__}"
        )
    if operator == "<":
        return left < right
    if operator == "<=":
        return left <= right
    if operator == ">":
        return left > right
    return left >= right


def evaluate(node: Expression, bindings: Mapping[str, Any]) -> Any:
    """Evaluate ``node`` against ``bindings``; unknown signals resolve to ``None``."""

    if isinstance(node, Literal):
        return node.value
    if isinstance(node, SignalRef):
        return bindings.get(node.name)
    if isinstance(node, Comparison):
        return _compare(
            node.operator,
            evaluate(node.left, bindings),
            evaluate(node.right, bindings),
        )
    if isinstance(node, And):
        return all(bool(evaluate(operand, bindings)) for operand in node.operands)
    if isinstance(node, Or):
        return any(bool(evaluate(operand, bindings)) for operand in node.operands)
    if isinstance(node, Not):
        return not bool(evaluate(node.operand, bindings))
    raise ExpressionError(f"Unknown expression node {node!r}")


def evaluate_bool(node: Expression, bindings: Mapping[str, Any]) -> bool:
    return bool(evaluate(node, bindings))


def _walk(node: Expression) -> Iterator[Expression]:
    yield node
    if isinstance(node, Comparison):
        yield from _walk(node.left)
        yield from _walk(node.right)
    elif isinstance(node, (And, Or)):
        for operand in node.operands:
            yield from _walk(operand)
    elif isinstance(node, Not):
        yield from _walk(node.operand)


def referenced_signals(node: Expression) -> Tuple[str, ...]:
    """Return the signal names referenced by ``node`` in first-seen order."""

    names = (item.name for item in _walk(node) if isinstance(item, SignalRef))
    return tuple(dict.fromkeys(names))
