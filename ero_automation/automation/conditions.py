"""Closed expression grammar for gating actions on the data context.

Conditions are parsed once when the site configuration is loaded and kept as
predicate trees; evaluation only walks the tree, nothing is ever compiled or
executed::

    expr    := or
    or      := and (("||" | "or") and)*
    and     := not (("&&" | "and") not)*
    not     := ("!" | "not") not | cmp
    cmp     := operand (OP operand)?
    operand := STRING | NUMBER | true | false | null | PATH | "(" expr ")"

A leading ``data.`` on a path is optional, so ``data.ORDER_TYPE == 'EXPORT'``
and ``ORDER_TYPE == 'EXPORT'`` are the same predicate.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Mapping, Tuple

from .data_paths import is_absent, resolve_path
from .errors import ConditionSyntaxError

__all__ = [
    "And",
    "Compare",
    "Literal",
    "Not",
    "Or",
    "Path",
    "Predicate",
    "parse_condition",
]

_TOKEN_PATTERN = re.compile(
    r"""
    \s*(?:
        (?P<string>'(?:[^'\\]|\\.)*'|"(?:[^"\\]|\\.)*")
      | (?P<number>-?\d+(?:\.\d+)?)
      | (?P<op>===|!==|==|!=|<=|>=|&&|\|\||<|>|!|\(|\))
      | (?P<name>[A-Za-z_][A-Za-z0-9_]*(?:\.[A-Za-z0-9_]+)*)
    )
    """,
    re.VERBOSE,
)

_KEYWORD_LITERALS = {
    "true": True,
    "True": True,
    "false": False,
    "False": False,
    "null": None,
    "None": None,
    "undefined": None,
}

_COMPARATORS = {"==", "===", "!=", "!==", "<", "<=", ">", ">="}


@dataclass(frozen=True)
class Literal:
    value: Any

    def evaluate(self, context: Mapping[str, Any]) -> Any:
        return self.value


@dataclass(frozen=True)
class Path:
    parts: Tuple[str, ...]

    def evaluate(self, context: Mapping[str, Any]) -> Any:
        return resolve_path(context, self.parts)


@dataclass(frozen=True)
class Compare:
    left: "Predicate"
    op: str
    right: "Predicate"

    def evaluate(self, context: Mapping[str, Any]) -> bool:
        left = _comparable(self.left.evaluate(context))
        right = _comparable(self.right.evaluate(context))
        if self.op in {"==", "==="}:
            return left == right
        if self.op in {"!=", "!=="}:
            return left != right
        if left is None or right is None:
            return False
        try:
            if self.op == "<":
                return left < right
            if self.op == "<=":
                return left <= right
            if self.op == ">":
                return left > right
            return left >= right
        except TypeError:
            return False


@dataclass(frozen=True)
class Not:
    operand: "Predicate"

    def evaluate(self, context: Mapping[str, Any]) -> bool:
        return not self.operand.evaluate(context)


@dataclass(frozen=True)
class And:
    operands: Tuple["Predicate", ...]

    def evaluate(self, context: Mapping[str, Any]) -> bool:
        return all(operand.evaluate(context) for operand in self.operands)


@dataclass(frozen=True)
class Or:
    operands: Tuple["Predicate", ...]

    def evaluate(self, context: Mapping[str, Any]) -> bool:
        return any(operand.evaluate(context) for operand in self.operands)


Predicate = Literal | Path | Compare | Not | And | Or


def _comparable(value: Any) -> Any:
    return None if is_absent(value) else value


def _unquote(raw: str) -> str:
    body = raw[1:-1]
    return re.sub(r"\\(.)", r"\1", body)


def _tokenize(text: str) -> list[tuple[str, str]]:
    tokens: list[tuple[str, str]] = []
    position = 0
    stripped_length = len(text.rstrip())
    while position < stripped_length:
        match = _TOKEN_PATTERN.match(text, position)
        if not match or match.end() == position:
            raise ConditionSyntaxError(
                f"Unexpected character {text[position:].strip()[:1]!r} in condition {text!r}"
            )
        kind = match.lastgroup or ""
        tokens.append((kind, match.group(kind)))
        position = match.end()
    return tokens


class _Parser:
    def __init__(self, text: str) -> None:
        self.text = text
        self.tokens = _tokenize(text)
        self.index = 0

    def _peek(self) -> tuple[str, str] | None:
        if self.index < len(self.tokens):
            return self.tokens[self.index]
        return None

    def _take(self) -> tuple[str, str]:
        token = self._peek()
        if token is None:
            raise ConditionSyntaxError(f"Unexpected end of condition {self.text!r}")
        self.index += 1
        return token

    def _accept(self, *values: str) -> bool:
        token = self._peek()
        if token and token[0] in {"op", "name"} and token[1] in values:
            self.index += 1
            return True
        return False

    def parse(self) -> Predicate:
        if not self.tokens:
            raise ConditionSyntaxError("Condition is empty")
        node = self._parse_or()
        if self._peek() is not None:
            raise ConditionSyntaxError(
                f"Unexpected token {self._peek()[1]!r} in condition {self.text!r}"
            )
        return node

    def _parse_or(self) -> Predicate:
        operands = [self._parse_and()]
        while self._accept("||", "or"):
            operands.append(self._parse_and())
        return operands[0] if len(operands) == 1 else Or(tuple(operands))

    def _parse_and(self) -> Predicate:
        operands = [self._parse_not()]
        while self._accept("&&", "and"):
            operands.append(self._parse_not())
        return operands[0] if len(operands) == 1 else And(tuple(operands))

    def _parse_not(self) -> Predicate:
        if self._accept("!", "not"):
            return Not(self._parse_not())
        return self._parse_compare()

    def _parse_compare(self) -> Predicate:
        left = self._parse_operand()
        token = self._peek()
        if token and token[0] == "op" and token[1] in _COMPARATORS:
            self.index += 1
            return Compare(left, token[1], self._parse_operand())
        return left

    def _parse_operand(self) -> Predicate:
        kind, value = self._take()
        if kind == "string":
            return Literal(_unquote(value))
        if kind == "number":
            return Literal(float(value) if "." in value else int(value))
        if kind == "op" and value == "(":
            node = self._parse_or()
            closing = self._take()
            if closing != ("op", ")"):
                raise ConditionSyntaxError(f"Expected ')' in condition {self.text!r}")
            return node
        if kind == "name":
            if value in _KEYWORD_LITERALS:
                return Literal(_KEYWORD_LITERALS[value])
            if value in {"and", "or", "not"}:
                raise ConditionSyntaxError(f"Misplaced keyword {value!r} in condition {self.text!r}")
            parts = value.split(".")
            if len(parts) > 1 and parts[0] == "data":
                parts = parts[1:]
            return Path(tuple(parts))
        raise ConditionSyntaxError(f"Unexpected token {value!r} in condition {self.text!r}")


def parse_condition(text: str) -> Predicate:
    """Parse ``text`` into a predicate; raise :class:`ConditionSyntaxError`."""

    if not isinstance(text, str):
        raise ConditionSyntaxError(f"Condition must be a string; got {type(text).__name__}")
    return _Parser(text).parse()
