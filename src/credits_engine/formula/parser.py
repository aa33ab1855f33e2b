# SPDX-License-Identifier: BSL-1.1
# Copyright (c) 2026 MuVeraAI Corporation

"""
FormulaParser: a restricted arithmetic language for usage-based pricing.

Formulas are tokenized, parsed by recursive descent into an expression tree
and evaluated by walking that tree. Nothing is ever passed to ``eval``; the
language has no names other than ``{variable}`` placeholders, no calls, and
no side effects.

Usage::

    parser = FormulaParser()
    parsed = parser.parse("{token} * 0.001 + 10")
    parsed.compute({"token": 3500})   # 13.5
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass, field
from typing import Any, Mapping

from credits_engine.errors import (
    ConfigurationError,
    FormulaEvaluationError,
    MissingVariableError,
)
from credits_engine.formula.nodes import (
    Binary,
    Conditional,
    Node,
    Number,
    Unary,
    Variable,
)
from credits_engine.formula.tokens import (
    COLON,
    END,
    LPAREN,
    NUMBER,
    OPERATOR,
    QUESTION,
    RPAREN,
    VARIABLE,
    Token,
    tokenize,
)

_PLACEHOLDER_RE = re.compile(r"\{([a-zA-Z][a-zA-Z0-9_]*)\}")

_COMPARISON_OPS = frozenset({"<", ">", "<=", ">=", "==", "!="})


@dataclass(frozen=True)
class ParsedFormula:
    """
    A compiled formula. ``compute`` is pure and may be called repeatedly.

    Attributes:
        raw: The original formula text.
        variables: Unique variable names, in first-seen order.
    """

    raw: str
    variables: tuple[str, ...]
    root: Node = field(repr=False)

    def compute(self, bindings: Mapping[str, Any] | None = None) -> float:
        """
        Evaluate the formula against ``bindings``.

        Raises:
            MissingVariableError: If a referenced variable has no binding.
            FormulaEvaluationError: On a non-numeric or non-finite binding,
                division by zero, or a non-finite result.
        """
        values = dict(bindings or {})
        for name in self.variables:
            if name not in values:
                raise MissingVariableError(self.raw, name, list(values))

        for name in self.variables:
            value = values[name]
            if not isinstance(value, (int, float)) or not math.isfinite(value):
                raise FormulaEvaluationError(
                    self.raw, values, f"Variable '{name}' has invalid value: {value!r}"
                )

        try:
            result = self.root.evaluate(values)
        except ZeroDivisionError as exc:
            raise FormulaEvaluationError(self.raw, values, "division by zero") from exc

        if math.isnan(result):
            raise FormulaEvaluationError(self.raw, values, "result is NaN")
        if math.isinf(result):
            raise FormulaEvaluationError(self.raw, values, "result is not finite")
        return result


class FormulaParser:
    """Validates, parses and evaluates cost formulas."""

    def validate(self, formula: str) -> None:
        """
        Check that ``formula`` is syntactically valid.

        Raises:
            ConfigurationError: With a message naming the first problem found.
        """
        self._build(formula)

    def extract_variables(self, formula: str) -> list[str]:
        """Return the unique ``{variable}`` names in ``formula``, in order of first use."""
        return list(dict.fromkeys(_PLACEHOLDER_RE.findall(formula)))

    def parse(self, formula: str) -> ParsedFormula:
        """Validate and compile ``formula`` into a reusable :class:`ParsedFormula`."""
        root = self._build(formula)
        return ParsedFormula(
            raw=formula,
            variables=tuple(self.extract_variables(formula)),
            root=root,
        )

    def evaluate(self, formula: str, bindings: Mapping[str, Any] | None = None) -> float:
        """Parse ``formula`` and compute it once against ``bindings``."""
        return self.parse(formula).compute(bindings)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _build(self, formula: str) -> Node:
        if not isinstance(formula, str) or not formula.strip():
            raise ConfigurationError("Formula cannot be empty")
        _check_balance(formula)
        return _Parser(tokenize(formula)).parse()


def _check_balance(formula: str) -> None:
    parens = 0
    braces = 0
    for char in formula:
        if char == "(":
            parens += 1
        elif char == ")":
            parens -= 1
        elif char == "{":
            braces += 1
        elif char == "}":
            braces -= 1

        if parens < 0:
            raise ConfigurationError("Mismatched parentheses: too many closing parentheses")
        if braces < 0:
            raise ConfigurationError("Mismatched braces: too many closing braces")
        if braces > 1:
            raise ConfigurationError("Mismatched braces: nested opening brace")

    if parens != 0:
        raise ConfigurationError("Mismatched parentheses: unclosed opening parentheses")
    if braces != 0:
        raise ConfigurationError("Mismatched braces: unclosed opening braces")


class _Parser:
    """Recursive-descent parser over a token list. One instance per formula."""

    def __init__(self, tokens: list[Token]) -> None:
        self._tokens = tokens
        self._index = 0

    def parse(self) -> Node:
        node = self._ternary()
        token = self._peek()
        if token.kind != END:
            raise ConfigurationError(f"Missing operator before {token.describe()}")
        return node

    # expression := or ( "?" expression ":" expression )?
    def _ternary(self) -> Node:
        condition = self._logical_or()
        if self._peek().kind != QUESTION:
            return condition
        self._advance()
        when_true = self._ternary()
        self._expect(COLON, "':' in conditional expression")
        when_false = self._ternary()
        return Conditional(condition, when_true, when_false)

    def _logical_or(self) -> Node:
        node = self._logical_and()
        while self._at_operator("||"):
            self._advance()
            node = Binary("||", node, self._logical_and())
        return node

    def _logical_and(self) -> Node:
        node = self._comparison()
        while self._at_operator("&&"):
            self._advance()
            node = Binary("&&", node, self._comparison())
        return node

    def _comparison(self) -> Node:
        node = self._additive()
        token = self._peek()
        if token.kind == OPERATOR and token.text in _COMPARISON_OPS:
            self._advance()
            node = Binary(token.text, node, self._additive())
        return node

    def _additive(self) -> Node:
        node = self._term()
        while self._at_operator("+", "-"):
            op = self._advance().text
            node = Binary(op, node, self._term())
        return node

    def _term(self) -> Node:
        node = self._unary()
        while self._at_operator("*", "/"):
            op = self._advance().text
            node = Binary(op, node, self._unary())
        return node

    def _unary(self) -> Node:
        if self._at_operator("-", "+", "!"):
            op = self._advance().text
            return Unary(op, self._unary())
        return self._primary()

    def _primary(self) -> Node:
        token = self._advance()
        if token.kind == NUMBER:
            return Number(float(token.text))
        if token.kind == VARIABLE:
            return Variable(token.text)
        if token.kind == LPAREN:
            node = self._ternary()
            self._expect(RPAREN, "')'")
            return node
        if token.kind == END:
            raise ConfigurationError("Unexpected end of formula: missing operand")
        raise ConfigurationError(
            f"Unexpected {token.describe()}: expected a number, variable or '('"
        )

    # ------------------------------------------------------------------

    def _peek(self) -> Token:
        return self._tokens[self._index]

    def _advance(self) -> Token:
        token = self._tokens[self._index]
        if token.kind != END:
            self._index += 1
        return token

    def _at_operator(self, *ops: str) -> bool:
        token = self._peek()
        return token.kind == OPERATOR and token.text in ops

    def _expect(self, kind: str, description: str) -> Token:
        token = self._peek()
        if token.kind != kind:
            raise ConfigurationError(f"Expected {description} but found {token.describe()}")
        return self._advance()
