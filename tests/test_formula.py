# SPDX-License-Identifier: BSL-1.1
# Copyright (c) 2026 MuVeraAI Corporation
"""Tests for the cost formula tokenizer, parser and evaluator."""

from __future__ import annotations

import pytest

from credits_engine.errors import (
    ConfigurationError,
    FormulaEvaluationError,
    MissingVariableError,
)
from credits_engine.formula import FormulaParser, tokenize
from credits_engine.formula.tokens import END, NUMBER, OPERATOR, VARIABLE


@pytest.fixture
def parser() -> FormulaParser:
    return FormulaParser()


# ---------------------------------------------------------------------------
# TestTokenize
# ---------------------------------------------------------------------------


class TestTokenize:
    def test_tokens_for_simple_formula(self) -> None:
        tokens = tokenize("{token} * 0.001")
        assert [t.kind for t in tokens] == [VARIABLE, OPERATOR, NUMBER, END]
        assert tokens[0].text == "token"
        assert tokens[2].text == "0.001"

    def test_two_character_operators_are_single_tokens(self) -> None:
        tokens = tokenize("{a} >= 1 && {b} != 2")
        operators = [t.text for t in tokens if t.kind == OPERATOR]
        assert operators == [">=", "&&", "!="]

    def test_invalid_character_is_rejected(self) -> None:
        with pytest.raises(ConfigurationError, match="invalid character"):
            tokenize("{a} ^ 2")

    def test_unclosed_brace_is_rejected(self) -> None:
        with pytest.raises(ConfigurationError, match="unclosed"):
            tokenize("{token * 2")

    def test_invalid_variable_name_is_rejected(self) -> None:
        with pytest.raises(ConfigurationError, match="Invalid variable name"):
            tokenize("{1abc} + 1")


# ---------------------------------------------------------------------------
# TestValidate
# ---------------------------------------------------------------------------


class TestValidate:
    @pytest.mark.parametrize(
        "formula",
        [
            "{token} * 0.001 + 10",
            "({a} + {b}) * 2",
            "{a} * -1",
            "{a} > 100 ? {a} * 0.5 : 10",
            "!({a} == 0) && {b} <= 3",
            ".5 + 1.",
        ],
    )
    def test_accepts_valid_formulas(self, parser: FormulaParser, formula: str) -> None:
        parser.validate(formula)

    @pytest.mark.parametrize(
        ("formula", "message"),
        [
            ("", "empty"),
            ("   ", "empty"),
            ("({a} + 1", "unclosed opening parentheses"),
            ("{a} + 1)", "too many closing parentheses"),
            ("{{a}} + 1", "nested"),
            ("{a} + 1}", "too many closing braces"),
            ("{} + 1", "cannot be empty"),
            ("{a} * * 2", "Unexpected"),
            ("{a} +", "missing operand"),
            ("{a} {b}", "Missing operator"),
            ("{a} > 1 ? 2", "':'"),
            ("import os", "invalid character"),
        ],
    )
    def test_rejects_invalid_formulas(
        self, parser: FormulaParser, formula: str, message: str
    ) -> None:
        with pytest.raises(ConfigurationError, match=message):
            parser.validate(formula)


# ---------------------------------------------------------------------------
# TestExtractVariables
# ---------------------------------------------------------------------------


class TestExtractVariables:
    def test_returns_unique_names_in_first_seen_order(self, parser: FormulaParser) -> None:
        assert parser.extract_variables("{b} + {a} * {b} - {c_1}") == ["b", "a", "c_1"]

    def test_formula_without_variables(self, parser: FormulaParser) -> None:
        assert parser.extract_variables("1 + 2") == []

    def test_parsed_formula_exposes_variables(self, parser: FormulaParser) -> None:
        parsed = parser.parse("{x} * {y} + {x}")
        assert parsed.variables == ("x", "y")


# ---------------------------------------------------------------------------
# TestEvaluate
# ---------------------------------------------------------------------------


class TestEvaluate:
    def test_usage_based_formula(self, parser: FormulaParser) -> None:
        assert parser.evaluate("{token} * 0.001 + 10", {"token": 3500}) == pytest.approx(13.5)

    def test_multiplication_binds_tighter_than_addition(self, parser: FormulaParser) -> None:
        assert parser.evaluate("2 + 3 * 4") == 14

    def test_parentheses_override_precedence(self, parser: FormulaParser) -> None:
        assert parser.evaluate("(2 + 3) * 4") == 20

    def test_subtraction_is_left_associative(self, parser: FormulaParser) -> None:
        assert parser.evaluate("10 - 4 - 3") == 3

    def test_division_is_left_associative(self, parser: FormulaParser) -> None:
        assert parser.evaluate("100 / 10 / 5") == 2

    def test_unary_minus(self, parser: FormulaParser) -> None:
        assert parser.evaluate("{a} * -1", {"a": 4}) == -4

    def test_comparison_yields_one_or_zero(self, parser: FormulaParser) -> None:
        assert parser.evaluate("{a} > 1", {"a": 2}) == 1
        assert parser.evaluate("{a} > 1", {"a": 0}) == 0

    def test_conditional_picks_branch(self, parser: FormulaParser) -> None:
        formula = "{token} > 1000 ? {token} * 0.001 : 1"
        assert parser.evaluate(formula, {"token": 5000}) == pytest.approx(5.0)
        assert parser.evaluate(formula, {"token": 10}) == 1

    def test_nested_conditional_is_right_associative(self, parser: FormulaParser) -> None:
        formula = "{a} > 2 ? 30 : {a} > 1 ? 20 : 10"
        assert parser.evaluate(formula, {"a": 3}) == 30
        assert parser.evaluate(formula, {"a": 2}) == 20
        assert parser.evaluate(formula, {"a": 1}) == 10

    def test_logical_operators(self, parser: FormulaParser) -> None:
        assert parser.evaluate("{a} > 0 && {b} > 0", {"a": 1, "b": 0}) == 0
        assert parser.evaluate("{a} > 0 || {b} > 0", {"a": 1, "b": 0}) == 1
        assert parser.evaluate("!{a}", {"a": 0}) == 1

    def test_repeated_variable_uses_same_binding(self, parser: FormulaParser) -> None:
        assert parser.evaluate("{x} * {x}", {"x": 3}) == 9

    def test_parsed_formula_is_reusable(self, parser: FormulaParser) -> None:
        parsed = parser.parse("{n} * 2")
        assert parsed.compute({"n": 1}) == 2
        assert parsed.compute({"n": 5}) == 10
        assert parsed.compute({"n": 1}) == 2

    def test_missing_variable_names_first_missing(self, parser: FormulaParser) -> None:
        with pytest.raises(MissingVariableError) as exc_info:
            parser.evaluate("{a} + {b}", {"a": 1})
        assert exc_info.value.missing_variable == "b"
        assert exc_info.value.provided_variables == ["a"]
        assert exc_info.value.code == "MISSING_VARIABLE"

    def test_division_by_zero(self, parser: FormulaParser) -> None:
        with pytest.raises(FormulaEvaluationError, match="division by zero"):
            parser.evaluate("{a} / {b}", {"a": 1, "b": 0})

    def test_non_numeric_binding_is_rejected(self, parser: FormulaParser) -> None:
        with pytest.raises(FormulaEvaluationError, match="invalid value"):
            parser.evaluate("{a} + 1", {"a": "ten"})

    def test_non_finite_binding_is_rejected(self, parser: FormulaParser) -> None:
        with pytest.raises(FormulaEvaluationError):
            parser.evaluate("{a} + 1", {"a": float("inf")})

    def test_extra_bindings_are_ignored(self, parser: FormulaParser) -> None:
        assert parser.evaluate("{a} + 1", {"a": 1, "unused": 99}) == 2
