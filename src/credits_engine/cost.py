# SPDX-License-Identifier: BSL-1.1
# Copyright (c) 2026 MuVeraAI Corporation

"""
Per-action cost resolution.

Each action in the cost configuration maps ``default`` and optional tier
names to either a fixed number or a formula string. Fixed costs are returned
as configured. Formula results are rounded to two decimals (half up) and
never go below zero.
"""

from __future__ import annotations

import math
from typing import Any, Mapping

from credits_engine.config import CostValue
from credits_engine.errors import FormulaEvaluationError, UndefinedActionError
from credits_engine.formula.parser import FormulaParser, ParsedFormula
from credits_engine.types import CalculationDetails


def round_cost(raw: float) -> float:
    """Round to two decimals, halves away from zero for non-negative input."""
    return math.floor(raw * 100 + 0.5) / 100


class CostCalculator:
    """
    Resolves the cost of an action for a membership tier.

    All formulas are compiled once at construction; invalid ones raise
    :class:`~credits_engine.errors.ConfigurationError` immediately.

    Example::

        calculator = CostCalculator({
            "generate-post": {"default": 10, "premium": 8},
            "ai-completion": {"default": "{token} * 0.001 + 10"},
        })
        calculator.calculate("generate-post", "premium")                  # 8
        calculator.calculate("ai-completion", None, {"token": 3500})      # 13.5
    """

    def __init__(
        self,
        costs: Mapping[str, Mapping[str, CostValue]],
        parser: FormulaParser | None = None,
    ) -> None:
        self._costs = costs
        self._parser = parser or FormulaParser()
        self._compiled: dict[str, ParsedFormula] = {}
        for entries in costs.values():
            for value in entries.values():
                if isinstance(value, str) and value not in self._compiled:
                    self._compiled[value] = self._parser.parse(value)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def calculate(
        self,
        action: str,
        tier: str | None,
        variables: Mapping[str, Any] | None = None,
    ) -> float:
        """
        Return the cost of ``action`` for a user on ``tier``.

        When the resolved entry is a formula and no variables are given, a
        numeric ``default`` is used as the fallback price.

        Raises:
            UndefinedActionError: If ``action`` has no cost entry.
            MissingVariableError: If the formula needs variables that were
                not provided and there is no numeric default to fall back to.
            FormulaEvaluationError: On division by zero or invalid values.
        """
        return self.get_calculation_details(action, tier, variables).final_cost

    def is_dynamic(self, action: str, tier: str | None) -> bool:
        """Return True when the entry resolved for ``tier`` is a formula."""
        return isinstance(self._resolve(action, tier), str)

    def get_calculation_details(
        self,
        action: str,
        tier: str | None,
        variables: Mapping[str, Any] | None = None,
    ) -> CalculationDetails:
        """Like :meth:`calculate`, but report how the cost was derived."""
        value = self._resolve(action, tier)

        if not isinstance(value, str):
            return CalculationDetails(raw_cost=value, final_cost=value, is_dynamic=False)

        default = self._costs[action]["default"]
        if not variables and not isinstance(default, str):
            return CalculationDetails(raw_cost=default, final_cost=default, is_dynamic=False)

        parsed = self._formula(value)
        bindings = dict(variables or {})
        raw = max(parsed.compute(bindings), 0.0)
        if not math.isfinite(raw * 100):
            raise FormulaEvaluationError(value, bindings, "result is too large to round")
        return CalculationDetails(
            formula=value,
            # compute() has checked these are present and numeric
            variables={name: bindings[name] for name in parsed.variables},
            raw_cost=raw,
            final_cost=round_cost(raw),
            is_dynamic=True,
        )

    def actions(self) -> list[str]:
        """Return every action with a configured cost."""
        return list(self._costs)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _resolve(self, action: str, tier: str | None) -> CostValue:
        entries = self._costs.get(action)
        if entries is None:
            raise UndefinedActionError(action)
        if tier is not None and entries.get(tier) is not None:
            return entries[tier]
        return entries["default"]

    def _formula(self, formula: str) -> ParsedFormula:
        parsed = self._compiled.get(formula)
        if parsed is None:
            parsed = self._compiled[formula] = self._parser.parse(formula)
        return parsed
