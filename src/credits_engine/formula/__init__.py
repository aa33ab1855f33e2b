# SPDX-License-Identifier: BSL-1.1
# Copyright (c) 2026 MuVeraAI Corporation
from __future__ import annotations

from credits_engine.formula.parser import FormulaParser, ParsedFormula
from credits_engine.formula.tokens import VARIABLE_NAME_PATTERN, Token, tokenize

__all__ = [
    "FormulaParser",
    "ParsedFormula",
    "Token",
    "VARIABLE_NAME_PATTERN",
    "tokenize",
]
