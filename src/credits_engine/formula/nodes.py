# SPDX-License-Identifier: BSL-1.1
# Copyright (c) 2026 MuVeraAI Corporation

"""
Expression tree for parsed cost formulas.

Every node evaluates to a float. Comparison and logical operators yield
``1.0`` / ``0.0``; a condition is true when it is non-zero.
"""

from __future__ import annotations

import operator
from dataclasses import dataclass
from typing import Callable, Mapping, Union

_ARITHMETIC: dict[str, Callable[[float, float], float]] = {
    "+": operator.add,
    "-": operator.sub,
    "*": operator.mul,
    "/": operator.truediv,
}

_COMPARISON: dict[str, Callable[[float, float], bool]] = {
    "<": operator.lt,
    ">": operator.gt,
    "<=": operator.le,
    ">=": operator.ge,
    "==": operator.eq,
    "!=": operator.ne,
}


def _truth(value: float) -> float:
    return 1.0 if value else 0.0


@dataclass(frozen=True)
class Number:
    value: float

    def evaluate(self, bindings: Mapping[str, float]) -> float:
        return self.value


@dataclass(frozen=True)
class Variable:
    name: str

    def evaluate(self, bindings: Mapping[str, float]) -> float:
        return float(bindings[self.name])


@dataclass(frozen=True)
class Unary:
    op: str
    operand: Node

    def evaluate(self, bindings: Mapping[str, float]) -> float:
        value = self.operand.evaluate(bindings)
        if self.op == "-":
            return -value
        if self.op == "!":
            return _truth(not value)
        return value


@dataclass(frozen=True)
class Binary:
    op: str
    left: Node
    right: Node

    def evaluate(self, bindings: Mapping[str, float]) -> float:
        # Raises ZeroDivisionError for "/" by zero; callers translate it.
        if self.op == "&&":
            return _truth(self.left.evaluate(bindings) and self.right.evaluate(bindings))
        if self.op == "||":
            return _truth(self.left.evaluate(bindings) or self.right.evaluate(bindings))

        left = self.left.evaluate(bindings)
        right = self.right.evaluate(bindings)
        if self.op in _COMPARISON:
            return _truth(_COMPARISON[self.op](left, right))
        return _ARITHMETIC[self.op](left, right)


@dataclass(frozen=True)
class Conditional:
    condition: Node
    when_true: Node
    when_false: Node

    def evaluate(self, bindings: Mapping[str, float]) -> float:
        if self.condition.evaluate(bindings):
            return self.when_true.evaluate(bindings)
        return self.when_false.evaluate(bindings)


Node = Union[Number, Variable, Unary, Binary, Conditional]
