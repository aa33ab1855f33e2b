# SPDX-License-Identifier: BSL-1.1
# Copyright (c) 2026 MuVeraAI Corporation

"""
Tokenizer for the cost formula language.

Produces a flat list of :class:`Token` objects. Only numeric literals,
``{variable}`` placeholders, arithmetic / comparison / logical operators,
parentheses and the ternary ``?`` / ``:`` are recognised; anything else is a
:class:`~credits_engine.errors.ConfigurationError`.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from credits_engine.errors import ConfigurationError

VARIABLE_NAME_PATTERN = re.compile(r"^[a-zA-Z][a-zA-Z0-9_]*$")

NUMBER = "NUMBER"
VARIABLE = "VARIABLE"
OPERATOR = "OPERATOR"
LPAREN = "LPAREN"
RPAREN = "RPAREN"
QUESTION = "QUESTION"
COLON = "COLON"
END = "END"

# Two-character operators must be listed before their one-character prefixes.
_OPERATORS = ("<=", ">=", "==", "!=", "&&", "||", "+", "-", "*", "/", "<", ">", "!")

_NUMBER_RE = re.compile(r"\d+(?:\.\d*)?|\.\d+")
_PUNCTUATION = {"(": LPAREN, ")": RPAREN, "?": QUESTION, ":": COLON}


@dataclass(frozen=True)
class Token:
    kind: str
    text: str
    position: int

    def describe(self) -> str:
        if self.kind == END:
            return "end of formula"
        return f"'{self.text}' at position {self.position}"


def tokenize(formula: str) -> list[Token]:
    """
    Split ``formula`` into tokens, terminated by an ``END`` token.

    Raises:
        ConfigurationError: On characters outside the grammar or on a
            malformed ``{variable}`` placeholder.
    """
    tokens: list[Token] = []
    index = 0
    length = len(formula)

    while index < length:
        char = formula[index]

        if char.isspace():
            index += 1
            continue

        number = _NUMBER_RE.match(formula, index)
        if number is not None:
            tokens.append(Token(NUMBER, number.group(), index))
            index = number.end()
            continue

        if char == "{":
            close = formula.find("}", index + 1)
            if close == -1:
                raise ConfigurationError("Mismatched braces: unclosed opening brace")
            name = formula[index + 1 : close]
            _check_variable_name(name)
            tokens.append(Token(VARIABLE, name, index))
            index = close + 1
            continue

        if char == "}":
            raise ConfigurationError("Mismatched braces: too many closing braces")

        if char in _PUNCTUATION:
            tokens.append(Token(_PUNCTUATION[char], char, index))
            index += 1
            continue

        operator = next((op for op in _OPERATORS if formula.startswith(op, index)), None)
        if operator is not None:
            tokens.append(Token(OPERATOR, operator, index))
            index += len(operator)
            continue

        raise ConfigurationError(
            f"Formula contains invalid character '{char}' at position {index}"
        )

    tokens.append(Token(END, "", length))
    return tokens


def _check_variable_name(name: str) -> None:
    if not name.strip():
        raise ConfigurationError("Variable name cannot be empty")
    if not VARIABLE_NAME_PATTERN.match(name):
        raise ConfigurationError(
            f"Invalid variable name '{name}': must start with a letter and "
            "contain only letters, numbers, and underscores"
        )
