# SPDX-License-Identifier: BSL-1.1
# Copyright (c) 2026 MuVeraAI Corporation
from __future__ import annotations

from typing import Any


class CreditsError(Exception):
    """Base class for all credits-engine errors."""

    def __init__(self, message: str, code: str = "CREDITS_ERROR") -> None:
        super().__init__(message)
        self.code = code
        self.message = message

    def __repr__(self) -> str:
        return f"{type(self).__name__}(code={self.code!r}, message={self.message!r})"


class ConfigurationError(CreditsError):
    """
    Raised when the engine is misconfigured or a cost formula is malformed.

    Attributes:
        field: Dotted path of the offending configuration field, when known.
    """

    def __init__(self, message: str, field: str | None = None) -> None:
        super().__init__(message, code="CONFIGURATION_ERROR")
        self.field = field


class UndefinedActionError(CreditsError):
    """Raised when an action has no entry in the cost configuration."""

    def __init__(self, action: str) -> None:
        super().__init__(f"Action '{action}' has no defined cost.", code="UNDEFINED_ACTION")
        self.action = action


class UndefinedTierError(CreditsError):
    """Raised when a membership tier is not defined in the configuration."""

    def __init__(self, tier: str) -> None:
        super().__init__(
            f"Membership tier '{tier}' is not defined in the configuration.",
            code="UNDEFINED_TIER",
        )
        self.tier = tier


class UserNotFoundError(CreditsError):
    """Raised when the storage backend has no user with the given id."""

    def __init__(self, user_id: str) -> None:
        super().__init__(f"User '{user_id}' not found.", code="USER_NOT_FOUND")
        self.user_id = user_id


class InsufficientCreditsError(CreditsError):
    """
    Raised when a charge would take a balance below zero.

    Attributes:
        user_id: The user being charged.
        required: The cost of the action.
        available: The user's balance at the time of the check.
    """

    def __init__(self, user_id: str, required: float, available: float) -> None:
        super().__init__(
            f"User '{user_id}' has insufficient credits. "
            f"Required: {required}, available: {available}.",
            code="INSUFFICIENT_CREDITS",
        )
        self.user_id = user_id
        self.required = required
        self.available = available


class MembershipRequiredError(CreditsError):
    """
    Raised when an action requires a higher (or active) membership tier.

    Attributes:
        user_id: The user whose membership was evaluated.
        required: The minimum tier the action requires.
        actual: The user's effective tier, or None when no active membership.
    """

    def __init__(self, user_id: str | None, required: str, actual: str | None) -> None:
        subject = f"User '{user_id}'" if user_id else "User"
        super().__init__(
            f"{subject} requires '{required}' membership, but has '{actual or 'none'}'.",
            code="MEMBERSHIP_REQUIRED",
        )
        self.user_id = user_id
        self.required = required
        self.actual = actual


class InvalidTierChangeError(CreditsError):
    """
    Raised when an upgrade does not move up, or a downgrade does not move down.

    Attributes:
        current: The user's current tier (None when the user has no tier).
        target: The requested tier.
        direction: ``'upgrade'`` or ``'downgrade'``.
    """

    def __init__(self, current: str | None, target: str, direction: str) -> None:
        super().__init__(
            f"Cannot {direction} from '{current or 'none'}' to '{target}'.",
            code="INVALID_TIER_CHANGE",
        )
        self.current = current
        self.target = target
        self.direction = direction


class MissingVariableError(CreditsError):
    """
    Raised when a cost formula references a variable with no binding.

    Attributes:
        formula: The formula text being evaluated.
        missing_variable: The first variable with no binding.
        provided_variables: Names of the variables that were supplied.
    """

    def __init__(
        self,
        formula: str,
        missing_variable: str,
        provided_variables: list[str],
    ) -> None:
        provided = ", ".join(provided_variables) if provided_variables else "none"
        super().__init__(
            f"Formula '{formula}' requires variable '{missing_variable}' "
            f"(provided: {provided}).",
            code="MISSING_VARIABLE",
        )
        self.formula = formula
        self.missing_variable = missing_variable
        self.provided_variables = provided_variables


class FormulaEvaluationError(CreditsError):
    """Raised when a formula cannot produce a finite number."""

    def __init__(self, formula: str, variables: dict[str, Any], reason: str) -> None:
        super().__init__(
            f"Failed to evaluate formula '{formula}': {reason}",
            code="FORMULA_EVALUATION_ERROR",
        )
        self.formula = formula
        self.variables = dict(variables)
        self.reason = reason


class IdempotencyKeyConflictError(CreditsError):
    """Raised by storage when a live idempotency record already holds the key."""

    def __init__(self, key: str) -> None:
        super().__init__(
            f"Idempotency key '{key}' already exists.",
            code="IDEMPOTENCY_KEY_CONFLICT",
        )
        self.key = key
