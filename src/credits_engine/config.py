# SPDX-License-Identifier: BSL-1.1
# Copyright (c) 2026 MuVeraAI Corporation
from __future__ import annotations

import math
from typing import Annotated, Any, Mapping, Union

from pydantic import (
    BaseModel,
    Field,
    ValidationError,
    ValidationInfo,
    field_validator,
    model_validator,
)

from credits_engine.errors import ConfigurationError
from credits_engine.formula.parser import FormulaParser

CostValue = Union[float, str]
NonNegative = Annotated[float, Field(ge=0, allow_inf_nan=False)]

DEFAULT_RETRYABLE_ERRORS: tuple[str, ...] = (
    # Network
    "ECONNRESET",
    "ECONNREFUSED",
    "ETIMEDOUT",
    "ENOTFOUND",
    "ENETUNREACH",
    "ConnectionError",
    "TimeoutError",
    # Database locks
    "ER_LOCK_WAIT_TIMEOUT",
    "ER_LOCK_DEADLOCK",
    "SQLITE_BUSY",
    "SQLITE_LOCKED",
    # Prisma-style pool timeout / write conflict
    "P2024",
    "P2034",
    # HTTP status codes
    "408",
    "429",
    "500",
    "502",
    "503",
    "504",
)

_formula_parser = FormulaParser()


class MembershipConfig(BaseModel, frozen=True):
    """
    Membership tiers and per-action requirements.

    Attributes:
        tiers: Tier name -> numeric level. Higher levels grant more access.
        requirements: Action -> minimum tier name, or None when the action
            is open to everyone.
        credits_caps: Tier name -> the balance a user is set to on moving
            into that tier. Every configured tier must have a cap.
    """

    tiers: dict[str, NonNegative] = Field(default_factory=dict)
    requirements: dict[str, Union[str, None]] = Field(default_factory=dict)
    credits_caps: dict[str, NonNegative] = Field(default_factory=dict)

    @field_validator("requirements")
    @classmethod
    def requirements_reference_known_tiers(
        cls, value: dict[str, str | None], info: ValidationInfo
    ) -> dict[str, str | None]:
        if "tiers" not in info.data:
            return value
        tiers = info.data["tiers"]
        for action, tier in value.items():
            if tier is not None and tier not in tiers:
                raise ConfigurationError(
                    f"Action '{action}' requires undefined membership tier '{tier}'.",
                    field=f"membership.requirements.{action}",
                )
        return value

    @field_validator("credits_caps")
    @classmethod
    def every_tier_has_a_cap(
        cls, value: dict[str, float], info: ValidationInfo
    ) -> dict[str, float]:
        for tier in info.data.get("tiers") or {}:
            if tier not in value:
                raise ConfigurationError(
                    f"Membership tier '{tier}' has no credits cap.",
                    field=f"membership.credits_caps.{tier}",
                )
        return value


class RetryConfig(BaseModel, frozen=True):
    """
    Retry behaviour for storage reads.

    Delays are in seconds. The wait before attempt ``k + 1`` is
    ``min(max_delay, initial_delay * backoff_multiplier ** (k - 1))``.

    Attributes:
        enabled: When False every operation runs exactly once.
        max_attempts: Total attempts, including the first.
        initial_delay: Wait after the first failure.
        max_delay: Upper bound for any single wait.
        backoff_multiplier: Growth factor applied per attempt.
        retryable_errors: Error codes, names or status codes considered
            transient.
    """

    enabled: bool = True
    max_attempts: Annotated[int, Field(ge=1)] = 3
    initial_delay: NonNegative = 0.1
    max_delay: NonNegative = 5.0
    backoff_multiplier: Annotated[float, Field(ge=1, allow_inf_nan=False)] = 2.0
    retryable_errors: tuple[str, ...] = DEFAULT_RETRYABLE_ERRORS

    @model_validator(mode="after")
    def max_delay_not_below_initial(self) -> RetryConfig:
        if self.max_delay < self.initial_delay:
            raise ConfigurationError(
                f"Retry max_delay ({self.max_delay}) must be >= initial_delay "
                f"({self.initial_delay}).",
                field="retry.max_delay",
            )
        return self


class IdempotencyConfig(BaseModel, frozen=True):
    """
    Attributes:
        enabled: When False idempotency keys are ignored.
        ttl: Seconds a cached result stays replayable.
    """

    enabled: bool = True
    ttl: NonNegative = 86_400


class AuditConfig(BaseModel, frozen=True):
    """
    Attributes:
        enabled: When False no audit entries are written.
    """

    enabled: bool = True


class CreditsConfig(BaseModel, frozen=True):
    """
    Top-level configuration for the CreditsEngine.

    Only ``costs`` is required. Each action maps ``default`` (and optionally
    tier names) to a fixed cost or a formula string::

        config = CreditsConfig(
            costs={
                "generate-post": {"default": 10, "premium": 8},
                "ai-completion": {"default": "{token} * 0.001 + 10"},
            },
            membership=MembershipConfig(
                tiers={"basic": 1, "premium": 2},
                requirements={"generate-post": None},
                credits_caps={"basic": 500, "premium": 2000},
            ),
            retry=RetryConfig(max_attempts=3, initial_delay=0.1, max_delay=2.0),
        )

    The configuration is validated completely at construction and never
    changes afterwards.
    """

    costs: dict[str, dict[str, CostValue]]
    membership: MembershipConfig = Field(default_factory=MembershipConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)
    idempotency: IdempotencyConfig = Field(default_factory=IdempotencyConfig)
    audit: AuditConfig = Field(default_factory=AuditConfig)

    @field_validator("costs")
    @classmethod
    def costs_are_well_formed(
        cls, value: dict[str, dict[str, CostValue]]
    ) -> dict[str, dict[str, CostValue]]:
        for action, entries in value.items():
            if "default" not in entries:
                raise ConfigurationError(
                    f"Action '{action}' must have a default cost.",
                    field=f"costs.{action}.default",
                )
            for key, cost in entries.items():
                path = f"costs.{action}.{key}"
                if isinstance(cost, str):
                    try:
                        _formula_parser.validate(cost)
                    except ConfigurationError as exc:
                        raise ConfigurationError(
                            f"Invalid formula for action '{action}' ({key}): {exc.message}",
                            field=path,
                        ) from exc
                elif not math.isfinite(cost) or cost < 0:
                    raise ConfigurationError(
                        f"Action '{action}' cost for '{key}' must be a finite "
                        f"non-negative number; got {cost}.",
                        field=path,
                    )
        return value

    def required_tier(self, action: str) -> str | None:
        """Return the minimum tier ``action`` requires, or None."""
        return self.membership.requirements.get(action)


def load_config(config: CreditsConfig | Mapping[str, Any]) -> CreditsConfig:
    """
    Validate ``config`` into a :class:`CreditsConfig`.

    Raises:
        ConfigurationError: With ``field`` set to the dotted path of the
            first invalid field.
    """
    if isinstance(config, CreditsConfig):
        return config
    if not isinstance(config, Mapping):
        raise ConfigurationError("Configuration must be a mapping or CreditsConfig.")
    try:
        return CreditsConfig.model_validate(dict(config))
    except ValidationError as exc:
        error = exc.errors()[0]
        field = ".".join(str(part) for part in error["loc"])
        message = error["msg"].removeprefix("Value error, ")
        raise ConfigurationError(
            f"Invalid configuration for '{field}': {message}",
            field=field,
        ) from exc
