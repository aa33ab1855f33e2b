# SPDX-License-Identifier: BSL-1.1
# Copyright (c) 2026 MuVeraAI Corporation
from __future__ import annotations

from datetime import datetime, timezone
from typing import Mapping

from pydantic import BaseModel

from credits_engine.config import MembershipConfig
from credits_engine.errors import MembershipRequiredError, UndefinedTierError
from credits_engine.types import User, utc_now

# Level assigned to users without an active tier; below every configured tier.
NO_TIER_LEVEL = -1.0


class MembershipCheckResult(BaseModel, frozen=True):
    """
    Result of a membership requirement check.

    Attributes:
        allowed: True if the user's effective tier satisfies the requirement.
        required_tier: The tier the action requires, or None.
        current_tier: The user's effective tier (None when absent or expired).
        is_expired: True if the user has a tier whose expiry has passed.
        reason: Human-readable explanation of the decision.
    """

    allowed: bool
    required_tier: str | None
    current_tier: str | None
    is_expired: bool
    reason: str


def is_expired(expires_at: datetime | None, now: datetime | None = None) -> bool:
    """A tier with no expiry never expires; otherwise it expires at ``expires_at``."""
    if expires_at is None:
        return False
    if expires_at.tzinfo is None:
        expires_at = expires_at.replace(tzinfo=timezone.utc)
    return expires_at <= (now or utc_now())


def effective_tier(
    user_tier: str | None,
    tier_expiry: datetime | None,
    now: datetime | None = None,
) -> str | None:
    if user_tier is None or is_expired(tier_expiry, now):
        return None
    return user_tier


def check_access(
    user_tier: str | None,
    tier_expiry: datetime | None,
    required_tier: str | None,
    tier_levels: Mapping[str, float],
    now: datetime | None = None,
) -> MembershipCheckResult:
    """
    Decide whether a user's tier satisfies ``required_tier``.

    Pure function: never raises and never touches storage.
    """
    expired = user_tier is not None and is_expired(tier_expiry, now)
    current = effective_tier(user_tier, tier_expiry, now)

    if required_tier is None:
        return MembershipCheckResult(
            allowed=True,
            required_tier=None,
            current_tier=current,
            is_expired=expired,
            reason="Action has no membership requirement.",
        )

    if current is None:
        reason = "Membership expired." if expired else "No active membership."
        return MembershipCheckResult(
            allowed=False,
            required_tier=required_tier,
            current_tier=None,
            is_expired=expired,
            reason=reason,
        )

    required_level = tier_levels.get(required_tier)
    if required_level is None:
        return MembershipCheckResult(
            allowed=False,
            required_tier=required_tier,
            current_tier=current,
            is_expired=expired,
            reason=f"Required tier '{required_tier}' is not defined in the configuration.",
        )

    current_level = tier_levels.get(current, NO_TIER_LEVEL)
    allowed = current_level >= required_level
    if allowed:
        reason = (
            f"Tier '{current}' (level {current_level:g}) satisfies "
            f"required tier '{required_tier}' (level {required_level:g})."
        )
    else:
        reason = (
            f"Tier '{current}' (level {current_level:g}) is below "
            f"required tier '{required_tier}' (level {required_level:g})."
        )
    return MembershipCheckResult(
        allowed=allowed,
        required_tier=required_tier,
        current_tier=current,
        is_expired=expired,
        reason=reason,
    )


def validate_access(
    user_tier: str | None,
    tier_expiry: datetime | None,
    required_tier: str | None,
    tier_levels: Mapping[str, float],
    now: datetime | None = None,
    user_id: str | None = None,
) -> bool:
    """
    Return True if access is granted.

    Raises:
        MembershipRequiredError: If the effective tier does not reach
            ``required_tier``.
    """
    result = check_access(user_tier, tier_expiry, required_tier, tier_levels, now)
    if not result.allowed:
        raise MembershipRequiredError(user_id, required_tier or "", result.current_tier)
    return True


class MembershipValidator:
    """
    Applies a :class:`~credits_engine.config.MembershipConfig` to users.

    Example::

        validator = MembershipValidator(MembershipConfig(
            tiers={"basic": 1, "premium": 2},
            credits_caps={"basic": 500, "premium": 2000},
        ))
        validator.check(user, "premium").allowed
    """

    def __init__(self, config: MembershipConfig | None = None) -> None:
        self._config = config or MembershipConfig()

    def check(self, user: User, required_tier: str | None) -> MembershipCheckResult:
        return check_access(
            user.membership_tier,
            user.membership_expires_at,
            required_tier,
            self._config.tiers,
        )

    def require(self, user: User, required_tier: str | None) -> MembershipCheckResult:
        """
        Like :meth:`check`, but raise when access is denied.

        Raises:
            MembershipRequiredError: If the user's effective tier is too low.
        """
        result = self.check(user, required_tier)
        if not result.allowed:
            raise MembershipRequiredError(user.id, required_tier or "", result.current_tier)
        return result

    def tier_level(self, tier: str | None) -> float:
        """Return the configured level of ``tier``; no tier ranks lowest."""
        if tier is None:
            return NO_TIER_LEVEL
        return self._config.tiers.get(tier, NO_TIER_LEVEL)

    def require_defined(self, tier: str) -> float:
        """
        Return the level of ``tier``.

        Raises:
            UndefinedTierError: If ``tier`` is not configured.
        """
        level = self._config.tiers.get(tier)
        if level is None:
            raise UndefinedTierError(tier)
        return level

    def credits_cap(self, tier: str) -> float:
        cap = self._config.credits_caps.get(tier)
        if cap is None:
            raise UndefinedTierError(tier)
        return cap
