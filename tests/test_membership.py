# SPDX-License-Identifier: BSL-1.1
# Copyright (c) 2026 MuVeraAI Corporation
"""Tests for membership tier checks."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from credits_engine.config import MembershipConfig
from credits_engine.errors import MembershipRequiredError, UndefinedTierError
from credits_engine.membership import (
    MembershipValidator,
    check_access,
    effective_tier,
    is_expired,
    validate_access,
)
from credits_engine.types import User

LEVELS = {"free": 0, "basic": 1, "premium": 2}
NOW = datetime(2026, 6, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def validator() -> MembershipValidator:
    return MembershipValidator(
        MembershipConfig(
            tiers=LEVELS,
            credits_caps={"free": 100, "basic": 500, "premium": 2000},
        )
    )


# ---------------------------------------------------------------------------
# TestExpiry
# ---------------------------------------------------------------------------


class TestExpiry:
    def test_no_expiry_never_expires(self) -> None:
        assert is_expired(None, NOW) is False

    def test_future_expiry_is_active(self) -> None:
        assert is_expired(NOW + timedelta(seconds=1), NOW) is False

    def test_expiry_at_now_is_expired(self) -> None:
        assert is_expired(NOW, NOW) is True

    def test_naive_expiry_is_treated_as_utc(self) -> None:
        naive = datetime(2026, 5, 1)
        assert is_expired(naive, NOW) is True

    def test_effective_tier_drops_expired_tier(self) -> None:
        assert effective_tier("premium", NOW - timedelta(days=1), NOW) is None
        assert effective_tier("premium", NOW + timedelta(days=1), NOW) == "premium"


# ---------------------------------------------------------------------------
# TestCheckAccess
# ---------------------------------------------------------------------------


class TestCheckAccess:
    def test_no_requirement_allows_anyone(self) -> None:
        result = check_access(None, None, None, LEVELS, NOW)
        assert result.allowed is True

    def test_no_tier_is_denied(self) -> None:
        result = check_access(None, None, "basic", LEVELS, NOW)
        assert result.allowed is False
        assert result.is_expired is False
        assert result.reason == "No active membership."

    def test_expired_tier_is_denied(self) -> None:
        result = check_access("premium", NOW - timedelta(minutes=1), "basic", LEVELS, NOW)
        assert result.allowed is False
        assert result.is_expired is True
        assert result.current_tier is None

    def test_higher_tier_is_allowed(self) -> None:
        assert check_access("premium", None, "basic", LEVELS, NOW).allowed is True

    def test_equal_tier_is_allowed(self) -> None:
        assert check_access("basic", None, "basic", LEVELS, NOW).allowed is True

    def test_lower_tier_is_denied(self) -> None:
        result = check_access("free", None, "premium", LEVELS, NOW)
        assert result.allowed is False
        assert "below" in result.reason

    def test_undefined_required_tier_is_denied(self) -> None:
        assert check_access("premium", None, "platinum", LEVELS, NOW).allowed is False

    def test_unknown_user_tier_ranks_lowest(self) -> None:
        assert check_access("legacy", None, "free", LEVELS, NOW).allowed is False


class TestValidateAccess:
    def test_returns_true_when_allowed(self) -> None:
        assert validate_access("premium", None, "basic", LEVELS, NOW) is True

    def test_raises_when_denied(self) -> None:
        with pytest.raises(MembershipRequiredError) as exc_info:
            validate_access("free", None, "premium", LEVELS, NOW, user_id="u-1")
        assert exc_info.value.required == "premium"
        assert exc_info.value.actual == "free"
        assert exc_info.value.user_id == "u-1"


# ---------------------------------------------------------------------------
# TestMembershipValidator
# ---------------------------------------------------------------------------


class TestMembershipValidator:
    def test_require_passes_for_sufficient_tier(self, validator: MembershipValidator) -> None:
        user = User(id="u-1", membership_tier="premium")
        assert validator.require(user, "basic").allowed is True

    def test_require_raises_for_expired_tier(self, validator: MembershipValidator) -> None:
        user = User(
            id="u-1",
            membership_tier="premium",
            membership_expires_at=datetime.now(tz=timezone.utc) - timedelta(days=1),
        )
        with pytest.raises(MembershipRequiredError) as exc_info:
            validator.require(user, "basic")
        assert exc_info.value.actual is None

    def test_tier_level(self, validator: MembershipValidator) -> None:
        assert validator.tier_level("premium") == 2
        assert validator.tier_level(None) < validator.tier_level("free")

    def test_require_defined_rejects_unknown_tier(self, validator: MembershipValidator) -> None:
        with pytest.raises(UndefinedTierError):
            validator.require_defined("platinum")

    def test_credits_cap(self, validator: MembershipValidator) -> None:
        assert validator.credits_cap("basic") == 500
