# SPDX-License-Identifier: BSL-1.1
# Copyright (c) 2026 MuVeraAI Corporation
"""Shared fixtures for credits-engine tests."""

from __future__ import annotations

from typing import Any

import pytest

from credits_engine.engine import CreditsEngine
from credits_engine.storage.memory import MemoryStorage

from support import RecordingLogger, RecordingSleep, make_config


@pytest.fixture
def config() -> dict[str, Any]:
    return make_config()


@pytest.fixture
def storage() -> MemoryStorage:
    """An empty MemoryStorage."""
    return MemoryStorage()


@pytest.fixture
def logger() -> RecordingLogger:
    return RecordingLogger()


@pytest.fixture
def sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def engine(
    storage: MemoryStorage,
    config: dict[str, Any],
    logger: RecordingLogger,
    sleep: RecordingSleep,
) -> CreditsEngine:
    """A CreditsEngine over ``storage`` that never really sleeps."""
    return CreditsEngine(storage, config, logger=logger, retry_sleep=sleep)


@pytest.fixture
def users(storage: MemoryStorage) -> MemoryStorage:
    """Storage pre-populated with one user per interesting tier."""
    storage.create_user("user-free", credits=100, membership_tier="free")
    storage.create_user("user-basic", credits=500, membership_tier="basic")
    storage.create_user("user-premium", credits=1800, membership_tier="premium")
    storage.create_user("user-none", credits=50)
    return storage
