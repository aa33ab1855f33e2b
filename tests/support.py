# SPDX-License-Identifier: BSL-1.1
# Copyright (c) 2026 MuVeraAI Corporation
"""Test doubles and shared configuration for credits-engine tests."""

from __future__ import annotations

from typing import Any

from credits_engine.log import LogAdapter


def make_config() -> dict[str, Any]:
    return {
        "costs": {
            "generate-post": {"default": 10, "premium": 8},
            "ai-completion": {
                "default": "{token} * 0.001 + 10",
                "premium": "{token} * 0.0008 + 8",
            },
            "premium-report": {"default": 50},
            "image-resize": {"default": 2, "premium": "{pixels} / 1000"},
        },
        "membership": {
            "tiers": {"free": 0, "basic": 1, "premium": 2, "enterprise": 3},
            "requirements": {"premium-report": "premium", "generate-post": None},
            "credits_caps": {"free": 100, "basic": 500, "premium": 2000, "enterprise": 10000},
        },
        "retry": {"max_attempts": 3, "initial_delay": 0.1, "max_delay": 1.0},
    }


class RecordingLogger(LogAdapter):
    """Collects (level, message, context) tuples."""

    def __init__(self) -> None:
        self.records: list[tuple[str, str, dict[str, Any]]] = []

    def debug(self, message: str, context: dict[str, Any] | None = None) -> None:
        self.records.append(("debug", message, context or {}))

    def info(self, message: str, context: dict[str, Any] | None = None) -> None:
        self.records.append(("info", message, context or {}))

    def warn(self, message: str, context: dict[str, Any] | None = None) -> None:
        self.records.append(("warn", message, context or {}))

    def error(self, message: str, context: dict[str, Any] | None = None) -> None:
        self.records.append(("error", message, context or {}))

    def messages(self, level: str | None = None) -> list[str]:
        return [message for lvl, message, _ in self.records if level is None or lvl == level]


class RecordingSleep:
    """Async sleep replacement that records requested delays."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)

