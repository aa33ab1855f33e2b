# SPDX-License-Identifier: BSL-1.1
# Copyright (c) 2026 MuVeraAI Corporation

"""
Logging adapter consumed by the engine and its components.

Hosts can plug in any sink by implementing :class:`LogAdapter`. The default
:class:`StandardLogger` forwards to the standard library ``logging`` module
under the ``credits_engine`` logger, attaching the structured context as
``extra={"context": ...}``.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any


class LogAdapter(ABC):
    """Fire-and-forget structured logging sink."""

    @abstractmethod
    def debug(self, message: str, context: dict[str, Any] | None = None) -> None:
        ...

    @abstractmethod
    def info(self, message: str, context: dict[str, Any] | None = None) -> None:
        ...

    @abstractmethod
    def warn(self, message: str, context: dict[str, Any] | None = None) -> None:
        ...

    @abstractmethod
    def error(self, message: str, context: dict[str, Any] | None = None) -> None:
        ...


class StandardLogger(LogAdapter):
    """LogAdapter backed by :mod:`logging`."""

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self._logger = logger or logging.getLogger("credits_engine")

    def debug(self, message: str, context: dict[str, Any] | None = None) -> None:
        self._emit(logging.DEBUG, message, context)

    def info(self, message: str, context: dict[str, Any] | None = None) -> None:
        self._emit(logging.INFO, message, context)

    def warn(self, message: str, context: dict[str, Any] | None = None) -> None:
        self._emit(logging.WARNING, message, context)

    def error(self, message: str, context: dict[str, Any] | None = None) -> None:
        self._emit(logging.ERROR, message, context)

    def _emit(self, level: int, message: str, context: dict[str, Any] | None) -> None:
        self._logger.log(level, message, extra={"context": context or {}})


class GuardedLogger(LogAdapter):
    """
    Wraps a host adapter so a failing sink never interrupts an operation.

    A call that raises is reported on the ``credits_engine`` logger through
    ``logging.exception``, the way ``logging.Handler.handleError`` reports a
    broken handler, and the operation carries on.
    """

    def __init__(self, inner: LogAdapter) -> None:
        self._inner = inner
        self._fallback = logging.getLogger("credits_engine")

    def debug(self, message: str, context: dict[str, Any] | None = None) -> None:
        self._forward("debug", message, context)

    def info(self, message: str, context: dict[str, Any] | None = None) -> None:
        self._forward("info", message, context)

    def warn(self, message: str, context: dict[str, Any] | None = None) -> None:
        self._forward("warn", message, context)

    def error(self, message: str, context: dict[str, Any] | None = None) -> None:
        self._forward("error", message, context)

    def _forward(self, level: str, message: str, context: dict[str, Any] | None) -> None:
        try:
            getattr(self._inner, level)(message, context)
        except Exception:
            self._fallback.exception("LogAdapter.%s raised while logging %r", level, message)
