# SPDX-License-Identifier: BSL-1.1
# Copyright (c) 2026 MuVeraAI Corporation

"""
Bounded exponential-backoff retries for storage reads.

Built on :mod:`tenacity`. An error is retried only when it matches the
configured allow-list (exception class names along the MRO, ``code``,
``errno`` name, ``status_code`` / ``status``, or a non-numeric entry found in
the message). Credits domain errors are never retried.
"""

from __future__ import annotations

import asyncio
import errno
from typing import Any, Awaitable, Callable, Iterable, TypeVar

from pydantic import BaseModel
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from credits_engine.config import RetryConfig
from credits_engine.errors import CreditsError
from credits_engine.log import LogAdapter, StandardLogger

T = TypeVar("T")

SleepFn = Callable[[float], Awaitable[Any]]


class RetryOptions(BaseModel, frozen=True):
    """Per-call overrides merged over the engine's :class:`RetryConfig`."""

    max_attempts: int | None = None
    initial_delay: float | None = None
    max_delay: float | None = None
    backoff_multiplier: float | None = None
    retryable_errors: tuple[str, ...] | None = None


def is_retryable(error: BaseException, retryable_errors: Iterable[str]) -> bool:
    """Return True if ``error`` looks transient according to ``retryable_errors``."""
    if isinstance(error, CreditsError):
        return False

    allowed = set(retryable_errors)
    candidates: list[Any] = [cls.__name__ for cls in type(error).__mro__]
    candidates.append(getattr(error, "code", None))
    candidates.append(getattr(error, "status_code", None))
    candidates.append(getattr(error, "status", None))

    error_number = getattr(error, "errno", None)
    if isinstance(error_number, int):
        candidates.append(errno.errorcode.get(error_number))

    if any(candidate is not None and str(candidate) in allowed for candidate in candidates):
        return True

    message = str(error).lower()
    return any(
        not token.isdigit() and token.lower() in message
        for token in allowed
    )


class RetryPolicy:
    """
    Wraps async operations with bounded exponential backoff.

    The wait before attempt ``k + 1`` is
    ``min(max_delay, initial_delay * backoff_multiplier ** (k - 1))`` seconds,
    with no jitter. Non-retryable errors propagate immediately; after the last
    attempt the last error propagates unchanged.

    Example::

        policy = RetryPolicy(RetryConfig(max_attempts=3, initial_delay=0.1))
        user = await policy.execute(lambda: storage.get_user_by_id("u-1"))
    """

    def __init__(
        self,
        config: RetryConfig | None = None,
        logger: LogAdapter | None = None,
        sleep: SleepFn | None = None,
    ) -> None:
        self._config = config or RetryConfig()
        self._logger = logger or StandardLogger()
        self._sleep = sleep or asyncio.sleep

    @property
    def config(self) -> RetryConfig:
        return self._config

    async def execute(
        self,
        operation: Callable[[], Awaitable[T]],
        options: RetryOptions | None = None,
        name: str = "operation",
    ) -> T:
        """
        Run ``operation`` until it succeeds, fails permanently, or attempts
        run out.
        """
        if not self._config.enabled:
            return await operation()

        config = self._merge(options)
        attempts = 0

        async def attempt() -> T:
            nonlocal attempts
            attempts += 1
            self._logger.debug(
                "retry.attempt",
                {"operation": name, "attempt": attempts, "max_attempts": config.max_attempts},
            )
            return await operation()

        def before_sleep(retry_state: RetryCallState) -> None:
            error = retry_state.outcome.exception() if retry_state.outcome else None
            delay = retry_state.next_action.sleep if retry_state.next_action else 0.0
            self._logger.warn(
                "retry.scheduled",
                {
                    "operation": name,
                    "attempt": retry_state.attempt_number,
                    "max_attempts": config.max_attempts,
                    "next_retry_in": delay,
                    "error": _describe(error),
                },
            )

        retrying = AsyncRetrying(
            stop=stop_after_attempt(config.max_attempts),
            wait=wait_exponential(
                multiplier=config.initial_delay,
                exp_base=config.backoff_multiplier,
                min=0,
                max=config.max_delay,
            ),
            retry=retry_if_exception(
                lambda error: is_retryable(error, config.retryable_errors)
            ),
            before_sleep=before_sleep,
            sleep=self._sleep,
            reraise=True,
        )

        try:
            result = await retrying(attempt)
        except Exception as error:
            context = {
                "operation": name,
                "attempt": attempts,
                "max_attempts": config.max_attempts,
                "error": _describe(error),
            }
            if is_retryable(error, config.retryable_errors):
                self._logger.error("retry.exhausted", context)
            else:
                self._logger.warn("retry.not_retryable", context)
            raise

        if attempts > 1:
            self._logger.info(
                "retry.succeeded",
                {"operation": name, "attempt": attempts, "max_attempts": config.max_attempts},
            )
        return result

    def _merge(self, options: RetryOptions | None) -> RetryConfig:
        if options is None:
            return self._config
        overrides = options.model_dump(exclude_none=True)
        if not overrides:
            return self._config
        return RetryConfig.model_validate({**self._config.model_dump(), **overrides})


def _describe(error: BaseException | None) -> dict[str, Any]:
    if error is None:
        return {}
    return {
        "name": type(error).__name__,
        "message": str(error),
        "code": getattr(error, "code", None),
        "status_code": getattr(error, "status_code", None),
    }
