# SPDX-License-Identifier: BSL-1.1
# Copyright (c) 2026 MuVeraAI Corporation
"""Tests for RetryPolicy and retryable error classification."""

from __future__ import annotations

import errno

import pytest

from credits_engine.config import DEFAULT_RETRYABLE_ERRORS, RetryConfig
from credits_engine.errors import InsufficientCreditsError
from credits_engine.retry import RetryOptions, RetryPolicy, is_retryable

from support import RecordingLogger, RecordingSleep


class CodedError(Exception):
    def __init__(self, message: str, code: str) -> None:
        super().__init__(message)
        self.code = code


class HttpError(Exception):
    def __init__(self, status_code: int) -> None:
        super().__init__(f"HTTP {status_code}")
        self.status_code = status_code


class FlakyOperation:
    """Fails ``failures`` times with ``error``, then returns ``result``."""

    def __init__(self, failures: int, error: Exception, result: str = "ok") -> None:
        self.failures = failures
        self.error = error
        self.result = result
        self.calls = 0

    async def __call__(self) -> str:
        self.calls += 1
        if self.calls <= self.failures:
            raise self.error
        return self.result


def _policy(
    sleep: RecordingSleep,
    logger: RecordingLogger | None = None,
    **overrides: object,
) -> RetryPolicy:
    settings: dict[str, object] = {"max_attempts": 3, "initial_delay": 0.1, "max_delay": 1.0}
    settings.update(overrides)
    return RetryPolicy(RetryConfig(**settings), logger or RecordingLogger(), sleep=sleep)


# ---------------------------------------------------------------------------
# TestIsRetryable
# ---------------------------------------------------------------------------


class TestIsRetryable:
    def test_builtin_connection_error_by_class_name(self) -> None:
        assert is_retryable(ConnectionResetError("reset"), DEFAULT_RETRYABLE_ERRORS) is True

    def test_timeout_error_by_class_name(self) -> None:
        assert is_retryable(TimeoutError(), DEFAULT_RETRYABLE_ERRORS) is True

    def test_error_code_attribute(self) -> None:
        error = CodedError("lock wait", "ER_LOCK_DEADLOCK")
        assert is_retryable(error, DEFAULT_RETRYABLE_ERRORS) is True

    def test_errno_name(self) -> None:
        error = OSError(errno.ECONNREFUSED, "refused")
        assert is_retryable(error, DEFAULT_RETRYABLE_ERRORS) is True

    def test_http_status_code(self) -> None:
        assert is_retryable(HttpError(503), DEFAULT_RETRYABLE_ERRORS) is True
        assert is_retryable(HttpError(404), DEFAULT_RETRYABLE_ERRORS) is False

    def test_code_found_in_message(self) -> None:
        error = RuntimeError("database is locked (SQLITE_BUSY)")
        assert is_retryable(error, DEFAULT_RETRYABLE_ERRORS) is True

    def test_status_numbers_are_not_matched_in_message(self) -> None:
        assert is_retryable(RuntimeError("processed 500 rows"), DEFAULT_RETRYABLE_ERRORS) is False

    def test_domain_errors_are_never_retried(self) -> None:
        error = InsufficientCreditsError("ETIMEDOUT", 10, 5)
        assert is_retryable(error, DEFAULT_RETRYABLE_ERRORS) is False

    def test_unlisted_error(self) -> None:
        assert is_retryable(ValueError("bad input"), DEFAULT_RETRYABLE_ERRORS) is False

    def test_custom_allow_list(self) -> None:
        assert is_retryable(ValueError("bad input"), ["ValueError"]) is True


# ---------------------------------------------------------------------------
# TestRetryPolicy
# ---------------------------------------------------------------------------


class TestRetryPolicy:
    async def test_success_on_first_attempt_does_not_sleep(
        self, sleep: RecordingSleep
    ) -> None:
        operation = FlakyOperation(0, ConnectionError())
        assert await _policy(sleep).execute(operation) == "ok"
        assert operation.calls == 1
        assert sleep.delays == []

    async def test_recovers_after_transient_failures(self, sleep: RecordingSleep) -> None:
        logger = RecordingLogger()
        operation = FlakyOperation(2, ConnectionError("reset"))
        assert await _policy(sleep, logger).execute(operation, name="get_user_by_id") == "ok"
        assert operation.calls == 3
        assert sleep.delays == pytest.approx([0.1, 0.2])
        assert logger.messages("warn").count("retry.scheduled") == 2
        assert "retry.succeeded" in logger.messages("info")

    async def test_backoff_is_capped_at_max_delay(self, sleep: RecordingSleep) -> None:
        operation = FlakyOperation(5, ConnectionError())
        policy = _policy(sleep, max_attempts=6, initial_delay=0.1, max_delay=0.5)
        assert await policy.execute(operation) == "ok"
        assert sleep.delays == pytest.approx([0.1, 0.2, 0.4, 0.5, 0.5])

    async def test_exhausted_attempts_raise_last_error(self, sleep: RecordingSleep) -> None:
        logger = RecordingLogger()
        error = ConnectionError("still down")
        operation = FlakyOperation(10, error)
        with pytest.raises(ConnectionError) as exc_info:
            await _policy(sleep, logger).execute(operation)
        assert exc_info.value is error
        assert operation.calls == 3
        assert len(sleep.delays) == 2
        assert "retry.exhausted" in logger.messages("error")

    async def test_non_retryable_error_is_raised_immediately(
        self, sleep: RecordingSleep
    ) -> None:
        logger = RecordingLogger()
        operation = FlakyOperation(1, ValueError("bad"))
        with pytest.raises(ValueError):
            await _policy(sleep, logger).execute(operation)
        assert operation.calls == 1
        assert sleep.delays == []
        assert "retry.not_retryable" in logger.messages("warn")

    async def test_disabled_policy_runs_once(self, sleep: RecordingSleep) -> None:
        operation = FlakyOperation(1, ConnectionError())
        policy = _policy(sleep, enabled=False)
        with pytest.raises(ConnectionError):
            await policy.execute(operation)
        assert operation.calls == 1

    async def test_single_attempt_never_retries(self, sleep: RecordingSleep) -> None:
        operation = FlakyOperation(1, ConnectionError())
        with pytest.raises(ConnectionError):
            await _policy(sleep, max_attempts=1).execute(operation)
        assert operation.calls == 1
        assert sleep.delays == []

    async def test_per_call_options_override_config(self, sleep: RecordingSleep) -> None:
        operation = FlakyOperation(4, ConnectionError())
        result = await _policy(sleep).execute(
            operation, RetryOptions(max_attempts=5, initial_delay=0.05)
        )
        assert result == "ok"
        assert operation.calls == 5
        assert sleep.delays == pytest.approx([0.05, 0.1, 0.2, 0.4])

    async def test_attempt_logs_carry_operation_name(self, sleep: RecordingSleep) -> None:
        logger = RecordingLogger()
        await _policy(sleep, logger).execute(
            FlakyOperation(0, ConnectionError()), name="create_transaction"
        )
        attempts = [ctx for _, msg, ctx in logger.records if msg == "retry.attempt"]
        assert attempts == [{"operation": "create_transaction", "attempt": 1, "max_attempts": 3}]
