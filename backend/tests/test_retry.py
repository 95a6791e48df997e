"""
Retry executor tests.
"""

import time

import pytest

from later_sync.core.errors import AppError, ErrorCode, ValidationErrors
from later_sync.core.retry import RetryExecutor


class Flaky:
    """Async callable failing with queued exceptions before returning a value."""

    def __init__(self, *errors: BaseException, result="ok"):
        self.errors = list(errors)
        self.result = result
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        return self.result


class TestRetryExecutor:
    """Bounded exponential backoff."""

    async def test_success_on_first_attempt(self, retry, sleeps):
        operation = Flaky()
        assert await retry.execute(operation, "load") == "ok"
        assert operation.calls == 1
        assert sleeps == []

    async def test_recovers_after_transient_failures(self, retry, sleeps):
        operation = Flaky(ConnectionError("down"), TimeoutError(), result=42)

        assert await retry.execute(operation, "load") == 42
        assert operation.calls == 3
        assert sleeps == [0.3, 0.6]

    async def test_gives_up_after_three_attempts(self, retry, sleeps):
        operation = Flaky(*(ConnectionError("down") for _ in range(5)))

        with pytest.raises(AppError) as exc_info:
            await retry.execute(operation, "load")

        assert exc_info.value.code is ErrorCode.NETWORK_NO_CONNECTION
        assert operation.calls == 3
        assert sleeps == [0.3, 0.6]

    async def test_terminal_error_is_not_retried(self, retry, sleeps):
        operation = Flaky(ValidationErrors.required_field("Space name"))

        with pytest.raises(AppError) as exc_info:
            await retry.execute(operation, "create")

        assert exc_info.value.code is ErrorCode.VALIDATION_REQUIRED
        assert operation.calls == 1
        assert sleeps == []

    async def test_unknown_errors_are_terminal(self, retry):
        operation = Flaky(KeyError("boom"))

        with pytest.raises(AppError) as exc_info:
            await retry.execute(operation, "create")

        assert exc_info.value.code is ErrorCode.UNKNOWN
        assert operation.calls == 1

    async def test_zero_attempts_raise_unknown(self):
        executor = RetryExecutor(max_attempts=0)

        with pytest.raises(AppError) as exc_info:
            await executor.execute(Flaky(), "sync")

        assert exc_info.value.code is ErrorCode.UNKNOWN
        assert exc_info.value.message == "Unknown error in sync"

    def test_delay_doubles_per_attempt(self):
        executor = RetryExecutor(base_delay_ms=300)
        assert [executor.delay_for(k) for k in (1, 2, 3)] == [0.3, 0.6, 1.2]

    async def test_real_backoff_waits_at_least_900ms(self):
        """Default sleep: three failing attempts take >= 300 + 600 ms."""
        executor = RetryExecutor(max_attempts=3, base_delay_ms=300)
        operation = Flaky(*(TimeoutError() for _ in range(3)))

        started = time.monotonic()
        with pytest.raises(AppError):
            await executor.execute(operation, "slow")
        elapsed = time.monotonic() - started

        assert operation.calls == 3
        assert elapsed >= 0.9
