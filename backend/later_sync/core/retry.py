"""
Later Sync - Retry Executor
===========================

Bounded exponential-backoff retry around fallible repository calls.

Attempt k (k >= 1) that fails with a retryable error is followed by a sleep
of ``base_delay * 2 ** (k - 1)`` before attempt k + 1. Terminal errors are
raised on the first attempt.
"""

import asyncio
from collections.abc import Awaitable, Callable
from typing import Optional, TypeVar

import structlog

from later_sync.core.config import settings
from later_sync.core.errors import AppError, ErrorCode, classify

logger = structlog.get_logger()

T = TypeVar("T")


class RetryExecutor:
    """Runs async operations with retry on retryable classified errors."""

    def __init__(
        self,
        max_attempts: Optional[int] = None,
        base_delay_ms: Optional[int] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.max_attempts = max_attempts if max_attempts is not None else settings.RETRY_MAX_ATTEMPTS
        self.base_delay_ms = base_delay_ms if base_delay_ms is not None else settings.RETRY_BASE_DELAY_MS
        self._sleep = sleep

    def delay_for(self, attempt: int) -> float:
        """Backoff in seconds after the given (1-based) failed attempt."""
        return self.base_delay_ms * (1 << (attempt - 1)) / 1000

    async def execute(
        self,
        operation: Callable[[], Awaitable[T]],
        operation_name: str,
    ) -> T:
        """
        Run ``operation`` until it succeeds, fails terminally, or attempts run out.

        Raises:
            AppError: the classified failure of the last attempt
        """
        last_error: Optional[AppError] = None
        attempt = 0

        while attempt < self.max_attempts:
            attempt += 1
            try:
                return await operation()
            except Exception as exc:
                error = classify(exc)
                last_error = error

                if not error.is_retryable or attempt >= self.max_attempts:
                    logger.warning(
                        "operation_failed",
                        operation=operation_name,
                        attempt=attempt,
                        code=error.code.value,
                        retryable=error.is_retryable,
                    )
                    if error is exc:
                        raise
                    raise error from exc

                delay = self.delay_for(attempt)
                logger.info(
                    "operation_retry",
                    operation=operation_name,
                    attempt=attempt,
                    delay_ms=int(delay * 1000),
                    code=error.code.value,
                )
                await self._sleep(delay)

        if last_error is not None:
            raise last_error
        raise AppError(ErrorCode.UNKNOWN, f"Unknown error in {operation_name}")
