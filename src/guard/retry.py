"""Bounded retry policy for sync and async callables."""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable
from typing import TypeVar

import structlog

from src.guard.exceptions import RetryExhaustedError

logger = structlog.get_logger(__name__)

T = TypeVar("T")


class Retry:
    """Calls a function up to ``attempts`` times until it stops raising.

    ``run`` returns the function's result or raises RetryExhaustedError.
    ``execute`` reports the same outcome as a bool.
    """

    def __init__(
        self,
        attempts: int = 1,
        delay_secs: float = 0.0,
        retry_on: tuple[type[BaseException], ...] = (Exception,),
    ) -> None:
        if attempts < 1:
            raise ValueError("attempts must be >= 1")
        self._attempts = attempts
        self._delay_secs = delay_secs
        self._retry_on = retry_on

    @property
    def attempts(self) -> int:
        return self._attempts

    def run(self, fn: Callable[[], T]) -> T:
        last_error: BaseException | None = None
        for attempt in range(1, self._attempts + 1):
            try:
                return fn()
            except self._retry_on as exc:
                last_error = exc
                self._log_failure(attempt, exc)
            if attempt < self._attempts and self._delay_secs > 0:
                time.sleep(self._delay_secs)
        raise RetryExhaustedError(self._attempts, last_error) from last_error

    async def run_async(self, fn: Callable[[], Awaitable[T]]) -> T:
        last_error: BaseException | None = None
        for attempt in range(1, self._attempts + 1):
            try:
                return await fn()
            except self._retry_on as exc:
                last_error = exc
                self._log_failure(attempt, exc)
            if attempt < self._attempts and self._delay_secs > 0:
                await asyncio.sleep(self._delay_secs)
        raise RetryExhaustedError(self._attempts, last_error) from last_error

    def execute(self, fn: Callable[[], object]) -> bool:
        """Return True if *fn* eventually succeeded, False if retries ran out."""
        try:
            self.run(fn)
        except RetryExhaustedError as exc:
            logger.error("retry_exhausted", attempts=exc.attempts, error=str(exc.last_error))
            return False
        return True

    async def execute_async(self, fn: Callable[[], Awaitable[object]]) -> bool:
        try:
            await self.run_async(fn)
        except RetryExhaustedError as exc:
            logger.error("retry_exhausted", attempts=exc.attempts, error=str(exc.last_error))
            return False
        return True

    def _log_failure(self, attempt: int, exc: BaseException) -> None:
        logger.warning(
            "retry_attempt_failed",
            attempt=attempt,
            attempts=self._attempts,
            error=str(exc),
        )
