"""RunOnceGuard — run an operation only when no other instance is running it."""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import Awaitable, Callable
from pathlib import Path

import structlog

from src.core.config import GuardConfig
from src.guard.exceptions import AbandonedLockError, RetryExhaustedError
from src.guard.identity import LockIdentity
from src.guard.named_lock import NamedLock
from src.guard.retry import Retry

logger = structlog.get_logger(__name__)

Operation = Callable[[], object]
AsyncOperation = Callable[[], Awaitable[object]] | Callable[[], object]


async def _invoke(fn: AsyncOperation) -> object:
    """Await coroutine functions; run plain callables on a worker thread.

    A worker thread cannot be interrupted.  If the caller is cancelled
    while the thread runs, the cancellation is held back until the thread
    returns, so the lock stays held for as long as the operation runs.
    """
    if inspect.iscoroutinefunction(fn):
        return await fn()
    work = asyncio.ensure_future(asyncio.to_thread(fn))
    try:
        return await asyncio.shield(work)
    except asyncio.CancelledError:
        logger.warning("cancel_waiting_for_operation")
        await _wait_for_thread(work)
        raise


async def _wait_for_thread(work: asyncio.Future[object]) -> None:
    """Wait for *work* to finish, ignoring further cancellation requests."""
    while not work.done():
        try:
            await asyncio.wait({work})
        except asyncio.CancelledError:
            continue
    if not work.cancelled() and work.exception() is not None:
        logger.error("operation_failed_after_cancel", error=str(work.exception()))


class RunOnceGuard:
    """Single-instance execution guard.

    - The lock for ``identity`` is waited on for at most ``timeout_secs``.
    - If it is acquired the operation runs and the lock is always released.
    - If it is not acquired the operation is skipped (returns False).
    - If the previous holder abandoned the lock, the lock is cleared and
      the whole call is retried once through ``retry``.  A second
      abandonment during the retry raises :class:`AbandonedLockError`.

    Exceptions raised by the operation itself propagate unchanged.
    """

    def __init__(
        self,
        identity: LockIdentity,
        lock_dir: str | Path | None = None,
        timeout_secs: float = 1.0,
        poll_interval_secs: float = 0.05,
        retry: Retry | None = None,
    ) -> None:
        self._identity = identity
        self._lock_dir = lock_dir
        self._timeout_secs = timeout_secs
        self._poll_interval_secs = poll_interval_secs
        self._retry = retry or Retry(attempts=1, retry_on=(AbandonedLockError,))

    @classmethod
    def from_config(cls, identity: LockIdentity, config: GuardConfig) -> RunOnceGuard:
        return cls(
            identity,
            lock_dir=config.lock_dir or None,
            timeout_secs=config.timeout_secs,
            poll_interval_secs=config.poll_interval_secs,
            retry=Retry(
                attempts=config.retry_attempts,
                delay_secs=config.retry_delay_secs,
                retry_on=(AbandonedLockError,),
            ),
        )

    @property
    def identity(self) -> LockIdentity:
        return self._identity

    def _new_lock(self) -> NamedLock:
        return NamedLock(
            self._identity.lock_name,
            lock_dir=self._lock_dir,
            poll_interval=self._poll_interval_secs,
        )

    # ── Sync ─────────────────────────────────────────────────────

    def run_once(self, operation: Operation) -> bool:
        """Run *operation* if this is the only instance. Returns whether it ran."""
        return self._run_once(operation, recover=True)

    def _run_once(self, operation: Operation, recover: bool) -> bool:
        lock = self._new_lock()
        try:
            acquired = lock.acquire(self._timeout_secs)
        except AbandonedLockError as exc:
            lock.release()
            if not recover:
                raise
            logger.warning("abandoned_lock_retry", lock=lock.name)
            try:
                return self._retry.run(lambda: self._run_once(operation, recover=False))
            except RetryExhaustedError as exhausted:
                raise exc from exhausted

        if not acquired:
            logger.info("run_once_skipped", lock=lock.name)
            return False

        try:
            operation()
        finally:
            lock.release()
        return True

    # ── Async ────────────────────────────────────────────────────

    async def run_once_async(
        self,
        operation: AsyncOperation,
        on_stop: Callable[[], object] | None = None,
    ) -> bool:
        """Async version of :meth:`run_once`.

        Coroutine functions are awaited; plain callables run on a worker
        thread.  On cancellation the lock is released and *on_stop* runs
        before ``CancelledError`` propagates.  A plain callable that is
        already running is waited for first; the lock is never released
        while it runs.
        """
        try:
            return await self._run_once_async(operation, recover=True)
        finally:
            if on_stop is not None:
                result = on_stop()
                if inspect.isawaitable(result):
                    await result

    async def _run_once_async(self, operation: AsyncOperation, recover: bool) -> bool:
        lock = self._new_lock()
        try:
            acquired = await lock.acquire_async(self._timeout_secs)
        except AbandonedLockError as exc:
            lock.release()
            if not recover:
                raise
            logger.warning("abandoned_lock_retry", lock=lock.name)
            try:
                return await self._retry.run_async(
                    lambda: self._run_once_async(operation, recover=False)
                )
            except RetryExhaustedError as exhausted:
                raise exc from exhausted

        if not acquired:
            logger.info("run_once_skipped", lock=lock.name)
            return False

        try:
            await _invoke(operation)
        finally:
            lock.release()
        return True
