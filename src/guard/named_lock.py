"""NamedLock — machine-wide named lock with abandoned-holder detection.

Uses POSIX ``fcntl.flock`` on a file in a shared directory (the system
temp dir by default).  While held, the file records the holder's PID; a
clean release empties it.  Finding a PID in the file right after taking
the lock therefore means the previous holder died while holding it, and
the acquisition raises :class:`AbandonedLockError` with the lock held.

The lock is not reentrant.  Each ``NamedLock`` opens its own file
description, so two instances in the same process exclude each other
exactly as two processes would.
"""

from __future__ import annotations

import asyncio
import fcntl
import os
import tempfile
import time
from pathlib import Path
from typing import IO

import structlog

from src.guard.exceptions import AbandonedLockError, GuardError, LockTimeoutError

logger = structlog.get_logger(__name__)


class NamedLock:
    """Cross-process lock identified by name."""

    def __init__(
        self,
        name: str,
        lock_dir: str | Path | None = None,
        poll_interval: float = 0.05,
    ) -> None:
        self._name = name
        self._dir = Path(lock_dir) if lock_dir else Path(tempfile.gettempdir())
        self._path = self._dir / f"{name}.lock"
        self._poll_interval = poll_interval
        self._file: IO[str] | None = None
        self._held = False

    # ── Properties ────────────────────────────────────────────────

    @property
    def name(self) -> str:
        return self._name

    @property
    def path(self) -> Path:
        return self._path

    @property
    def held(self) -> bool:
        """Whether this instance currently holds the lock."""
        return self._held

    # ── Acquire / release ────────────────────────────────────────

    def acquire(self, timeout: float = 1.0) -> bool:
        """Wait up to *timeout* seconds for the lock.

        Returns False on timeout.  Raises AbandonedLockError (lock held)
        when the previous holder never released it.
        """
        self._check_not_held()
        deadline = time.monotonic() + timeout
        while not self._try_lock():
            if time.monotonic() >= deadline:
                self._close()
                return False
            time.sleep(self._poll_interval)
        self._claim()
        return True

    async def acquire_async(self, timeout: float = 1.0) -> bool:
        """Async version of :meth:`acquire`; polls with ``asyncio.sleep``."""
        self._check_not_held()
        deadline = time.monotonic() + timeout
        try:
            while not self._try_lock():
                if time.monotonic() >= deadline:
                    self._close()
                    return False
                await asyncio.sleep(self._poll_interval)
        except asyncio.CancelledError:
            self._close()
            raise
        self._claim()
        return True

    def release(self) -> None:
        """Clear the holder record and unlock.

        Safe to call multiple times or without prior acquire.
        """
        if self._file is None:
            return
        try:
            if self._held:
                self._file.seek(0)
                self._file.truncate()
                self._file.flush()
                fcntl.flock(self._file.fileno(), fcntl.LOCK_UN)
                logger.debug("lock_released", lock=self._name)
        finally:
            self._close()

    # ── Internals ────────────────────────────────────────────────

    def _check_not_held(self) -> None:
        if self._held:
            raise GuardError(f"Lock {self._name} is already held by this instance")

    def _try_lock(self) -> bool:
        if self._file is None:
            self._dir.mkdir(parents=True, exist_ok=True)
            self._file = open(self._path, "a+")  # noqa: SIM115
        try:
            fcntl.flock(self._file.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError:
            return False
        except OSError:
            self._close()
            raise
        return True

    def _claim(self) -> None:
        """Record our PID; raise if a previous holder's PID was left behind."""
        if self._file is None:
            raise GuardError(f"Lock {self._name} has no open lock file")
        self._held = True
        self._file.seek(0)
        previous = self._file.read().strip()
        self._file.seek(0)
        self._file.truncate()
        self._file.write(str(os.getpid()))
        self._file.flush()

        if previous:
            holder_pid = int(previous) if previous.isdigit() else None
            logger.warning("lock_abandoned", lock=self._name, holder_pid=holder_pid)
            raise AbandonedLockError(self, holder_pid)

        logger.debug("lock_acquired", lock=self._name, pid=os.getpid())

    def _close(self) -> None:
        if self._file is not None:
            self._file.close()
        self._file = None
        self._held = False

    # ── Context manager ──────────────────────────────────────────

    def __enter__(self) -> NamedLock:
        if not self.acquire():
            raise LockTimeoutError(f"Timed out waiting for lock {self._name}")
        return self

    def __exit__(self, *exc: object) -> None:
        self.release()
