"""Single-instance guard exceptions."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from src.guard.named_lock import NamedLock


class GuardError(Exception):
    """Base exception for run guard errors."""


class LockTimeoutError(GuardError):
    """The lock was not acquired in time (context-manager use only)."""


class AbandonedLockError(GuardError):
    """The previous lock holder exited without releasing the lock.

    The lock is held by the caller when this is raised; ``lock.release()``
    clears it.
    """

    def __init__(self, lock: NamedLock | None, holder_pid: int | None = None) -> None:
        self.lock = lock
        self.holder_pid = holder_pid
        name = lock.name if lock is not None else "?"
        super().__init__(f"Lock {name} abandoned by pid {holder_pid}")


class RetryExhaustedError(GuardError):
    """Every attempt of a retried call failed."""

    def __init__(self, attempts: int, last_error: BaseException | None) -> None:
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(f"Gave up after {attempts} attempt(s): {last_error}")
