"""Single-instance run guard — named lock, retry policy, run-once wrapper."""

from src.guard.exceptions import (
    AbandonedLockError,
    GuardError,
    LockTimeoutError,
    RetryExhaustedError,
)
from src.guard.identity import LockIdentity, friendly_name, normalize
from src.guard.named_lock import NamedLock
from src.guard.retry import Retry
from src.guard.run_once import RunOnceGuard

__all__ = [
    "AbandonedLockError",
    "GuardError",
    "LockIdentity",
    "LockTimeoutError",
    "NamedLock",
    "Retry",
    "RetryExhaustedError",
    "RunOnceGuard",
    "friendly_name",
    "normalize",
]
