"""Tests for RunOnceGuard — exclusion, abandoned-lock recovery, async, cancellation."""

from __future__ import annotations

import asyncio
import os
import subprocess
import sys
import textwrap
import threading
from collections.abc import Iterator
from pathlib import Path
from unittest.mock import patch

import pytest

from src.core.config import GuardConfig
from src.guard.exceptions import AbandonedLockError, RetryExhaustedError
from src.guard.identity import LockIdentity
from src.guard.named_lock import NamedLock
from src.guard.retry import Retry
from src.guard.run_once import RunOnceGuard

_ROOT = Path(__file__).resolve().parents[2]


# ── Helpers ─────────────────────────────────────────────────────


def _guard(tmp_path: Path, **kw: object) -> RunOnceGuard:
    defaults: dict[str, object] = {
        "lock_dir": tmp_path,
        "timeout_secs": 0.1,
        "poll_interval_secs": 0.01,
    }
    defaults.update(kw)
    return RunOnceGuard(LockIdentity(app_name="svc"), **defaults)  # type: ignore[arg-type]


def _lock_file(tmp_path: Path) -> Path:
    return tmp_path / f"{LockIdentity(app_name='svc').lock_name}.lock"


_CHILD = textwrap.dedent(
    """
    import os, sys
    import structlog
    structlog.configure(logger_factory=structlog.PrintLoggerFactory(sys.stderr))
    from src.guard.named_lock import NamedLock

    lock = NamedLock(sys.argv[1], lock_dir=sys.argv[2])
    assert lock.acquire(timeout=5)
    print("ready", flush=True)
    if sys.argv[3] == "crash":
        os._exit(0)
    sys.stdin.readline()
    lock.release()
    """
)


@pytest.fixture()
def child_holder(tmp_path: Path) -> Iterator[subprocess.Popen[str]]:
    """Another process holding the svc lock until told to release it."""
    proc = subprocess.Popen(
        [sys.executable, "-c", _CHILD, LockIdentity(app_name="svc").lock_name, str(tmp_path), "hold"],
        cwd=_ROOT,
        env={**os.environ, "PYTHONPATH": str(_ROOT)},
        stdin=subprocess.PIPE,
        stdout=subprocess.PIPE,
        text=True,
    )
    assert proc.stdout is not None
    assert proc.stdout.readline().strip() == "ready"
    yield proc
    if proc.poll() is None:
        proc.kill()
    proc.wait(timeout=5)


# ── Basic Contract ─────────────────────────────────────────────


class TestRunOnce:
    def test_runs_operation(self, tmp_path: Path) -> None:
        calls: list[int] = []
        assert _guard(tmp_path).run_once(lambda: calls.append(1)) is True
        assert calls == [1]

    def test_lock_released_after_success(self, tmp_path: Path) -> None:
        guard = _guard(tmp_path)
        guard.run_once(lambda: None)
        assert _lock_file(tmp_path).read_text() == ""
        assert guard.run_once(lambda: None) is True

    def test_lock_released_after_failure(self, tmp_path: Path) -> None:
        guard = _guard(tmp_path)

        def boom() -> None:
            raise RuntimeError("operation failed")

        with pytest.raises(RuntimeError, match="operation failed"):
            guard.run_once(boom)
        assert _lock_file(tmp_path).read_text() == ""
        assert guard.run_once(lambda: None) is True

    def test_skips_when_lock_held(self, tmp_path: Path) -> None:
        holder = NamedLock(LockIdentity(app_name="svc").lock_name, lock_dir=tmp_path)
        holder.acquire(timeout=0.1)
        calls: list[int] = []
        try:
            assert _guard(tmp_path).run_once(lambda: calls.append(1)) is False
        finally:
            holder.release()
        assert calls == []

    def test_nested_same_identity_not_reentrant(self, tmp_path: Path) -> None:
        guard = _guard(tmp_path)
        inner: list[bool] = []
        assert guard.run_once(lambda: inner.append(guard.run_once(lambda: None))) is True
        assert inner == [False]

    def test_from_config(self, tmp_path: Path) -> None:
        cfg = GuardConfig(lock_dir=str(tmp_path), timeout_secs=0.2, retry_attempts=2)
        guard = RunOnceGuard.from_config(LockIdentity(app_name="svc"), cfg)
        assert guard.identity.app_name == "svc"
        assert guard.run_once(lambda: None) is True
        assert _lock_file(tmp_path).exists()


# ── Cross-process ──────────────────────────────────────────────


class TestCrossProcess:
    def test_other_process_blocks_run(
        self, tmp_path: Path, child_holder: subprocess.Popen[str]
    ) -> None:
        calls: list[int] = []
        guard = _guard(tmp_path)
        assert guard.run_once(lambda: calls.append(1)) is False
        assert calls == []

        assert child_holder.stdin is not None
        child_holder.stdin.write("\n")
        child_holder.stdin.flush()
        child_holder.wait(timeout=5)

        assert guard.run_once(lambda: calls.append(1)) is True
        assert calls == [1]

    def test_crashed_holder_is_recovered(self, tmp_path: Path) -> None:
        proc = subprocess.run(
            [sys.executable, "-c", _CHILD, LockIdentity(app_name="svc").lock_name, str(tmp_path), "crash"],
            cwd=_ROOT,
            env={**os.environ, "PYTHONPATH": str(_ROOT)},
            capture_output=True,
            text=True,
            timeout=10,
        )
        assert proc.stdout.strip() == "ready"
        assert _lock_file(tmp_path).read_text() != ""

        calls: list[int] = []
        assert _guard(tmp_path).run_once(lambda: calls.append(1)) is True
        assert calls == [1]
        assert _lock_file(tmp_path).read_text() == ""


# ── Abandoned Lock Recovery ────────────────────────────────────


class TestAbandonedRecovery:
    def test_abandoned_lock_retried_once(self, tmp_path: Path) -> None:
        _lock_file(tmp_path).write_text("424242")
        calls: list[int] = []
        assert _guard(tmp_path).run_once(lambda: calls.append(1)) is True
        assert calls == [1]
        assert _lock_file(tmp_path).read_text() == ""

    def test_second_abandonment_is_fatal(self, tmp_path: Path) -> None:
        calls: list[int] = []
        with patch.object(
            NamedLock,
            "acquire",
            side_effect=[AbandonedLockError(None, 1), AbandonedLockError(None, 2)],
        ) as mock_acquire:
            with pytest.raises(AbandonedLockError) as exc_info:
                _guard(tmp_path).run_once(lambda: calls.append(1))
        assert mock_acquire.call_count == 2
        assert calls == []
        assert exc_info.value.holder_pid == 1
        assert isinstance(exc_info.value.__cause__, RetryExhaustedError)

    def test_retry_policy_used_for_recovery(self, tmp_path: Path) -> None:
        retry = Retry(attempts=1, retry_on=(AbandonedLockError,))
        _lock_file(tmp_path).write_text("424242")
        with patch.object(retry, "run", wraps=retry.run) as mock_run:
            assert _guard(tmp_path, retry=retry).run_once(lambda: None) is True
        mock_run.assert_called_once()

    def test_operation_error_in_retry_propagates(self, tmp_path: Path) -> None:
        _lock_file(tmp_path).write_text("424242")

        def boom() -> None:
            raise RuntimeError("operation failed")

        with pytest.raises(RuntimeError, match="operation failed"):
            _guard(tmp_path).run_once(boom)
        assert _lock_file(tmp_path).read_text() == ""


# ── Async ──────────────────────────────────────────────────────


class TestRunOnceAsync:
    async def test_runs_coroutine(self, tmp_path: Path) -> None:
        calls: list[int] = []

        async def op() -> None:
            calls.append(1)

        assert await _guard(tmp_path).run_once_async(op) is True
        assert calls == [1]

    async def test_runs_plain_callable_on_thread(self, tmp_path: Path) -> None:
        calls: list[int] = []
        assert await _guard(tmp_path).run_once_async(lambda: calls.append(1)) is True
        assert calls == [1]

    async def test_skips_when_lock_held(self, tmp_path: Path) -> None:
        holder = NamedLock(LockIdentity(app_name="svc").lock_name, lock_dir=tmp_path)
        holder.acquire(timeout=0.1)
        try:
            assert await _guard(tmp_path).run_once_async(lambda: None) is False
        finally:
            holder.release()

    async def test_on_stop_runs(self, tmp_path: Path) -> None:
        stopped: list[str] = []

        async def on_stop() -> None:
            stopped.append("async")

        await _guard(tmp_path).run_once_async(lambda: None, on_stop=on_stop)
        await _guard(tmp_path).run_once_async(lambda: None, on_stop=lambda: stopped.append("sync"))
        assert stopped == ["async", "sync"]

    async def test_abandoned_recovered(self, tmp_path: Path) -> None:
        _lock_file(tmp_path).write_text("424242")
        assert await _guard(tmp_path).run_once_async(lambda: None) is True
        assert _lock_file(tmp_path).read_text() == ""

    async def test_second_abandonment_is_fatal(self, tmp_path: Path) -> None:
        with patch.object(
            NamedLock,
            "acquire_async",
            side_effect=[AbandonedLockError(None, 1), AbandonedLockError(None, 2)],
        ):
            with pytest.raises(AbandonedLockError):
                await _guard(tmp_path).run_once_async(lambda: None)

    async def test_cancellation_releases_lock_and_stops(self, tmp_path: Path) -> None:
        started = asyncio.Event()
        stopped: list[bool] = []

        async def op() -> None:
            started.set()
            await asyncio.sleep(30)

        guard = _guard(tmp_path)
        task = asyncio.create_task(
            guard.run_once_async(op, on_stop=lambda: stopped.append(True))
        )
        await started.wait()
        assert _lock_file(tmp_path).read_text() == str(os.getpid())

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert stopped == [True]
        assert _lock_file(tmp_path).read_text() == ""
        assert guard.run_once(lambda: None) is True

    async def test_cancellation_waits_for_running_thread(self, tmp_path: Path) -> None:
        running = threading.Event()
        finish = threading.Event()
        stopped: list[bool] = []
        overlap: list[bool] = []

        def op() -> None:
            running.set()
            finish.wait(5)

        guard = _guard(tmp_path)
        task = asyncio.create_task(
            guard.run_once_async(op, on_stop=lambda: stopped.append(True))
        )
        while not running.is_set():
            await asyncio.sleep(0.01)

        task.cancel()
        await asyncio.sleep(0.05)
        assert not task.done()
        assert guard.run_once(lambda: overlap.append(running.is_set())) is False
        assert stopped == []

        finish.set()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert stopped == [True]
        assert overlap == []
        assert _lock_file(tmp_path).read_text() == ""
        assert guard.run_once(lambda: overlap.append(True)) is True
