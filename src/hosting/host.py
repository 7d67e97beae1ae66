"""StandardHost — settings, logging, alerts and the run guard in one place."""

from __future__ import annotations

import inspect
import sys
from collections.abc import Awaitable, Callable
from pathlib import Path

import structlog

from src.alerts.channels import (
    ConsoleWriter,
    EmailSender,
    SmtpEmailSender,
    StreamConsole,
    StructlogAlertLogger,
)
from src.alerts.router import AlertRouter
from src.alerts.template import TokenNames, fixed_tokens
from src.core.config import Settings, load_settings
from src.core.logging import setup_logging
from src.guard.identity import LockIdentity
from src.guard.run_once import RunOnceGuard

logger = structlog.get_logger(__name__)

HostAction = Callable[["StandardHost"], object]
StopHook = Callable[[], object]


def set_console_title(title: str) -> bool:
    """Set the terminal title. Returns False when stdout is not a TTY."""
    if not sys.stdout.isatty():
        return False
    sys.stdout.write(f"\x1b]0;{title}\x07")
    sys.stdout.flush()
    return True


class StandardHost:
    """Owns the alert router and run guard for one application process."""

    def __init__(
        self,
        settings: Settings,
        identity: LockIdentity,
        alerts: AlertRouter,
        guard: RunOnceGuard,
    ) -> None:
        self._settings = settings
        self._identity = identity
        self._alerts = alerts
        self._guard = guard
        self._stop_hooks: list[StopHook] = []
        self._stopped = False

    # ── Properties ────────────────────────────────────────────────

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def identity(self) -> LockIdentity:
        return self._identity

    @property
    def alerts(self) -> AlertRouter:
        return self._alerts

    @property
    def guard(self) -> RunOnceGuard:
        return self._guard

    @property
    def stopped(self) -> bool:
        return self._stopped

    # ── Lifecycle ────────────────────────────────────────────────

    def on_stop(self, hook: StopHook) -> None:
        """Register a callback run once when the host stops."""
        self._stop_hooks.append(hook)

    def stop(self) -> None:
        if self._stopped:
            return
        self._stopped = True
        for hook in self._stop_hooks:
            try:
                hook()
            except Exception:
                logger.exception("stop_hook_error", hook=getattr(hook, "__name__", repr(hook)))
        logger.info("host_stopped", app=self._identity.app_name)

    async def stop_async(self) -> None:
        if self._stopped:
            return
        self._stopped = True
        for hook in self._stop_hooks:
            try:
                result = hook()
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("stop_hook_error", hook=getattr(hook, "__name__", repr(hook)))
        logger.info("host_stopped", app=self._identity.app_name)

    # ── Running delegates ────────────────────────────────────────

    def run_delegate(self, action: HostAction) -> None:
        """Run *action* with this host, then stop the host."""
        try:
            action(self)
        finally:
            self.stop()

    async def run_delegate_async(
        self, action: Callable[[StandardHost], Awaitable[object]]
    ) -> None:
        try:
            await action(self)
        finally:
            await self.stop_async()

    def run_once(self, action: HostAction) -> bool:
        """Run *action* unless another instance of this app is running it."""
        set_console_title(self._identity.title)
        try:
            return self._guard.run_once(lambda: action(self))
        finally:
            self.stop()

    async def run_once_async(
        self, action: Callable[[StandardHost], Awaitable[object]] | HostAction
    ) -> bool:
        set_console_title(self._identity.title)
        if inspect.iscoroutinefunction(action):

            async def operation() -> object:
                return await action(self)

        else:

            def operation() -> object:
                return action(self)

        return await self._guard.run_once_async(operation, on_stop=self.stop_async)


def create_standard_host(
    config_path: str | Path | None = None,
    app_name: str | None = None,
    app_version: str | None = None,
    email: EmailSender | None = None,
    console: ConsoleWriter | None = None,
    log_level: str | None = None,
) -> StandardHost:
    """Load settings and wire logging, alerts and the run guard.

    An email sender is built from ``services.smtp`` when its host is set
    and none is passed in.
    """
    settings = load_settings(config_path)

    identity = LockIdentity.from_app_name(
        app_name or settings.app.name,
        app_version or settings.app.version,
    )

    tokens = fixed_tokens(identity.app_name)
    setup_logging(
        level=log_level,
        app=identity.app_name,
        machine=tokens[TokenNames.MN],
        user=tokens[TokenNames.USER],
    )

    if email is None and settings.services.smtp.host:
        email = SmtpEmailSender(settings.services.smtp)

    alerts = AlertRouter(
        config=settings.alerts,
        console=console or StreamConsole(),
        logger=StructlogAlertLogger(),
        email=email,
        tokens=tokens,
    )
    guard = RunOnceGuard.from_config(identity, settings.guard)

    logger.info(
        "host_created",
        lock=identity.lock_name,
        email=email is not None,
    )
    return StandardHost(settings, identity, alerts, guard)
