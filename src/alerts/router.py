"""Alert router — sends each alert to the channels configured for its severity."""

from __future__ import annotations

from collections.abc import Callable, Mapping

import structlog

from src.alerts.channels import AlertLogger, ConsoleWriter, EmailSender, StreamConsole
from src.alerts.template import event_tokens, render
from src.alerts.types import AlertEvent, CallerContext, DispatchResult, Severity
from src.core.config import AlertsConfig, EmailConfig, SeverityAlertConfig

logger = structlog.get_logger(__name__)

Handler = Callable[[AlertEvent, DispatchResult], None]

# Config sections for the log-only severities.
_LOG_SECTIONS: dict[Severity, str] = {
    Severity.TRACE: "trace_alerts",
    Severity.DEBUG: "debug_alerts",
    Severity.INFORMATION: "information_alerts",
    Severity.WARNING: "warning_alerts",
}


def _enabled(section: SeverityAlertConfig | EmailConfig | None) -> bool:
    return section is not None and section.enabled


class AlertRouter:
    """Routes alerts by severity.

    =========== ===========================================
    Severity    Actions
    =========== ===========================================
    AUDIT       console
    TRACE       log (if ``trace_alerts`` is enabled)
    DEBUG       log (if ``debug_alerts`` is enabled)
    INFORMATION log (if ``information_alerts`` is enabled)
    WARNING     log (if ``warning_alerts`` is enabled)
    ERROR       log, then email (``error_alerts.email``)
    CRITICAL    log, then email (``critical_alerts.email``)
    =========== ===========================================

    An alert is *handled* when its last deciding action succeeds: the
    console write for AUDIT, the log write for the log-only severities and
    the email for ERROR/CRITICAL.  Unhandled alerts are written to stderr.

    A failing action never propagates.  It is turned into a secondary
    ERROR alert that goes straight to the stderr fallback, so a broken
    channel cannot trigger further alerts about itself.  If stderr itself
    fails, the text goes to the module logger and the failure is recorded
    as ``"unhandled"`` in :attr:`DispatchResult.failures`.
    """

    def __init__(
        self,
        config: AlertsConfig | None = None,
        console: ConsoleWriter | None = None,
        logger: AlertLogger | None = None,
        email: EmailSender | None = None,
        tokens: Mapping[str, str] | None = None,
    ) -> None:
        self._config = config or AlertsConfig()
        self._console = console or StreamConsole()
        self._logger = logger
        self._email = email
        self._tokens: dict[str, str] = dict(tokens or {})
        self._handlers: dict[Severity, Handler] = {
            Severity.AUDIT: self._handle_audit,
            Severity.TRACE: self._handle_log_only,
            Severity.DEBUG: self._handle_log_only,
            Severity.INFORMATION: self._handle_log_only,
            Severity.WARNING: self._handle_log_only,
            Severity.ERROR: self._handle_error,
            Severity.CRITICAL: self._handle_critical,
        }

    # ── Properties ────────────────────────────────────────────────

    @property
    def config(self) -> AlertsConfig:
        return self._config

    @property
    def tokens(self) -> dict[str, str]:
        """Copy of the fixed replacement tokens."""
        return dict(self._tokens)

    # ── Raising alerts ───────────────────────────────────────────

    def raise_alert(
        self,
        severity: Severity,
        message: str,
        error: BaseException | None = None,
        context: CallerContext | None = None,
    ) -> DispatchResult:
        """Build an AlertEvent for the caller's location and dispatch it."""
        event = AlertEvent(
            severity=severity,
            message=message,
            error=error,
            context=context or CallerContext.capture(1),
        )
        return self.dispatch(event)

    def audit(self, message: str) -> DispatchResult:
        return self.raise_alert(Severity.AUDIT, message, context=CallerContext.capture(1))

    def trace(self, message: str) -> DispatchResult:
        return self.raise_alert(Severity.TRACE, message, context=CallerContext.capture(1))

    def debug(self, message: str) -> DispatchResult:
        return self.raise_alert(Severity.DEBUG, message, context=CallerContext.capture(1))

    def information(
        self, message: str, error: BaseException | None = None
    ) -> DispatchResult:
        return self.raise_alert(
            Severity.INFORMATION, message, error, CallerContext.capture(1)
        )

    def warning(
        self, message: str, error: BaseException | None = None
    ) -> DispatchResult:
        return self.raise_alert(Severity.WARNING, message, error, CallerContext.capture(1))

    def error(
        self, message: str, error: BaseException | None = None
    ) -> DispatchResult:
        return self.raise_alert(Severity.ERROR, message, error, CallerContext.capture(1))

    def critical(
        self, message: str, error: BaseException | None = None
    ) -> DispatchResult:
        return self.raise_alert(Severity.CRITICAL, message, error, CallerContext.capture(1))

    # ── Dispatch ─────────────────────────────────────────────────

    def dispatch(self, event: AlertEvent) -> DispatchResult:
        """Run the actions configured for *event* and report the outcome."""
        result = DispatchResult()
        handler = self._handlers.get(event.severity)
        if handler is not None:
            handler(event, result)
        if not result.handled:
            if self._unhandled(event, result):
                result.actions.append("unhandled")
        return result

    # ── Severity handlers ────────────────────────────────────────

    def _handle_audit(self, event: AlertEvent, result: DispatchResult) -> None:
        result.handled = self._attempt(
            "console",
            lambda: self._console.write(self._format(event)),
            event,
            result,
        )

    def _handle_log_only(self, event: AlertEvent, result: DispatchResult) -> None:
        section = getattr(self._config, _LOG_SECTIONS[event.severity])
        if not _enabled(section) or self._logger is None:
            return
        result.handled = self._attempt("log", lambda: self._log(event), event, result)

    def _handle_error(self, event: AlertEvent, result: DispatchResult) -> None:
        section = self._config.error_alerts
        if not _enabled(section):
            return
        if self._logger is not None:
            self._attempt("log", lambda: self._log(event), event, result)
        if _enabled(section.email) and self._email is not None:
            email = section.email
            result.handled = self._attempt(
                "email", lambda: self._send_email(email, event), event, result
            )

    def _handle_critical(self, event: AlertEvent, result: DispatchResult) -> None:
        section = self._config.critical_alerts
        if not _enabled(section):
            return
        if self._logger is not None:
            self._attempt("log", lambda: self._log(event), event, result)
        if _enabled(section.email) and self._email is not None:
            result.handled = self._attempt(
                "email",
                lambda: self._send_email(self._critical_email(), event),
                event,
                result,
            )

    def _critical_email(self) -> EmailConfig:
        if not self._config.legacy_critical_email:
            return self._config.critical_alerts.email
        error_section = self._config.error_alerts
        if error_section is None or error_section.email is None:
            raise ValueError("legacy critical email requires error_alerts.email")
        return error_section.email

    # ── Actions ──────────────────────────────────────────────────

    def _attempt(
        self,
        action: str,
        fn: Callable[[], None],
        event: AlertEvent,
        result: DispatchResult,
    ) -> bool:
        try:
            fn()
        except Exception as exc:
            result.failures.append(action)
            self._unhandled(
                AlertEvent(
                    severity=Severity.ERROR,
                    message=(
                        f"Failed to deliver {event.severity.name.lower()} alert "
                        f"via {action}! Error: {exc}"
                    ),
                    error=exc,
                ),
                result,
            )
            return False
        result.actions.append(action)
        return True

    def _log(self, event: AlertEvent) -> None:
        self._logger.log(event.severity, event.message, event.error)

    def _send_email(self, email: EmailConfig, event: AlertEvent) -> None:
        tokens = event_tokens(self._tokens, event.message, event.error)
        self._email.send(
            email.sender,
            email.to,
            render(email.subject, tokens),
            render(email.body, tokens),
            email.is_html,
        )

    def _unhandled(self, event: AlertEvent, result: DispatchResult) -> bool:
        """Write *event* to stderr; log it if the console itself is broken."""
        text = self._format(event)
        try:
            self._console.write_error(text)
        except Exception:
            result.failures.append("unhandled")
            logger.exception("alert_fallback_failed", alert=text)
            return False
        return True

    @staticmethod
    def _format(event: AlertEvent) -> str:
        text = f"[{event.severity.name}] {event.message}"
        if event.error is not None:
            text += f" | {type(event.error).__name__}: {event.error}"
        if event.context is not None:
            text += f" | at {event.context}"
        return text
