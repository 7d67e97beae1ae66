"""Alert delivery channels — structured log, SMTP email, console."""

from __future__ import annotations

import abc
import logging
import smtplib
import sys
from email.message import EmailMessage
from typing import TextIO

import structlog

from src.alerts.types import Severity
from src.core.config import SmtpConfig
from src.core.logging import TRACE

logger = structlog.get_logger(__name__)

# Stdlib levels keyed by severity.
_LOG_LEVELS: dict[Severity, int] = {
    Severity.AUDIT: logging.INFO,
    Severity.TRACE: TRACE,
    Severity.DEBUG: logging.DEBUG,
    Severity.INFORMATION: logging.INFO,
    Severity.WARNING: logging.WARNING,
    Severity.ERROR: logging.ERROR,
    Severity.CRITICAL: logging.CRITICAL,
}


class AlertLogger(abc.ABC):
    """Structured log sink for alerts."""

    @abc.abstractmethod
    def log(
        self,
        severity: Severity,
        message: str,
        error: BaseException | None = None,
    ) -> None:
        """Write one record at the level matching *severity*."""


class EmailSender(abc.ABC):
    """Outbound email delivery."""

    @abc.abstractmethod
    def send(
        self,
        sender: str,
        to: str,
        subject: str,
        body: str,
        is_html: bool = False,
    ) -> None:
        """Send one message. Raises on delivery failure."""


class ConsoleWriter(abc.ABC):
    """Console output for audit alerts and the unhandled fallback."""

    @abc.abstractmethod
    def write(self, text: str) -> None:
        """Write a line to standard output."""

    @abc.abstractmethod
    def write_error(self, text: str) -> None:
        """Write a line to standard error."""


class StructlogAlertLogger(AlertLogger):
    """Logs alerts through a dedicated structlog logger.

    structlog only knows the stdlib level names, so TRACE records go
    straight to the stdlib logger and are rendered as foreign records.
    """

    def __init__(self, name: str = "alert") -> None:
        self._logger = structlog.get_logger(name)
        self._stdlib_logger = logging.getLogger(name)

    def log(
        self,
        severity: Severity,
        message: str,
        error: BaseException | None = None,
    ) -> None:
        level = _LOG_LEVELS.get(severity, logging.INFO)
        kw: dict[str, object] = {}
        if error is not None:
            kw["exc_info"] = error
        if level == TRACE:
            self._stdlib_logger.log(level, message, extra={"severity": severity.name}, **kw)
        else:
            self._logger.log(level, message, severity=severity.name, **kw)


class SmtpEmailSender(EmailSender):
    """Delivers email through an SMTP relay."""

    def __init__(self, config: SmtpConfig) -> None:
        self._host = config.host
        self._port = config.port
        self._username = config.username
        self._password = config.password.get_secret_value()
        self._use_tls = config.use_tls
        self._timeout = config.timeout

    def _build_message(
        self, sender: str, to: str, subject: str, body: str, is_html: bool
    ) -> EmailMessage:
        msg = EmailMessage()
        msg["Subject"] = subject
        msg["From"] = sender
        msg["To"] = to
        msg.set_content(body, subtype="html" if is_html else "plain")
        return msg

    def send(
        self,
        sender: str,
        to: str,
        subject: str,
        body: str,
        is_html: bool = False,
    ) -> None:
        msg = self._build_message(sender, to, subject, body, is_html)
        with smtplib.SMTP(self._host, self._port, timeout=self._timeout) as server:
            if self._use_tls:
                server.starttls()
            if self._username:
                server.login(self._username, self._password)
            server.send_message(msg)
        logger.debug("email_sent", to=to, subject=subject)


class StreamConsole(ConsoleWriter):
    """Writes to the process stdout/stderr (or the given streams)."""

    def __init__(
        self,
        stdout: TextIO | None = None,
        stderr: TextIO | None = None,
    ) -> None:
        self._stdout = stdout
        self._stderr = stderr

    def write(self, text: str) -> None:
        stream = self._stdout or sys.stdout
        stream.write(text + "\n")
        stream.flush()

    def write_error(self, text: str) -> None:
        stream = self._stderr or sys.stderr
        stream.write(text + "\n")
        stream.flush()
