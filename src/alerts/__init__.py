"""Severity-tiered alert routing: console, structured log and email."""

from src.alerts.channels import (
    AlertLogger,
    ConsoleWriter,
    EmailSender,
    SmtpEmailSender,
    StreamConsole,
    StructlogAlertLogger,
)
from src.alerts.router import AlertRouter
from src.alerts.template import TokenNames, event_tokens, fixed_tokens, render
from src.alerts.types import AlertEvent, CallerContext, DispatchResult, Severity

__all__ = [
    "AlertEvent",
    "AlertLogger",
    "AlertRouter",
    "CallerContext",
    "ConsoleWriter",
    "DispatchResult",
    "EmailSender",
    "Severity",
    "SmtpEmailSender",
    "StreamConsole",
    "StructlogAlertLogger",
    "TokenNames",
    "event_tokens",
    "fixed_tokens",
    "render",
]
