"""Pydantic settings loaded from YAML configuration."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, SecretStr
from pydantic.alias_generators import to_pascal

_settings: Settings | None = None

_DEFAULT_CONFIG_PATH = Path("config/settings.yaml")


class ConfigModel(BaseModel):
    """Base for config sections.

    Keys may be written in snake_case or in PascalCase (``ErrorAlerts``).
    """

    model_config = ConfigDict(
        alias_generator=to_pascal,
        populate_by_name=True,
        frozen=True,
    )


class AppConfig(ConfigModel):
    """Process identity. An empty name is derived from the running script."""

    name: str = ""
    version: str = ""


class EmailConfig(ConfigModel):
    """Email channel — subject/body are templates rendered per alert."""

    enabled: bool = False
    to: str = ""
    sender: str = Field(default="", alias="From")
    subject: str = "%APP% alert on %MN%"
    body: str = "%MSG%"
    is_html: bool = False


class SmsConfig(ConfigModel):
    """SMS channel settings. Parsed only; no SMS sender is wired."""

    enabled: bool = False
    to: str = ""
    body: str = "%MSG%"


class SeverityAlertConfig(ConfigModel):
    """Settings shared by every severity section."""

    enabled: bool = True


class ErrorAlertConfig(SeverityAlertConfig):
    email: EmailConfig | None = None


class CriticalAlertConfig(SeverityAlertConfig):
    email: EmailConfig | None = None
    sms: SmsConfig | None = None


class AlertsConfig(ConfigModel):
    """Per-severity alert routing. ``None`` means the severity is not configured."""

    audit_alerts: SeverityAlertConfig | None = None
    trace_alerts: SeverityAlertConfig | None = None
    debug_alerts: SeverityAlertConfig | None = None
    information_alerts: SeverityAlertConfig | None = None
    warning_alerts: SeverityAlertConfig | None = None
    error_alerts: ErrorAlertConfig | None = None
    critical_alerts: CriticalAlertConfig | None = None
    # Render critical emails with the error section's email settings.
    legacy_critical_email: bool = False


class LoggingConfig(ConfigModel):
    """Logging configuration."""

    level: str = "INFO"
    format: str = "json"


class SmtpConfig(ConfigModel):
    """SMTP relay used for alert emails. An empty host disables email."""

    host: str = ""
    port: int = 587
    username: str = ""
    password: SecretStr = SecretStr("")
    use_tls: bool = True
    timeout: float = 10.0


class ServicesConfig(ConfigModel):
    """Shared services used by the host."""

    logging: LoggingConfig = LoggingConfig()
    smtp: SmtpConfig = SmtpConfig()


class GuardConfig(ConfigModel):
    """Single-instance guard configuration."""

    lock_dir: str = ""
    timeout_secs: float = 1.0
    poll_interval_secs: float = 0.05
    retry_attempts: int = 1
    retry_delay_secs: float = 0.0


class Settings(ConfigModel):
    """Root settings container."""

    app: AppConfig = AppConfig()
    alerts: AlertsConfig = AlertsConfig()
    services: ServicesConfig = ServicesConfig()
    guard: GuardConfig = GuardConfig()


def load_settings(path: str | Path | None = None) -> Settings:
    """Load settings from a YAML file and cache globally.

    Args:
        path: Path to YAML config. Defaults to config/settings.yaml.

    Returns:
        Parsed Settings instance.
    """
    global _settings  # noqa: PLW0603

    config_path = Path(path) if path else _DEFAULT_CONFIG_PATH

    data: dict[str, Any] = {}
    if config_path.exists():
        with open(config_path) as f:
            raw = yaml.safe_load(f)
            if isinstance(raw, dict):
                data = raw

    _settings = Settings.model_validate(data)
    return _settings


def get_settings() -> Settings:
    """Return the cached settings, loading defaults if not yet loaded."""
    global _settings  # noqa: PLW0603
    if _settings is None:
        _settings = load_settings()
    return _settings


def reset_settings() -> None:
    """Reset the cached settings (useful for testing)."""
    global _settings  # noqa: PLW0603
    _settings = None
