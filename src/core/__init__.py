"""Core module — config and logging."""

from src.core.config import Settings, get_settings, load_settings, reset_settings
from src.core.logging import TRACE, setup_logging

__all__ = [
    "TRACE",
    "Settings",
    "get_settings",
    "load_settings",
    "reset_settings",
    "setup_logging",
]
