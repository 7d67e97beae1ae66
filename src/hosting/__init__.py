"""Application host wiring."""

from src.hosting.host import StandardHost, create_standard_host, set_console_title

__all__ = [
    "StandardHost",
    "create_standard_host",
    "set_console_title",
]
