"""Lock identity derived from the application's friendly name."""

from __future__ import annotations

import sys
from pathlib import Path

from pydantic import BaseModel, ConfigDict

# Characters that may not appear in a lock name.
_UNSAFE_CHARS = ("\\", "/", ":")


def friendly_name() -> str:
    """Name of the running program, without directory or extension."""
    argv0 = sys.argv[0] if sys.argv and sys.argv[0] else ""
    name = Path(argv0).stem
    if not name or name == "-c":
        return "python"
    return name


def normalize(app_name: str) -> str:
    """Replace path separators and colons with underscores.

    Names that differ only in those characters, or in an underscore at the
    same position, share a lock name: ``"a/b"``, ``"a\\b"``, ``"a:b"`` and
    ``"a_b"`` all become ``"a_b"``.  Ordinary application names keep
    their identity.
    """
    for ch in _UNSAFE_CHARS:
        app_name = app_name.replace(ch, "_")
    return app_name


class LockIdentity(BaseModel):
    """Machine-wide identity of one application."""

    model_config = ConfigDict(frozen=True)

    app_name: str
    version: str = ""

    @classmethod
    def from_app_name(cls, app_name: str = "", version: str = "") -> LockIdentity:
        return cls(app_name=app_name or friendly_name(), version=version)

    @property
    def normalized(self) -> str:
        return normalize(self.app_name)

    @property
    def lock_name(self) -> str:
        """Globally scoped lock name, safe to use as a file name."""
        return f"Global_{{{self.normalized}}}"

    @property
    def title(self) -> str:
        """Console title: ``"<app> - <version>"``."""
        if not self.version:
            return self.app_name
        return f"{self.app_name} - {self.version}"
