"""Domain types for the alert routing subsystem."""

from __future__ import annotations

import sys
import time
from enum import IntEnum

from pydantic import BaseModel, ConfigDict, Field


class Severity(IntEnum):
    """Alert severity — ordered so comparisons work naturally."""

    AUDIT = 0
    TRACE = 1
    DEBUG = 2
    INFORMATION = 3
    WARNING = 4
    ERROR = 5
    CRITICAL = 6


class CallerContext(BaseModel):
    """Where an alert was raised. Informational only."""

    model_config = ConfigDict(frozen=True)

    member: str = ""
    file: str = ""
    line: int = 0

    @classmethod
    def capture(cls, depth: int = 1) -> CallerContext:
        """Capture the frame *depth* levels above the caller."""
        frame = sys._getframe(depth + 1)
        return cls(
            member=frame.f_code.co_name,
            file=frame.f_code.co_filename,
            line=frame.f_lineno,
        )

    def __str__(self) -> str:
        return f"{self.member} ({self.file}:{self.line})"


class AlertEvent(BaseModel):
    """A single alert, consumed synchronously by the router."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    severity: Severity
    message: str
    error: BaseException | None = None
    context: CallerContext | None = None
    timestamp: float = Field(default_factory=time.time)


class DispatchResult(BaseModel):
    """Outcome of routing one alert."""

    handled: bool = False
    actions: list[str] = Field(default_factory=list)
    failures: list[str] = Field(default_factory=list)
