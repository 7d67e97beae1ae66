"""Tests for src/core/logging.py — levels, TRACE, context binding."""

from __future__ import annotations

import logging
from collections.abc import Iterator

import pytest
import structlog

from src.core.config import reset_settings
from src.core.logging import TRACE, setup_logging


@pytest.fixture(autouse=True)
def _clean() -> Iterator[None]:
    reset_settings()
    yield
    structlog.contextvars.clear_contextvars()


class TestSetupLogging:
    def test_level_override(self) -> None:
        setup_logging(level="DEBUG", fmt="console")
        assert logging.getLogger().level == logging.DEBUG

    def test_trace_level_registered(self) -> None:
        setup_logging(level="TRACE")
        assert logging.getLevelName(TRACE) == "TRACE"
        assert logging.getLogger().level == TRACE

    def test_unknown_level_falls_back_to_info(self) -> None:
        setup_logging(level="NOPE")
        assert logging.getLogger().level == logging.INFO

    def test_single_handler_installed(self) -> None:
        setup_logging()
        setup_logging()
        assert len(logging.getLogger().handlers) == 1

    def test_context_bound(self) -> None:
        setup_logging(app="svc", machine="box", user="alice")
        ctx = structlog.contextvars.get_contextvars()
        assert ctx == {"app": "svc", "machine": "box", "user": "alice"}

    def test_context_replaced_on_reconfigure(self) -> None:
        setup_logging(app="first")
        setup_logging(app="second")
        assert structlog.contextvars.get_contextvars() == {"app": "second"}
