#!/usr/bin/env python3
"""Quick-start entrypoint — raises one alert inside the single-instance guard.

Usage::

    # Raise a critical test alert with the default config
    python scripts/run.py

    # Custom config file and severity
    python scripts/run.py --config config/settings.yaml --severity ERROR

    # Hold the lock so a second instance started meanwhile is refused
    python scripts/run.py --hold 30
"""

from __future__ import annotations

import argparse
import asyncio
import signal
import sys

import structlog

from src.alerts.types import Severity
from src.hosting.host import StandardHost, create_standard_host

logger = structlog.get_logger(__name__)


async def run(args: argparse.Namespace) -> int:
    """Build the host and run the alert action once."""
    host = create_standard_host(
        config_path=args.config,
        app_name=args.app_name,
        log_level=args.log_level,
    )
    severity = Severity[args.severity.upper()]

    async def action(h: StandardHost) -> None:
        result = h.alerts.raise_alert(severity, args.message)
        logger.info(
            "alert_raised",
            severity=severity.name,
            handled=result.handled,
            actions=result.actions,
            failures=result.failures,
        )
        if args.hold > 0:
            await _wait_for_shutdown(args.hold)

    ran = await host.run_once_async(action)
    if not ran:
        logger.error("already_running", lock=host.identity.lock_name)
        print(f"{host.identity.app_name} is already running.", file=sys.stderr)
        return 1
    return 0


async def _wait_for_shutdown(timeout: float) -> None:
    stop_event = asyncio.Event()

    def _signal_handler() -> None:
        logger.info("shutdown_signal_received")
        stop_event.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, _signal_handler)
        except NotImplementedError:
            # Windows: signal handlers not supported on ProactorEventLoop
            pass

    try:
        await asyncio.wait_for(stop_event.wait(), timeout=timeout)
    except asyncio.TimeoutError:
        pass


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Raise a test alert under the single-instance guard.",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to settings YAML (default: config/settings.yaml)",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Log level override: TRACE, DEBUG, INFO, WARNING, ERROR",
    )
    parser.add_argument(
        "--app-name",
        default=None,
        help="Application name used for the lock (default: app.name or script name)",
    )
    parser.add_argument(
        "--severity",
        default="CRITICAL",
        choices=[s.name for s in Severity] + [s.name.lower() for s in Severity],
        help="Alert severity (default: CRITICAL)",
    )
    parser.add_argument(
        "--message",
        default="this is a test error",
        help="Alert message",
    )
    parser.add_argument(
        "--hold",
        type=float,
        default=0.0,
        help="Seconds to keep the lock after raising the alert",
    )
    args = parser.parse_args()

    code = asyncio.run(run(args))
    sys.exit(code)


if __name__ == "__main__":
    main()
