"""Command-line entry point.

Runs the poller as a standalone service:

  airthings-poller --config airthings.yaml
  AIRTHINGS_CLIENT_ID=... AIRTHINGS_CLIENT_SECRET=... airthings-poller --once

SIGINT/SIGTERM request a graceful stop: the current device fetch finishes,
no new cycle starts, and the process exits 0.
"""

from __future__ import annotations

import argparse
import logging
import signal
import sys
from typing import List, Optional

from . import __version__
from .config import load_settings
from .logging_setup import setup_logging
from .poller import run, run_once, start, stop
from .sinks import build_sink

logger = logging.getLogger(__name__)


def _parse_args(argv: Optional[List[str]]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="airthings-poller",
        description="Poll the Airthings API and emit one event per new device reading.",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="YAML config file. Environment variables (AIRTHINGS_*) override its values.",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        default=False,
        help="Run a single poll cycle and exit (handy for cron or smoke tests).",
    )
    parser.add_argument("--log-level", default=None, help="Override LOG_LEVEL (DEBUG, INFO, ...).")
    parser.add_argument("--log-format", default=None, choices=("json", "console"), help="Override LOG_FORMAT.")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    args = _parse_args(argv)

    try:
        settings = load_settings(
            args.config,
            overrides={"log_level": args.log_level, "log_format": args.log_format},
        )
    except (OSError, ValueError) as e:
        print(f"airthings-poller: configuration error: {e}", file=sys.stderr)
        return 2

    setup_logging(log_level=settings.log_level, log_format=settings.log_format)

    sink = build_sink(settings)
    handle = start(settings)

    def _handle_signal(signum, frame):  # noqa: ARG001
        logger.info("Received signal %s, stopping", signum)
        stop(handle)

    previous = {sig: signal.signal(sig, _handle_signal) for sig in (signal.SIGINT, signal.SIGTERM)}

    try:
        if args.once:
            events = run_once(handle, sink)
            logger.info("Single poll cycle emitted %d event(s)", len(events))
        else:
            run(handle, sink)
    finally:
        sink.close()
        for sig, handler in previous.items():
            signal.signal(sig, handler)

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
