"""Promoworker process entry-point.

Usage:
    python -m promoworker [--once] [--log-level LEVEL] [--log-format FMT]

This module calls ``configure_logging()`` first, then hands off to the
orchestrator.  Without ``--once`` the worker polls the queue until it
receives ``SIGTERM``; with ``--once`` it processes at most one pending job
and exits.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from pydantic import ValidationError

from promoworker.core import configure_logging
from promoworker.core.exceptions import ConfigError
from promoworker.core.settings import Settings


def main() -> None:
    """Parse arguments, set up logging and run the worker until it stops."""
    parser = argparse.ArgumentParser(
        prog="promoworker",
        description="Republish queued YouTube videos to a Facebook Page.",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Process at most one pending job and exit instead of polling.",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        metavar="LEVEL",
        help="Log level; takes precedence over LOG_LEVEL.",
    )
    parser.add_argument(
        "--log-format",
        default=None,
        metavar="FORMAT",
        help="Log output, text or json; takes precedence over LOG_FORMAT.",
    )

    args = parser.parse_args()

    try:
        configure_logging(level=args.log_level, fmt=args.log_format)
    except ValueError as exc:
        print(f"promoworker: configuration error: {exc}", file=sys.stderr)  # noqa: T201
        sys.exit(1)

    logger = logging.getLogger(__name__)
    logger.info("Promoworker starting up")

    from promoworker.orchestrator.runner import run_continuous, run_once  # noqa: PLC0415

    try:
        settings = Settings()
    except ValidationError as exc:
        logger.critical("Invalid settings: %s", exc)
        sys.exit(1)

    try:
        if args.once:
            logger.info("Processing a single job (--once).")
            asyncio.run(run_once(settings=settings))
        else:
            logger.info("Polling continuously (SIGTERM or Ctrl+C to stop).")
            asyncio.run(run_continuous(settings=settings))
    except ConfigError as exc:
        logger.critical("Configuration error: %s", exc)
        sys.exit(1)
    except KeyboardInterrupt:
        logger.info("Interrupted, exiting.")
        sys.exit(0)


if __name__ == "__main__":
    main()
