"""Process-wide logging setup and per-job log correlation.

``configure_logging()`` runs once, from ``__main__``, before anything else
logs.  Modules only ever do::

    logger = logging.getLogger(__name__)

Every record passes through :class:`JobContextFilter`, which stamps it with
the id of the job being processed (``"-"`` between jobs).  The processor
opens :func:`job_log_context` around each job, so retries, adapter calls
and the terminal write all share one ``job_id`` without passing it around.

Environment fallbacks, read when ``configure_logging()`` is called:

=============  ==============================  =======
Variable       Values                          Default
=============  ==============================  =======
``LOG_LEVEL``  DEBUG, INFO, WARNING, ERROR     INFO
``LOG_FORMAT`` text, json                      text
=============  ==============================  =======
"""

from __future__ import annotations

import json
import logging
import os
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, datetime
from typing import Any, Final

__all__ = [
    "configure_logging",
    "JsonFormatter",
    "JOB_ID_CTX",
    "JobContextFilter",
    "job_log_context",
]

logger = logging.getLogger(__name__)

#: Id of the job currently being processed, ``"-"`` while idle.
JOB_ID_CTX: ContextVar[str] = ContextVar("job_id", default="-")

_LEVELS: Final[tuple[str, ...]] = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
_FORMATS: Final[tuple[str, ...]] = ("text", "json")

_TEXT_LINE: Final[str] = "%(asctime)s %(levelname)-8s [job=%(job_id)s] %(name)s: %(message)s"
_TEXT_DATE: Final[str] = "%Y-%m-%dT%H:%M:%S"

#: Third-party loggers that are held at WARNING unless DEBUG is requested.
_QUIET_LOGGERS: Final[tuple[str, ...]] = ("httpx", "httpcore", "asyncio", "aiosqlite", "yt_dlp")


# ---------------------------------------------------------------------------
# Job correlation
# ---------------------------------------------------------------------------


@contextmanager
def job_log_context(job_id: str) -> Iterator[None]:
    """Tag every log record emitted inside the block with *job_id*."""
    token = JOB_ID_CTX.set(job_id)
    try:
        yield
    finally:
        JOB_ID_CTX.reset(token)


class JobContextFilter(logging.Filter):
    """Copy :data:`JOB_ID_CTX` onto each record as ``record.job_id``."""

    def filter(self, record: logging.LogRecord) -> bool:  # noqa: A003
        record.job_id = JOB_ID_CTX.get()
        return True


# ---------------------------------------------------------------------------
# Setup
# ---------------------------------------------------------------------------


def _pick(value: str | None, env_var: str, default: str, allowed: tuple[str, ...]) -> str:
    chosen = value or os.environ.get(env_var) or default
    for option in allowed:
        if option.lower() == chosen.strip().lower():
            return option
    raise ValueError(f"{env_var} must be one of {', '.join(allowed)}; got {chosen!r}")


def _stderr_handler(level: str, fmt: str) -> logging.Handler:
    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    handler.addFilter(JobContextFilter())
    if fmt == "json":
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter(_TEXT_LINE, datefmt=_TEXT_DATE))
    return handler


def configure_logging(
    level: str | None = None,
    fmt: str | None = None,
    *,
    force: bool = False,
) -> None:
    """Install a single stderr handler on the root logger.

    Args:
        level: Root level; ``$LOG_LEVEL`` or ``INFO`` when omitted.
        fmt: ``"text"`` or ``"json"``; ``$LOG_FORMAT`` or ``text`` when
            omitted.
        force: Replace existing root handlers.  Without it an already
            configured root logger only has its level adjusted.

    Raises:
        ValueError: On an unknown level or format.
    """
    resolved_level = _pick(level, "LOG_LEVEL", "INFO", _LEVELS)
    resolved_fmt = _pick(fmt, "LOG_FORMAT", "text", _FORMATS)

    root = logging.getLogger()
    root.setLevel(resolved_level)
    if root.handlers and not force:
        return

    for existing in list(root.handlers):
        root.removeHandler(existing)
    root.addHandler(_stderr_handler(resolved_level, resolved_fmt))

    if resolved_level != "DEBUG":
        for name in _QUIET_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)


# ---------------------------------------------------------------------------
# JSON output
# ---------------------------------------------------------------------------

#: Attributes every LogRecord has; anything else came from ``extra=``.
_STANDARD_ATTRS: Final[frozenset[str]] = frozenset(
    logging.LogRecord("", 0, "", 0, "", None, None).__dict__
) | {"message", "asctime"}


class JsonFormatter(logging.Formatter):
    """Render each record as one JSON line.

    Example::

        {"ts": "2026-03-01T12:00:00.123+00:00", "level": "INFO",
         "logger": "promoworker.orchestrator.processor",
         "message": "Job 42 completed (published_id=987)",
         "extra": {"job_id": "42", "event": "JOB_COMPLETED"}}

    ``exc_info`` and ``stack_info`` keys appear only when the record has
    them.  Values that are not JSON-native are rendered with ``str()``.
    """

    def format(self, record: logging.LogRecord) -> str:  # noqa: A003
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(timespec="milliseconds"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "extra": {
                key: value
                for key, value in record.__dict__.items()
                if key not in _STANDARD_ATTRS
            },
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        if record.stack_info:
            payload["stack_info"] = self.formatStack(record.stack_info)
        return json.dumps(payload, default=str)
