"""SQLite database initialisation for the job queue.

This module is responsible for:

* Opening (or creating) the SQLite file.
* Configuring PRAGMA settings (WAL journal mode, busy timeout).
* Bootstrapping the ``job_queue`` schema via ``CREATE TABLE IF NOT EXISTS``.

Call :func:`open_db` once at process startup and hand the connection to
:class:`~promoworker.storage.repository.JobRepository`.  The caller closes
it.

Typical usage::

    from promoworker.storage.database import open_db

    async def main() -> None:
        conn = await open_db(Path("data/promoworker.db"))
        try:
            ...
        finally:
            await conn.close()
"""

from __future__ import annotations

import logging
from pathlib import Path

import aiosqlite

__all__ = [
    "DEFAULT_DB_PATH",
    "MEMORY_PATH",
    "open_db",
    "create_schema",
]

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Defaults
# ---------------------------------------------------------------------------

#: Fallback database path when no explicit path is passed to :func:`open_db`.
DEFAULT_DB_PATH: Path = Path("data/promoworker.db")

#: Special path accepted by :func:`open_db` for a throwaway in-memory queue.
MEMORY_PATH: str = ":memory:"

# ---------------------------------------------------------------------------
# DDL
# ---------------------------------------------------------------------------

#: ``job_queue`` holds one row per promotion request.
#:
#: Column notes
#: ------------
#: id                 Opaque job identifier supplied by the enqueuer.
#: content_reference  Video URL or bare id.
#: stage              One of the JobStage values.  Rows are created 'pending'.
#: created_at         ISO-8601 in UTC (``+00:00``).  FIFO key, compared through
#:                    julianday() so any offset sorts correctly; ties by rowid.
#: updated_at         ISO-8601 UTC of the last stage or terminal write.
#: completed_at / published_id
#:                    Set together by the success terminal write.
#: failed_at / failed_stage / error_message
#:                    Set together by the failure terminal write.
_DDL_JOB_QUEUE = """\
CREATE TABLE IF NOT EXISTS job_queue (
    id                 TEXT     NOT NULL PRIMARY KEY,
    content_reference  TEXT     NOT NULL,
    promotional_text   TEXT     NOT NULL DEFAULT '',
    submitter_handle   TEXT     NOT NULL DEFAULT '',
    stage              TEXT     NOT NULL DEFAULT 'pending',
    created_at         TEXT     NOT NULL,
    updated_at         TEXT     NOT NULL,
    completed_at       TEXT,
    published_id       TEXT,
    failed_at          TEXT,
    failed_stage       TEXT,
    error_message      TEXT
)"""

_DDL_STAGE_INDEX = """\
CREATE INDEX IF NOT EXISTS idx_job_queue_stage_created
    ON job_queue (stage, created_at)"""

# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


async def open_db(path: Path | str | None = None) -> aiosqlite.Connection:
    """Open (or create) the queue database and bootstrap its schema.

    Args:
        path: Filesystem path for the SQLite file, or ``":memory:"``.
            Defaults to :data:`DEFAULT_DB_PATH`.

    Returns:
        An open :class:`aiosqlite.Connection` with ``row_factory`` set to
        :class:`aiosqlite.Row`.  The caller is responsible for closing it.

    Raises:
        aiosqlite.OperationalError: If the file cannot be opened or created.
    """
    if path is None:
        path = DEFAULT_DB_PATH
    if str(path) != MEMORY_PATH:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)

    logger.debug("Opening SQLite database at %s", path)

    conn: aiosqlite.Connection = await aiosqlite.connect(path)
    conn.row_factory = aiosqlite.Row

    await _configure_pragmas(conn)
    await create_schema(conn)

    logger.info("SQLite job queue ready at %s", path)
    return conn


async def create_schema(conn: aiosqlite.Connection) -> None:
    """Create the ``job_queue`` table and index if they do not exist."""
    await conn.execute(_DDL_JOB_QUEUE)
    await conn.execute(_DDL_STAGE_INDEX)
    await conn.commit()
    logger.debug("Schema bootstrap complete (job_queue table verified)")


# ---------------------------------------------------------------------------
# Internals
# ---------------------------------------------------------------------------


async def _configure_pragmas(conn: aiosqlite.Connection) -> None:
    """Enable WAL and a busy timeout for writes racing an external enqueuer."""
    result = await conn.execute("PRAGMA journal_mode=WAL")
    row = await result.fetchone()
    mode = row[0] if row else "unknown"
    if mode != "wal":
        logger.debug("SQLite journal_mode is %r (expected for ':memory:')", mode)
    else:
        logger.debug("SQLite journal_mode set to WAL")

    await conn.execute("PRAGMA busy_timeout=5000")
