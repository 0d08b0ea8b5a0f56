"""Job repository: the SQLite implementation of the job store.

Provides :class:`JobRepository`, the single data-access object for the
``job_queue`` table.  Every stage and terminal write goes through a
conditional ``UPDATE`` so that the row itself enforces the lifecycle:

* a claim only succeeds while the row is still ``pending``;
* a stage write only succeeds while the row holds the stage that was read;
* a terminal write only succeeds while the row is not yet terminal.

When a conditional update matches no row the repository re-reads and decides
again, so a concurrent writer can never be silently overwritten.

Typical usage::

    from promoworker.storage.database import open_db
    from promoworker.storage.repository import JobRepository

    async def run() -> None:
        conn = await open_db()
        repo = JobRepository(conn)

        await repo.enqueue("job-1", "https://youtu.be/dQw4w9WgXcQ")
        job = await repo.claim_next_pending()
        await repo.set_stage(job.id, JobStage.DOWNLOADING)
        await conn.close()
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Any

import aiosqlite

from promoworker.core import events
from promoworker.core.exceptions import InvalidTransitionError, JobNotFoundError
from promoworker.core.models import (
    CompletedOutcome,
    FailedOutcome,
    Job,
    JobOutcome,
    JobStage,
)

__all__ = ["JobRepository"]

logger = logging.getLogger(__name__)

_SELECT_COLUMNS = """\
id, content_reference, promotional_text, submitter_handle, stage, created_at,
completed_at, published_id, failed_at, failed_stage, error_message"""

_TERMINAL_VALUES = (str(JobStage.COMPLETED), str(JobStage.FAILED))


def _now() -> datetime:
    return datetime.now(UTC)


def _as_utc(value: datetime) -> datetime:
    """Convert *value* to UTC; a naive value is taken to be UTC already."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


# ---------------------------------------------------------------------------
# Row mapping
# ---------------------------------------------------------------------------


def _outcome_from_row(row: aiosqlite.Row) -> JobOutcome | None:
    stage = JobStage(row["stage"])
    if stage is JobStage.COMPLETED:
        return CompletedOutcome(
            completed_at=datetime.fromisoformat(row["completed_at"]),
            published_id=row["published_id"],
        )
    if stage is JobStage.FAILED:
        return FailedOutcome(
            failed_at=datetime.fromisoformat(row["failed_at"]),
            stage=JobStage(row["failed_stage"]),
            error_message=row["error_message"] or "",
        )
    return None


def _job_from_row(row: aiosqlite.Row) -> Job:
    return Job(
        id=row["id"],
        content_reference=row["content_reference"],
        promotional_text=row["promotional_text"],
        submitter_handle=row["submitter_handle"],
        stage=JobStage(row["stage"]),
        created_at=datetime.fromisoformat(row["created_at"]),
        outcome=_outcome_from_row(row),
    )


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class JobRepository:
    """Data-access object for the ``job_queue`` table.

    Owns no connection lifecycle: pass an open connection from
    :func:`~promoworker.storage.database.open_db` and close it when done.

    Args:
        conn: Open :class:`aiosqlite.Connection` with ``row_factory`` set to
            :class:`aiosqlite.Row`.
    """

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn

    # ------------------------------------------------------------------
    # Enqueue / read
    # ------------------------------------------------------------------

    async def enqueue(
        self,
        job_id: str,
        content_reference: str,
        *,
        promotional_text: str = "",
        submitter_handle: str = "",
        created_at: datetime | None = None,
    ) -> Job:
        """Insert a new ``pending`` job and return its snapshot.

        *created_at* is stored as UTC ISO-8601; a naive value is taken as
        UTC.

        Raises:
            aiosqlite.IntegrityError: If *job_id* already exists.
        """
        created = _as_utc(created_at) if created_at is not None else _now()
        await self._conn.execute(
            """
            INSERT INTO job_queue
                (id, content_reference, promotional_text, submitter_handle,
                 stage, created_at, updated_at)
            VALUES
                (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                job_id,
                content_reference,
                promotional_text or "",
                submitter_handle or "",
                str(JobStage.PENDING),
                created.isoformat(),
                created.isoformat(),
            ),
        )
        await self._conn.commit()
        logger.debug("Enqueued job %s (%s)", job_id, content_reference)
        return Job(
            id=job_id,
            content_reference=content_reference,
            promotional_text=promotional_text,
            submitter_handle=submitter_handle,
            created_at=created,
        )

    async def get(self, job_id: str) -> Job | None:
        """Return the current snapshot of *job_id*, or ``None``."""
        cursor = await self._conn.execute(
            f"SELECT {_SELECT_COLUMNS} FROM job_queue WHERE id = ?",
            (job_id,),
        )
        row = await cursor.fetchone()
        return _job_from_row(row) if row is not None else None

    async def count_by_stage(self) -> dict[JobStage, int]:
        """Return the number of jobs in each stage (absent stages omitted)."""
        cursor = await self._conn.execute(
            "SELECT stage, COUNT(*) AS n FROM job_queue GROUP BY stage"
        )
        rows = await cursor.fetchall()
        return {JobStage(row["stage"]): row["n"] for row in rows}

    # ------------------------------------------------------------------
    # JobStore protocol
    # ------------------------------------------------------------------

    async def claim_next_pending(self) -> Job | None:
        """Claim the oldest pending job by moving it to ``preparing``.

        Candidates are ordered by the instant in ``created_at`` (compared as
        a Julian day, so any stored UTC offset sorts correctly) then by
        insertion order.  A candidate whose conditional update matches
        nothing was claimed by someone else in the meantime, so the next one
        is tried.

        A candidate row that cannot be read back as a :class:`Job` is failed
        in ``preparing`` with the mapping error as its message, and the next
        candidate is tried.
        """
        while True:
            cursor = await self._conn.execute(
                f"""
                SELECT {_SELECT_COLUMNS} FROM job_queue
                WHERE stage = ?
                ORDER BY julianday(created_at) ASC, rowid ASC
                LIMIT 1
                """,
                (str(JobStage.PENDING),),
            )
            row = await cursor.fetchone()
            if row is None:
                return None

            job_id = row["id"]
            try:
                job = _job_from_row(row).model_copy(update={"stage": JobStage.PREPARING})
            except ValueError as exc:
                await self._fail_unreadable(job_id, exc)
                continue

            cursor = await self._conn.execute(
                "UPDATE job_queue SET stage = ?, updated_at = ? WHERE id = ? AND stage = ?",
                (str(JobStage.PREPARING), _now().isoformat(), job_id, str(JobStage.PENDING)),
            )
            await self._conn.commit()
            if cursor.rowcount == 1:
                logger.debug("Claimed job %s", job_id)
                return job
            logger.debug("Lost claim race for job %s; trying next candidate", job_id)

    async def set_stage(self, job_id: str, stage: JobStage) -> None:
        """Move *job_id* forward to *stage*.

        Writing the current stage again is a no-op.

        Raises:
            JobNotFoundError: Unknown *job_id*.
            InvalidTransitionError: *stage* is terminal (use
                :meth:`set_terminal`), is behind the current stage, or the
                job is already terminal.
        """
        while True:
            current = await self._current_stage(job_id)
            if current is stage:
                return
            if stage.is_terminal or not current.can_advance_to(stage):
                raise InvalidTransitionError(job_id, str(current), str(stage))

            cursor = await self._conn.execute(
                "UPDATE job_queue SET stage = ?, updated_at = ? WHERE id = ? AND stage = ?",
                (str(stage), _now().isoformat(), job_id, str(current)),
            )
            await self._conn.commit()
            if cursor.rowcount == 1:
                logger.debug("Job %s stage %s -> %s", job_id, current, stage)
                return

    async def set_terminal(self, job_id: str, outcome: JobOutcome) -> None:
        """Write the terminal outcome for *job_id*.

        Repeating an identical terminal write is a no-op.

        Raises:
            JobNotFoundError: Unknown *job_id*.
            InvalidTransitionError: The job is already terminal with a
                different outcome, or cannot reach the outcome's stage.
        """
        target = JobStage.COMPLETED if isinstance(outcome, CompletedOutcome) else JobStage.FAILED

        while True:
            job = await self.get(job_id)
            if job is None:
                raise JobNotFoundError(job_id)
            if job.stage.is_terminal:
                if job.outcome == outcome:
                    logger.debug("Job %s already holds this terminal outcome", job_id)
                    return
                raise InvalidTransitionError(job_id, str(job.stage), str(target))
            if not job.stage.can_advance_to(target):
                raise InvalidTransitionError(job_id, str(job.stage), str(target))

            cursor = await self._conn.execute(
                f"""
                UPDATE job_queue
                SET stage = ?, updated_at = ?,
                    completed_at = ?, published_id = ?,
                    failed_at = ?, failed_stage = ?, error_message = ?
                WHERE id = ? AND stage NOT IN ({",".join("?" * len(_TERMINAL_VALUES))})
                """,
                (*self._terminal_values(target, outcome), job_id, *_TERMINAL_VALUES),
            )
            await self._conn.commit()
            if cursor.rowcount == 1:
                logger.debug("Job %s terminal write: %s", job_id, target)
                return

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _fail_unreadable(self, job_id: str, exc: ValueError) -> None:
        """Fail a pending row that does not map to a :class:`Job`."""
        now = _now().isoformat()
        message = f"{JobStage.PREPARING}: invalid queue row: {exc}"
        cursor = await self._conn.execute(
            """
            UPDATE job_queue
            SET stage = ?, updated_at = ?,
                failed_at = ?, failed_stage = ?, error_message = ?
            WHERE id = ? AND stage = ?
            """,
            (
                str(JobStage.FAILED),
                now,
                now,
                str(JobStage.PREPARING),
                message,
                job_id,
                str(JobStage.PENDING),
            ),
        )
        await self._conn.commit()
        if cursor.rowcount == 1:
            logger.error(
                "Job %s failed at claim: %s",
                job_id,
                message,
                extra={"event": events.JOB_FAILED},
            )

    async def _current_stage(self, job_id: str) -> JobStage:
        cursor = await self._conn.execute(
            "SELECT stage FROM job_queue WHERE id = ?",
            (job_id,),
        )
        row = await cursor.fetchone()
        if row is None:
            raise JobNotFoundError(job_id)
        return JobStage(row["stage"])

    @staticmethod
    def _terminal_values(target: JobStage, outcome: JobOutcome) -> tuple[Any, ...]:
        if isinstance(outcome, CompletedOutcome):
            return (
                str(target),
                outcome.completed_at.isoformat(),
                outcome.completed_at.isoformat(),
                outcome.published_id,
                None,
                None,
                None,
            )
        return (
            str(target),
            outcome.failed_at.isoformat(),
            None,
            None,
            outcome.failed_at.isoformat(),
            str(outcome.stage),
            outcome.error_message,
        )
