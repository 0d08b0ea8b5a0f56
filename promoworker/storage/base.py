"""Store interface used by the orchestrator and the poller.

:class:`JobStore` is a structural :class:`~typing.Protocol` so tests can pass
any object with the three coroutine methods, while
:class:`~promoworker.storage.repository.JobRepository` is the SQLite
implementation used in production.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from promoworker.core.models import Job, JobOutcome, JobStage

__all__ = ["JobStore"]


@runtime_checkable
class JobStore(Protocol):
    """Persistence operations the job lifecycle depends on."""

    async def claim_next_pending(self) -> Job | None:
        """Atomically move the oldest ``pending`` job to ``preparing``.

        Returns:
            The claimed job (already in ``preparing``), or ``None``.
        """
        ...

    async def set_stage(self, job_id: str, stage: JobStage) -> None:
        """Record the stage the job is about to attempt.

        Raises:
            JobNotFoundError: Unknown *job_id*.
            InvalidTransitionError: Backwards move or move out of a terminal
                stage.
        """
        ...

    async def set_terminal(self, job_id: str, outcome: JobOutcome) -> None:
        """Write the single terminal outcome for *job_id*.

        Raises:
            JobNotFoundError: Unknown *job_id*.
            InvalidTransitionError: The job already holds a different
                terminal outcome.
        """
        ...
