"""Per-job state machine: prepare, acquire, publish, then record one outcome.

:class:`JobProcessor` drives a single claimed job through its stages::

    preparing ──▶ downloading ──▶ uploading ──▶ completed
        │              │              │
        └──────────────┴──────────────┴──────▶ failed

* **preparing**: both adapters report ready and the scratch root is
  writable.  The claim already wrote this stage.
* **downloading**: metadata lookup and file download, each retried on
  transient errors.
* **uploading**: compose the post and publish it (retried); then one
  best-effort comment carrying the extracted links.

Before each external call the processor writes the stage it is *about to
attempt*, so a failure is always recorded against the stage that broke.
Whatever goes wrong inside a stage is wrapped into a
:class:`~promoworker.core.exceptions.StageError` and only rendered to text
when the :class:`~promoworker.core.models.FailedOutcome` is built.

:meth:`JobProcessor.process` never raises for job-level failures: it writes
exactly one terminal outcome, deletes the job's scratch files, and returns
the outcome it wrote.
"""

from __future__ import annotations

import asyncio
import hashlib
import logging
import os
import re
import shutil
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path

from promoworker.acquisition.base import BaseAcquirer
from promoworker.core import events
from promoworker.core.backoff import BackoffPolicy
from promoworker.core.exceptions import ConfigError, EmptyContentError, StageError
from promoworker.core.logging_config import job_log_context
from promoworker.core.models import (
    CompletedOutcome,
    FailedOutcome,
    Job,
    JobOutcome,
    JobStage,
    LocalResource,
    VideoMetadata,
)
from promoworker.core.settings import Settings
from promoworker.orchestrator.retry import retry_with_backoff
from promoworker.publishers.base import BasePublisher
from promoworker.publishers.compose import compose_post, format_link_comment
from promoworker.storage.base import JobStore

__all__ = ["JobProcessor", "scratch_dir_for"]

logger = logging.getLogger(__name__)

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9_.-]+")


def _utcnow() -> datetime:
    return datetime.now(UTC)


def scratch_dir_for(root: Path, job: Job) -> Path:
    """Return the per-job scratch directory under *root*.

    The name combines a filesystem-safe form of the job id with a digest of
    the content reference, so two jobs never share a directory.
    """
    safe_id = _UNSAFE_CHARS.sub("_", job.id).strip("._") or "job"
    digest = hashlib.sha1(job.content_reference.encode("utf-8")).hexdigest()[:12]
    return root / f"{safe_id[:64]}-{digest}"


@dataclass
class _JobRun:
    """Mutable bookkeeping for one :meth:`JobProcessor.process` invocation."""

    job: Job
    stage: JobStage = JobStage.PREPARING
    workdir: Path | None = None
    resource: LocalResource | None = None


class JobProcessor:
    """Run claimed jobs through acquisition and publication.

    Collaborators are injected; nothing is looked up globally.

    Args:
        store: Persistence for stage and terminal writes.
        acquirer: Content source adapter.
        publisher: Destination adapter.
        policy: Back-off schedule shared by every retried call.
        scratch_root: Directory under which per-job scratch dirs are made.
        attribution_label: Label for the ``[ <label> by @<handle> ]`` suffix.
        metadata_attempts: Attempt budget for metadata lookup.
        download_attempts: Attempt budget for the download.
        publish_attempts: Attempt budget for the upload.
        metadata_timeout: Per-attempt limit for metadata lookup, seconds.
        download_timeout: Per-attempt limit for the download, seconds.
        publish_timeout: Per-attempt limit for the upload, seconds.
        clock: Returns the timestamp stored in terminal outcomes.
        sleep: Coroutine used for back-off waits.
    """

    def __init__(
        self,
        store: JobStore,
        acquirer: BaseAcquirer,
        publisher: BasePublisher,
        *,
        policy: BackoffPolicy,
        scratch_root: Path,
        attribution_label: str = "eSpazza YT Promotion",
        metadata_attempts: int = 4,
        download_attempts: int = 3,
        publish_attempts: int = 3,
        metadata_timeout: float | None = None,
        download_timeout: float | None = None,
        publish_timeout: float | None = None,
        clock: Callable[[], datetime] = _utcnow,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._store = store
        self._acquirer = acquirer
        self._publisher = publisher
        self._policy = policy
        self._scratch_root = scratch_root
        self._attribution_label = attribution_label
        self._metadata_attempts = metadata_attempts
        self._download_attempts = download_attempts
        self._publish_attempts = publish_attempts
        self._metadata_timeout = metadata_timeout
        self._download_timeout = download_timeout
        self._publish_timeout = publish_timeout
        self._clock = clock
        self._sleep = sleep

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        store: JobStore,
        acquirer: BaseAcquirer,
        publisher: BasePublisher,
    ) -> JobProcessor:
        """Build a processor with budgets and timeouts taken from *settings*."""
        return cls(
            store,
            acquirer,
            publisher,
            policy=settings.backoff_policy(),
            scratch_root=settings.scratch_dir_resolved,
            attribution_label=settings.attribution_label,
            metadata_attempts=settings.metadata_max_attempts,
            download_attempts=settings.download_max_attempts,
            publish_attempts=settings.publish_max_attempts,
            metadata_timeout=settings.metadata_timeout_s,
            download_timeout=settings.download_timeout_s,
            publish_timeout=settings.publish_timeout_s,
        )

    # ------------------------------------------------------------------
    # Public entry-point
    # ------------------------------------------------------------------

    async def process(self, job: Job) -> JobOutcome:
        """Drive a claimed job to a terminal outcome.

        *job* must already be in ``preparing`` (see
        :meth:`~promoworker.storage.base.JobStore.claim_next_pending`).

        Returns:
            The outcome passed to ``set_terminal``.  It is returned even if
            the terminal write itself failed.
        """
        run = _JobRun(job=job)
        with job_log_context(job.id):
            logger.info("Processing job %s (%s)", job.id, job.content_reference)
            try:
                try:
                    outcome: JobOutcome = await self._run_stages(run)
                except StageError as err:
                    outcome = self._failed(err)
                except Exception as exc:
                    logger.exception("Unexpected error in stage %s", run.stage)
                    outcome = self._failed(StageError(run.stage, exc))

                await self._write_terminal(job.id, outcome)
                return outcome
            finally:
                self._cleanup(run)

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    async def _run_stages(self, run: _JobRun) -> CompletedOutcome:
        job = run.job

        async with self._stage(run, JobStage.PREPARING):
            await self._acquirer.ensure_ready()
            await self._publisher.ensure_ready()
            self._check_scratch_root()

        async with self._stage(run, JobStage.DOWNLOADING):
            metadata: VideoMetadata = await retry_with_backoff(
                lambda: self._acquirer.resolve_metadata(job.content_reference),
                label="resolve_metadata",
                policy=self._policy,
                max_attempts=self._metadata_attempts,
                call_timeout=self._metadata_timeout,
                sleep=self._sleep,
            )
            workdir = scratch_dir_for(self._scratch_root, job)
            run.workdir = workdir
            resource: LocalResource = await retry_with_backoff(
                lambda: self._acquirer.materialize(job.content_reference, workdir),
                label="materialize",
                policy=self._policy,
                max_attempts=self._download_attempts,
                call_timeout=self._download_timeout,
                sleep=self._sleep,
            )
            run.resource = resource
            if resource.size_bytes <= 0:
                raise EmptyContentError(
                    self._acquirer.service, f"Acquired resource {resource.path.name} is empty"
                )

        async with self._stage(run, JobStage.UPLOADING):
            post = compose_post(job, metadata, self._attribution_label)
            published_id: str = await retry_with_backoff(
                lambda: self._publisher.publish(resource, post.title, post.description),
                label="publish",
                policy=self._policy,
                max_attempts=self._publish_attempts,
                call_timeout=self._publish_timeout,
                sleep=self._sleep,
            )

        if post.links:
            await self._post_link_comment(published_id, post.links)

        return CompletedOutcome(completed_at=self._clock(), published_id=published_id)

    @asynccontextmanager
    async def _stage(self, run: _JobRun, stage: JobStage) -> AsyncIterator[None]:
        """Record *stage* and tag any error raised inside the block with it."""
        run.stage = stage
        try:
            if stage is not JobStage.PREPARING:
                await self._store.set_stage(run.job.id, stage)
            logger.info("Job %s entering %s", run.job.id, stage, extra={"event": events.JOB_STAGE})
            yield
        except StageError:
            raise
        except Exception as exc:
            raise StageError(stage, exc) from exc

    def _check_scratch_root(self) -> None:
        try:
            self._scratch_root.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise ConfigError(f"Cannot create scratch dir {self._scratch_root}: {exc}") from exc
        if not os.access(self._scratch_root, os.W_OK):
            raise ConfigError(f"Scratch dir is not writable: {self._scratch_root}")

    async def _post_link_comment(self, published_id: str, links: tuple[str, ...]) -> None:
        """Attach the extracted links as one comment.  Failures are logged only."""
        try:
            await self._publisher.comment(published_id, format_link_comment(links))
        except Exception as exc:  # noqa: BLE001
            logger.warning(
                "Link comment on %s failed; job still completes: %s",
                published_id,
                exc,
                extra={"event": events.COMMENT_FAILED},
            )
        else:
            logger.info(
                "Posted %d link(s) as comment on %s",
                len(links),
                published_id,
                extra={"event": events.COMMENT_POSTED},
            )

    # ------------------------------------------------------------------
    # Terminal write and cleanup
    # ------------------------------------------------------------------

    def _failed(self, err: StageError) -> FailedOutcome:
        return FailedOutcome(
            failed_at=self._clock(),
            stage=err.stage,
            error_message=err.display_message(),
        )

    async def _write_terminal(self, job_id: str, outcome: JobOutcome) -> None:
        try:
            await self._store.set_terminal(job_id, outcome)
        except Exception:
            logger.critical(
                "Could not record terminal outcome %s for job %s",
                outcome.kind,
                job_id,
                exc_info=True,
                extra={"event": events.JOB_TERMINAL_WRITE_ERROR},
            )
            return

        if isinstance(outcome, CompletedOutcome):
            logger.info(
                "Job %s completed (published_id=%s)",
                job_id,
                outcome.published_id,
                extra={"event": events.JOB_COMPLETED},
            )
        else:
            logger.warning(
                "Job %s failed at %s: %s",
                job_id,
                outcome.stage,
                outcome.error_message,
                extra={"event": events.JOB_FAILED},
            )

    def _cleanup(self, run: _JobRun) -> None:
        if run.resource is not None:
            try:
                run.resource.release()
            except OSError:
                logger.warning(
                    "Could not delete %s",
                    run.resource.path,
                    exc_info=True,
                    extra={"event": events.CLEANUP_FAILED},
                )
        if run.workdir is not None and run.workdir.exists():
            try:
                shutil.rmtree(run.workdir)
            except OSError:
                logger.warning(
                    "Could not remove scratch dir %s",
                    run.workdir,
                    exc_info=True,
                    extra={"event": events.CLEANUP_FAILED},
                )
