"""Promoworker core domain models.

This module defines the :class:`Job` queue record, its :class:`JobStage`
lifecycle, the two terminal outcome records, and the value types exchanged
with the acquisition and publication adapters.

Stage lifecycle::

    pending ──claim──▶ preparing ──▶ downloading ──▶ uploading ──▶ completed
                           │              │              │
                           └──────────────┴──────────────┴──────▶ failed

Typical usage::

    from promoworker.core.models import Job, JobStage

    if job.stage.is_terminal:
        return
    assert JobStage.PREPARING.can_advance_to(JobStage.DOWNLOADING)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, field_validator

__all__ = [
    "JobStage",
    "Job",
    "CompletedOutcome",
    "FailedOutcome",
    "JobOutcome",
    "VideoMetadata",
    "LocalResource",
    "PostContent",
]

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Stage lifecycle
# ---------------------------------------------------------------------------


class JobStage(StrEnum):
    """Pipeline phase of a job, stored as a plain string in ``job_queue``."""

    PENDING = "pending"
    PREPARING = "preparing"
    DOWNLOADING = "downloading"
    UPLOADING = "uploading"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        """``True`` for ``completed`` and ``failed``."""
        return self in _TERMINAL_STAGES

    def can_advance_to(self, other: JobStage) -> bool:
        """Return ``True`` if a store write from ``self`` to *other* is legal.

        Writing the stage a job is already in is allowed so that repeated
        writes stay idempotent.  Terminal stages accept nothing else.
        """
        if other is self:
            return True
        return other in _ALLOWED_TRANSITIONS[self]


_TERMINAL_STAGES: frozenset[JobStage] = frozenset({JobStage.COMPLETED, JobStage.FAILED})

_ALLOWED_TRANSITIONS: dict[JobStage, frozenset[JobStage]] = {
    JobStage.PENDING: frozenset({JobStage.PREPARING}),
    JobStage.PREPARING: frozenset({JobStage.DOWNLOADING, JobStage.FAILED}),
    JobStage.DOWNLOADING: frozenset({JobStage.UPLOADING, JobStage.FAILED}),
    JobStage.UPLOADING: frozenset({JobStage.COMPLETED, JobStage.FAILED}),
    JobStage.COMPLETED: frozenset(),
    JobStage.FAILED: frozenset(),
}


# ---------------------------------------------------------------------------
# Terminal outcomes
# ---------------------------------------------------------------------------


class CompletedOutcome(BaseModel):
    """Success record written exactly once when publication succeeds.

    Attributes:
        completed_at: UTC timestamp of the terminal write.
        published_id: Identifier assigned by the publication platform.
    """

    model_config = {"frozen": True}

    kind: Literal["completed"] = "completed"
    completed_at: datetime
    published_id: str = Field(..., min_length=1)

    @property
    def stage(self) -> JobStage:
        return JobStage.COMPLETED


class FailedOutcome(BaseModel):
    """Failure record written exactly once when a job cannot finish.

    Attributes:
        failed_at: UTC timestamp of the terminal write.
        stage: The stage the job was *attempting* when it broke, which is
            what an operator needs to locate the failure.
        error_message: Display text of the underlying error.
    """

    model_config = {"frozen": True}

    kind: Literal["failed"] = "failed"
    failed_at: datetime
    stage: JobStage
    error_message: str

    @field_validator("stage")
    @classmethod
    def _non_terminal_stage(cls, v: JobStage) -> JobStage:
        if v.is_terminal or v is JobStage.PENDING:
            raise ValueError(f"failure stage must be an active stage, got {v!r}")
        return v


JobOutcome = CompletedOutcome | FailedOutcome


# ---------------------------------------------------------------------------
# Queue record
# ---------------------------------------------------------------------------


class Job(BaseModel):
    """Snapshot of one ``job_queue`` row.

    Instances are frozen; the store is the source of truth for ``stage`` and
    ``outcome``, so a fresh snapshot must be read to observe later writes.

    Attributes:
        id: Opaque unique job identifier.
        content_reference: External locator of the video (usually a URL).
        promotional_text: Operator-supplied text placed at the top of the post.
        submitter_handle: Handle credited in the attribution suffix.
        stage: Current :class:`JobStage`.
        created_at: FIFO ordering key.
        outcome: Terminal record, present only once the job is terminal.
    """

    model_config = {"frozen": True}

    id: str = Field(..., min_length=1)
    content_reference: str
    promotional_text: str = ""
    submitter_handle: str = ""
    stage: JobStage = JobStage.PENDING
    created_at: datetime
    outcome: CompletedOutcome | FailedOutcome | None = None

    @field_validator("promotional_text", "submitter_handle", mode="before")
    @classmethod
    def _none_to_empty(cls, v: object) -> object:
        """Coerce SQL NULLs to empty strings."""
        return "" if v is None else v


# ---------------------------------------------------------------------------
# Adapter value types
# ---------------------------------------------------------------------------


class VideoMetadata(BaseModel):
    """Metadata resolved for a content reference.

    Attributes:
        video_id: Provider-specific identifier (e.g. the 11-char YouTube id).
        title: Video title, reused as the published title.
        description: Video description.  Empty string when absent.
        duration_s: Length in seconds, if the provider reports it.
    """

    model_config = {"frozen": True}

    video_id: str
    title: str
    description: str = ""
    duration_s: float | None = None

    @field_validator("description", mode="before")
    @classmethod
    def _description_none_to_empty(cls, v: object) -> object:
        return "" if v is None else v


@dataclass
class LocalResource:
    """Handle to content materialised in local scratch storage.

    The handle is owned by the orchestrator invocation that obtained it and
    must be released before that invocation returns.

    Attributes:
        path: Location of the bytes on disk.
        size_bytes: Size recorded when the file was produced.
        content_type: MIME type sent to the publication platform.
    """

    path: Path
    size_bytes: int
    content_type: str = "video/mp4"

    def release(self) -> None:
        """Delete the underlying file.  Safe to call more than once.

        Raises:
            OSError: If the file exists but cannot be removed.
        """
        self.path.unlink(missing_ok=True)
        logger.debug("Released local resource %s", self.path)


@dataclass(frozen=True)
class PostContent:
    """Composed publication payload.

    Attributes:
        title: Published title.
        description: Published description with links replaced by markers.
        links: URLs extracted from the description, in order of appearance.
    """

    title: str
    description: str
    links: tuple[str, ...] = ()
