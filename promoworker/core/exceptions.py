"""Promoworker exception taxonomy.

Every custom exception inherits from :class:`PromoWorkerError`.  Exceptions
are organised so the orchestrator can classify a failure with a single
``isinstance`` check:

    Layer hierarchy
    ---------------
    PromoWorkerError
    ├── ConfigError
    ├── StorageError
    │   ├── JobNotFoundError
    │   └── InvalidTransitionError
    ├── ServiceError
    │   ├── TransientError              (retried)
    │   │   └── RateLimitedError        (retried)
    │   ├── InvalidInputError
    │   │   ├── InvalidReferenceError
    │   │   └── ContentNotFoundError
    │   ├── AuthorizationError
    │   ├── PayloadError
    │   │   ├── ResourceTooLargeError
    │   │   ├── EmptyContentError
    │   │   └── PayloadTooLargeError
    │   ├── ServiceRejectedError
    │   └── CommentError
    └── StageError

Only :class:`TransientError` and its subclasses are retried.  Everything else
raised by an adapter ends the job on the first occurrence.

Usage:

    from promoworker.core.exceptions import TransientError

    raise TransientError("youtube", "Connection reset by peer") from exc
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from promoworker.core.models import JobStage

__all__ = [
    "PromoWorkerError",
    # Config
    "ConfigError",
    # Storage
    "StorageError",
    "JobNotFoundError",
    "InvalidTransitionError",
    # External services
    "ServiceError",
    "TransientError",
    "RateLimitedError",
    "InvalidInputError",
    "InvalidReferenceError",
    "ContentNotFoundError",
    "AuthorizationError",
    "PayloadError",
    "ResourceTooLargeError",
    "EmptyContentError",
    "PayloadTooLargeError",
    "ServiceRejectedError",
    "CommentError",
    # Orchestrator
    "StageError",
]

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------


class PromoWorkerError(Exception):
    """Root exception for all promoworker errors."""


# ---------------------------------------------------------------------------
# Config layer
# ---------------------------------------------------------------------------


class ConfigError(PromoWorkerError):
    """Raised when a required credential or setting is missing or invalid.

    Never retried: a job that hits this error fails in the ``preparing``
    stage.
    """


# ---------------------------------------------------------------------------
# Storage layer
# ---------------------------------------------------------------------------


class StorageError(PromoWorkerError):
    """Raised when a job-queue read or write fails."""


class JobNotFoundError(StorageError):
    """Raised when a stage or terminal write targets an unknown job id.

    Args:
        job_id: The identifier that was not found.
    """

    def __init__(self, job_id: str) -> None:
        self.job_id = job_id
        super().__init__(f"Job not found in queue: {job_id!r}")


class InvalidTransitionError(StorageError):
    """Raised when a write would move a job backwards or out of a terminal stage.

    Args:
        job_id: The job being updated.
        current: Stage currently recorded in the store.
        requested: Stage the caller tried to write.
    """

    def __init__(self, job_id: str, current: str, requested: str) -> None:
        self.job_id = job_id
        self.current = current
        self.requested = requested
        super().__init__(
            f"Job {job_id!r}: transition {current!r} -> {requested!r} is not allowed"
        )


# ---------------------------------------------------------------------------
# External service layer
# ---------------------------------------------------------------------------


class ServiceError(PromoWorkerError):
    """Base class for errors raised by acquisition and publication adapters.

    Args:
        service: Short name of the external service (e.g. ``"youtube"``).
        message: Human-readable error description.
    """

    def __init__(self, service: str, message: str) -> None:
        self.service = service
        self.detail = message
        super().__init__(f"[{service}] {message}")


class TransientError(ServiceError):
    """Network failures, timeouts and 5xx responses.  Safe to retry."""


class RateLimitedError(TransientError):
    """Raised when a service signals throttling (HTTP 429 or equivalent).

    Args:
        service: Short name of the service.
        retry_after: Back-off hint in seconds, if the service sent one.
    """

    def __init__(self, service: str, retry_after: float | None = None) -> None:
        self.retry_after = retry_after
        detail = f"retry after {retry_after}s" if retry_after is not None else "no retry hint"
        super().__init__(service, f"Rate limited ({detail})")


class InvalidInputError(ServiceError):
    """The job input cannot be processed as given."""


class InvalidReferenceError(InvalidInputError):
    """The content reference cannot be parsed into a provider-specific id."""


class ContentNotFoundError(InvalidInputError):
    """The content reference parses but does not exist upstream."""


class AuthorizationError(ServiceError):
    """Credentials were rejected, or the upstream content requires sign-in."""


class PayloadError(ServiceError):
    """The content itself is unacceptable (too large or empty)."""


class ResourceTooLargeError(PayloadError):
    """Downloaded content exceeds the configured size limit."""


class EmptyContentError(PayloadError):
    """Materialisation produced zero bytes."""


class PayloadTooLargeError(PayloadError):
    """The publication platform refused the upload because of its size."""


class ServiceRejectedError(ServiceError):
    """A permanent rejection that fits no narrower category (e.g. HTTP 400).

    Args:
        service: Short name of the service.
        message: Human-readable error description.
        status_code: HTTP status code, if available.
    """

    def __init__(self, service: str, message: str, status_code: int | None = None) -> None:
        self.status_code = status_code
        detail = f" (HTTP {status_code})" if status_code is not None else ""
        super().__init__(service, f"{message}{detail}")


class CommentError(ServiceError):
    """Posting the supplementary comment failed.

    Always logged and swallowed by the orchestrator; never fails a job.
    """


# ---------------------------------------------------------------------------
# Orchestrator layer
# ---------------------------------------------------------------------------


class StageError(PromoWorkerError):
    """A job failure tagged with the stage that was being attempted.

    The orchestrator wraps whatever an external call raised into this value
    and only renders it to text (:meth:`display_message`) when the terminal
    outcome is written to the store.

    Args:
        stage: The stage active when the unrecoverable error occurred.
        cause: The underlying exception.
    """

    def __init__(self, stage: JobStage, cause: BaseException) -> None:
        self.stage = stage
        self.cause = cause
        super().__init__(f"{stage}: {type(cause).__name__}")

    def display_message(self) -> str:
        """Render ``"<stage>: <cause message>"`` for operators.

        Configuration errors read ``"<stage>: configuration: <message>"`` so
        they can be told apart from upstream failures in the queue.
        """
        detail = str(self.cause) or type(self.cause).__name__
        if isinstance(self.cause, ConfigError):
            detail = f"configuration: {detail}"
        return f"{self.stage}: {detail}"
