"""Core domain models, settings, logging configuration, and shared utilities."""

from promoworker.core.backoff import BackoffPolicy
from promoworker.core.exceptions import (
    AuthorizationError,
    CommentError,
    ConfigError,
    ContentNotFoundError,
    EmptyContentError,
    InvalidInputError,
    InvalidReferenceError,
    InvalidTransitionError,
    JobNotFoundError,
    PayloadError,
    PayloadTooLargeError,
    PromoWorkerError,
    RateLimitedError,
    ResourceTooLargeError,
    ServiceError,
    ServiceRejectedError,
    StageError,
    StorageError,
    TransientError,
)
from promoworker.core.logging_config import JsonFormatter, configure_logging
from promoworker.core.models import (
    CompletedOutcome,
    FailedOutcome,
    Job,
    JobOutcome,
    JobStage,
    LocalResource,
    PostContent,
    VideoMetadata,
)
from promoworker.core.settings import Settings

__all__ = [
    # Logging
    "configure_logging",
    "JsonFormatter",
    # Domain models
    "Job",
    "JobStage",
    "JobOutcome",
    "CompletedOutcome",
    "FailedOutcome",
    "VideoMetadata",
    "LocalResource",
    "PostContent",
    # Settings
    "Settings",
    "BackoffPolicy",
    # Exceptions: base
    "PromoWorkerError",
    # Exceptions: config
    "ConfigError",
    # Exceptions: storage
    "StorageError",
    "JobNotFoundError",
    "InvalidTransitionError",
    # Exceptions: external services
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
    # Exceptions: orchestrator
    "StageError",
]
