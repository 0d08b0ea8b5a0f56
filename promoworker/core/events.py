"""Structured log event name constants for the job pipeline.

Every key transition emits a log record with an ``event`` field passed via
``extra={"event": events.X}``.  In ``LOG_FORMAT=json`` mode the value shows up
under ``extra.event``; in text mode the message is self-describing.

Usage example::

    import logging
    from promoworker.core import events

    logger = logging.getLogger(__name__)

    logger.info("Job claimed", extra={"event": events.JOB_CLAIMED})
"""

from __future__ import annotations

__all__ = [
    # Poller
    "POLLER_START",
    "POLLER_STOP",
    "POLL_IDLE",
    "POLL_ERROR",
    # Job lifecycle
    "JOB_CLAIMED",
    "JOB_STAGE",
    "JOB_RETRY",
    "JOB_COMPLETED",
    "JOB_FAILED",
    "JOB_TERMINAL_WRITE_ERROR",
    # Side effects
    "COMMENT_POSTED",
    "COMMENT_FAILED",
    "CLEANUP_FAILED",
]

# ---------------------------------------------------------------------------
# Poller
# ---------------------------------------------------------------------------

#: The dispatch loop started.
POLLER_START: str = "POLLER_START"

#: The dispatch loop exited after a stop request.
POLLER_STOP: str = "POLLER_STOP"

#: A tick found no pending job.
POLL_IDLE: str = "POLL_IDLE"

#: The claim query itself raised; the loop waits and tries again.
POLL_ERROR: str = "POLL_ERROR"

# ---------------------------------------------------------------------------
# Job lifecycle
# ---------------------------------------------------------------------------

#: A pending job was claimed (``pending → preparing``).
JOB_CLAIMED: str = "JOB_CLAIMED"

#: The orchestrator wrote a new stage before attempting it.
JOB_STAGE: str = "JOB_STAGE"

#: A retryable error occurred; the call is retried after a back-off sleep.
JOB_RETRY: str = "JOB_RETRY"

#: Success terminal record written.
JOB_COMPLETED: str = "JOB_COMPLETED"

#: Failure terminal record written.
JOB_FAILED: str = "JOB_FAILED"

#: The terminal write itself raised; the job keeps its last stage.
JOB_TERMINAL_WRITE_ERROR: str = "JOB_TERMINAL_WRITE_ERROR"

# ---------------------------------------------------------------------------
# Side effects
# ---------------------------------------------------------------------------

#: The link comment was attached to the published video.
COMMENT_POSTED: str = "COMMENT_POSTED"

#: The link comment could not be posted; the job still completes.
COMMENT_FAILED: str = "COMMENT_FAILED"

#: Deleting local scratch content raised; logged only.
CLEANUP_FAILED: str = "CLEANUP_FAILED"
