"""Dispatch loop: claim one pending job at a time and process it.

:func:`run_poller` repeats :func:`poll_once` until asked to stop:

* after a processed job the next tick starts immediately;
* after an empty tick it sleeps ``poll_interval_s``;
* after a tick whose claim query raised it logs and sleeps
  ``poll_error_delay_s``.

A heartbeat file is rewritten after every tick so a container health check
can tell a live-but-idle worker from a hung one.

**Graceful shutdown:** ``SIGTERM`` sets the stop event.  A job that is
already being processed runs to its terminal write and cleanup; only the
sleep between ticks is interrupted.

Typical usage::

    stop = asyncio.Event()
    await run_poller(repo, processor, settings, stop)
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import os
import signal
import time

from promoworker.core import events
from promoworker.core.models import JobOutcome
from promoworker.core.settings import Settings
from promoworker.orchestrator.processor import JobProcessor
from promoworker.storage.base import JobStore

__all__ = [
    "HEARTBEAT_PATH",
    "poll_once",
    "run_poller",
]

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Health-check heartbeat
# ---------------------------------------------------------------------------

#: Path to the heartbeat file written after each tick.  Override via the
#: ``PROMOWORKER_HEARTBEAT_PATH`` environment variable.
HEARTBEAT_PATH: str = os.environ.get("PROMOWORKER_HEARTBEAT_PATH", "/tmp/promoworker_heartbeat")


def _write_heartbeat(path: str = HEARTBEAT_PATH) -> None:
    """Write the current epoch timestamp to *path*.  Errors are logged only."""
    try:
        with open(path, "w", encoding="utf-8") as fh:
            fh.write(str(time.time()))
    except OSError:
        logger.warning("Failed to write heartbeat file '%s'.", path, exc_info=True)


# ---------------------------------------------------------------------------
# Single tick
# ---------------------------------------------------------------------------


async def poll_once(store: JobStore, processor: JobProcessor) -> JobOutcome | None:
    """Claim at most one pending job and run it to completion.

    Returns:
        The job's outcome, or ``None`` if nothing was pending.

    Raises:
        Exception: Whatever the claim query raised.  Job-level failures
            never propagate.
    """
    job = await store.claim_next_pending()
    if job is None:
        return None
    logger.info("Claimed job %s", job.id, extra={"event": events.JOB_CLAIMED})
    return await processor.process(job)


async def _wait(stop_event: asyncio.Event, seconds: float) -> None:
    """Sleep up to *seconds*, waking early if *stop_event* is set."""
    with contextlib.suppress(TimeoutError):
        await asyncio.wait_for(stop_event.wait(), timeout=seconds)


# ---------------------------------------------------------------------------
# Loop
# ---------------------------------------------------------------------------


async def run_poller(
    store: JobStore,
    processor: JobProcessor,
    settings: Settings,
    stop_event: asyncio.Event | None = None,
    *,
    heartbeat_path: str | None = HEARTBEAT_PATH,
    install_signal_handler: bool = True,
) -> None:
    """Drain the queue until *stop_event* is set.

    Args:
        store: Queue to claim from.
        processor: Runs each claimed job.
        settings: Supplies ``poll_interval_s`` and ``poll_error_delay_s``.
        stop_event: Set to stop the loop after the current tick.  Created
            internally when omitted.
        heartbeat_path: File rewritten after every tick, or ``None`` to skip.
        install_signal_handler: Register a ``SIGTERM`` handler that sets
            *stop_event*.
    """
    if stop_event is None:
        stop_event = asyncio.Event()

    loop = asyncio.get_running_loop()
    handler_installed = False
    if install_signal_handler:

        def _request_stop() -> None:
            if not stop_event.is_set():
                logger.info("Received SIGTERM; finishing current job, then stopping.")
            stop_event.set()

        try:
            loop.add_signal_handler(signal.SIGTERM, _request_stop)
            handler_installed = True
        except (NotImplementedError, RuntimeError):
            logger.debug("SIGTERM handler not supported on this platform.")

    logger.info(
        "Poller started: idle interval %.0f s, error delay %.0f s.",
        settings.poll_interval_s,
        settings.poll_error_delay_s,
        extra={"event": events.POLLER_START},
    )

    try:
        while not stop_event.is_set():
            delay: float
            try:
                outcome = await poll_once(store, processor)
            except Exception:
                logger.exception(
                    "Claiming the next job failed; retrying in %.0f s.",
                    settings.poll_error_delay_s,
                    extra={"event": events.POLL_ERROR},
                )
                delay = settings.poll_error_delay_s
            else:
                if outcome is None:
                    logger.debug("No pending jobs.", extra={"event": events.POLL_IDLE})
                    delay = settings.poll_interval_s
                else:
                    delay = 0.0

            if heartbeat_path:
                _write_heartbeat(heartbeat_path)

            if delay > 0:
                await _wait(stop_event, delay)
            else:
                # Yield so a pending signal callback can run between jobs.
                await asyncio.sleep(0)
    finally:
        if handler_installed:
            with contextlib.suppress(Exception):
                loop.remove_signal_handler(signal.SIGTERM)
        logger.info("Poller stopped.", extra={"event": events.POLLER_STOP})
