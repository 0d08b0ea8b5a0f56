"""Orchestrator entry-points: assemble all components and run the worker.

Component wiring
----------------
:func:`_open_components` enters, in order, on one
:class:`contextlib.AsyncExitStack`:

1. The SQLite connection from :func:`~promoworker.storage.database.open_db`.
2. :class:`~promoworker.acquisition.youtube.YtDlpAcquirer`.
3. :class:`~promoworker.publishers.facebook.FacebookPublisher` (opens its
   ``httpx.AsyncClient`` lazily).

and builds the :class:`~promoworker.storage.repository.JobRepository` and
:class:`~promoworker.orchestrator.processor.JobProcessor` on top.  Teardown
runs in reverse order on exit, including on exceptions.

Missing Facebook credentials are *not* a startup error: the process keeps
polling and each job fails in ``preparing`` with the configuration error,
which is what an operator sees in the queue.

Typical usage::

    import asyncio
    from promoworker.orchestrator.runner import run_continuous

    asyncio.run(run_continuous())
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import AsyncExitStack, asynccontextmanager
from dataclasses import dataclass

from promoworker.acquisition.youtube import YtDlpAcquirer
from promoworker.core.models import JobOutcome
from promoworker.core.settings import Settings
from promoworker.orchestrator.poller import poll_once, run_poller
from promoworker.orchestrator.processor import JobProcessor
from promoworker.publishers.facebook import FacebookPublisher
from promoworker.storage.database import open_db
from promoworker.storage.repository import JobRepository

__all__ = ["Components", "run_continuous", "run_once"]

logger = logging.getLogger(__name__)


@dataclass
class Components:
    """Live collaborators for one worker process."""

    repo: JobRepository
    processor: JobProcessor


@asynccontextmanager
async def _open_components(settings: Settings) -> AsyncIterator[Components]:
    async with AsyncExitStack() as stack:
        conn = await open_db(settings.database_path_resolved)
        stack.push_async_callback(conn.close)

        acquirer = await stack.enter_async_context(YtDlpAcquirer(settings))
        publisher = await stack.enter_async_context(FacebookPublisher(settings))

        if not settings.facebook_configured:
            logger.warning(
                "FACEBOOK_PAGE_ID / FACEBOOK_ACCESS_TOKEN not set; "
                "jobs will fail in the preparing stage."
            )

        repo = JobRepository(conn)
        processor = JobProcessor.from_settings(settings, repo, acquirer, publisher)
        yield Components(repo=repo, processor=processor)
        logger.debug("Tearing down worker components.")


async def run_once(settings: Settings | None = None) -> JobOutcome | None:
    """Process at most one pending job and return its outcome."""
    if settings is None:
        settings = Settings()

    async with _open_components(settings) as components:
        outcome = await poll_once(components.repo, components.processor)

    if outcome is None:
        logger.info("No pending jobs.")
    return outcome


async def run_continuous(
    settings: Settings | None = None,
    stop_event: asyncio.Event | None = None,
) -> None:
    """Poll the queue until ``SIGTERM`` (or *stop_event*) stops the loop."""
    if settings is None:
        settings = Settings()

    async with _open_components(settings) as components:
        await run_poller(components.repo, components.processor, settings, stop_event)
