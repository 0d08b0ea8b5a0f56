"""Acquisition interface contract for content sources.

Every source the worker can republish from must subclass
:class:`BaseAcquirer` and implement :meth:`resolve_metadata` and
:meth:`materialize`.

Design decisions
----------------
* **Abstract base class (ABC)** rather than a ``Protocol``: the orchestrator
  relies on the shared lifecycle helpers (``close``, ``__aenter__`` /
  ``__aexit__``) and on the default :meth:`ensure_ready`.
* **Errors, not sentinels**: every failure surfaces as a
  :class:`~promoworker.core.exceptions.ServiceError` subclass so the
  orchestrator can decide whether to retry with a single ``isinstance``
  check.
* **Caller-owned scratch space**: :meth:`materialize` writes only inside the
  directory it is given and hands the resulting
  :class:`~promoworker.core.models.LocalResource` to the caller, who
  releases it.

Typical usage::

    async with YtDlpAcquirer(settings) as acquirer:
        meta = await acquirer.resolve_metadata(job.content_reference)
        resource = await acquirer.materialize(job.content_reference, workdir)
        try:
            ...
        finally:
            resource.release()
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from pathlib import Path
from types import TracebackType
from typing import ClassVar

from promoworker.core.models import LocalResource, VideoMetadata

__all__ = ["BaseAcquirer"]

logger = logging.getLogger(__name__)


class BaseAcquirer(ABC):
    """Abstract base for all content acquisition adapters.

    Attributes:
        service: Short service name used in error messages and logs.
    """

    service: ClassVar[str]

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def ensure_ready(self) -> None:  # noqa: B027
        """Verify prerequisites before a job starts downloading.

        The default implementation accepts everything.

        Raises:
            :class:`~promoworker.core.exceptions.ConfigError`: If a required
                setting or credential is missing.
        """

    async def close(self) -> None:  # noqa: B027
        """Release any resources held by this adapter.  Default: no-op."""

    async def __aenter__(self) -> BaseAcquirer:
        """Enter the async context manager.  Returns ``self``."""
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        """Exit the async context manager by delegating to :meth:`close`."""
        await self.close()

    # ------------------------------------------------------------------
    # Core contract
    # ------------------------------------------------------------------

    @abstractmethod
    async def resolve_metadata(self, reference: str) -> VideoMetadata:
        """Look up title and description for *reference*.

        Raises:
            InvalidReferenceError: *reference* cannot be parsed.
            ContentNotFoundError: The content does not exist upstream.
            AuthorizationError: The source requires credentials we lack.
            RateLimitedError: The source is throttling us.
            TransientError: Network failure or timeout.
        """

    @abstractmethod
    async def materialize(self, reference: str, workdir: Path) -> LocalResource:
        """Download the content for *reference* into *workdir*.

        Raises:
            ResourceTooLargeError: The content exceeds the size limit.
            EmptyContentError: The download produced zero bytes.
            TransientError: Network failure or timeout.
        """
