"""Publication interface contract for destination platforms.

Subclasses of :class:`BasePublisher` perform exactly **one** network attempt
per call.  Retrying is the orchestrator's job, so adapters only have to
classify failures:

* :class:`~promoworker.core.exceptions.TransientError` /
  :class:`~promoworker.core.exceptions.RateLimitedError` for failures worth
  another attempt.
* :class:`~promoworker.core.exceptions.AuthorizationError`,
  :class:`~promoworker.core.exceptions.PayloadTooLargeError` and
  :class:`~promoworker.core.exceptions.ServiceRejectedError` for permanent
  rejections.
* :class:`~promoworker.core.exceptions.CommentError` for any failure of the
  supplementary :meth:`BasePublisher.comment` call.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from types import TracebackType
from typing import ClassVar

from promoworker.core.models import LocalResource

__all__ = ["BasePublisher"]

logger = logging.getLogger(__name__)


class BasePublisher(ABC):
    """Abstract base for publication adapters.

    Attributes:
        service: Short service name used in error messages and logs.
    """

    service: ClassVar[str]

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def ensure_ready(self) -> None:  # noqa: B027
        """Verify credentials and destination before the job acquires content.

        Raises:
            :class:`~promoworker.core.exceptions.ConfigError`: If the
                destination or a credential is missing.
        """

    async def close(self) -> None:  # noqa: B027
        """Release any resources held by this publisher.  Default: no-op."""

    async def __aenter__(self) -> BasePublisher:
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
    async def publish(self, resource: LocalResource, title: str, description: str) -> str:
        """Upload *resource* and return the platform-assigned identifier."""

    @abstractmethod
    async def comment(self, published_id: str, text: str) -> None:
        """Attach *text* as a comment on the published item.

        Raises:
            CommentError: On any failure.
        """
