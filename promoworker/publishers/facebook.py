"""Facebook Page video publisher (Graph API).

Provides :class:`FacebookPublisher`, an async wrapper around two Graph API
endpoints:

* ``POST https://graph-video.facebook.com/{version}/{page_id}/videos`` for
  a multipart upload of the local file (``source``) with ``title`` and
  ``description``.  The JSON response carries the new video ``id``.
* ``POST https://graph.facebook.com/{version}/{video_id}/comments`` for the
  follow-up link comment (``message``).

Each call makes exactly one HTTP request; the orchestrator owns retries.
Failures are mapped onto the worker taxonomy from the HTTP status and, when
present, the Graph ``error.code``:

=================================  ========================
Condition                          Raised as
=================================  ========================
transport error / timeout          TransientError
HTTP 5xx                           TransientError
HTTP 429 or code 4/17/32/613       RateLimitedError
HTTP 401/403 or code 10/190/200    AuthorizationError
HTTP 413                           PayloadTooLargeError
any other 4xx                      ServiceRejectedError
=================================  ========================

Typical usage::

    async with FacebookPublisher(settings) as publisher:
        video_id = await publisher.publish(resource, title, description)
        await publisher.comment(video_id, "1. https://x.co/a")
"""

from __future__ import annotations

import logging
from typing import Any, ClassVar, Final

import httpx

from promoworker.core.exceptions import (
    AuthorizationError,
    CommentError,
    ConfigError,
    PayloadTooLargeError,
    RateLimitedError,
    ServiceError,
    ServiceRejectedError,
    TransientError,
)
from promoworker.core.models import LocalResource
from promoworker.core.settings import Settings
from promoworker.publishers.base import BasePublisher

__all__ = ["FacebookPublisher"]

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_SERVICE: Final[str] = "facebook"

_GRAPH_BASE_URL: Final[str] = "https://graph.facebook.com"
_GRAPH_VIDEO_BASE_URL: Final[str] = "https://graph-video.facebook.com"

#: Graph error codes that mean "slow down".
_RATE_LIMIT_CODES: Final[frozenset[int]] = frozenset({4, 17, 32, 613})

#: Graph error codes that mean the token or its permissions are unusable.
_AUTH_CODES: Final[frozenset[int]] = frozenset({10, 190, 200})

_DEFAULT_CONNECT_TIMEOUT: Final[float] = 10.0
_COMMENT_TIMEOUT: Final[float] = 30.0


class FacebookPublisher(BasePublisher):
    """Publish videos to a Facebook Page.

    Args:
        settings: Application settings.  Reads ``facebook_page_id``,
            ``facebook_access_token``, ``facebook_graph_version`` and
            ``facebook_upload_timeout_s``.
        transport: Optional :class:`httpx.AsyncBaseTransport`, used by tests
            to plug in :class:`httpx.MockTransport`.
    """

    service: ClassVar[str] = _SERVICE

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._settings = settings or Settings()
        self._page_id = self._settings.facebook_page_id
        self._token = self._settings.facebook_access_token
        self._version = self._settings.facebook_graph_version
        self._timeout = httpx.Timeout(
            connect=_DEFAULT_CONNECT_TIMEOUT,
            read=self._settings.facebook_upload_timeout_s,
            write=self._settings.facebook_upload_timeout_s,
            pool=5.0,
        )
        self._transport = transport
        self._http: httpx.AsyncClient | None = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def ensure_ready(self) -> None:
        """Raise :class:`ConfigError` unless the Page id and token are set."""
        missing = [
            name
            for name, value in (
                ("FACEBOOK_PAGE_ID", self._page_id),
                ("FACEBOOK_ACCESS_TOKEN", self._token),
            )
            if not value
        ]
        if missing:
            raise ConfigError(f"Facebook publishing requires {', '.join(missing)}.")

    async def close(self) -> None:
        """Close the underlying HTTP client.  Safe to call multiple times."""
        if self._http is not None and not self._http.is_closed:
            await self._http.aclose()
            logger.debug("FacebookPublisher HTTP session closed.")
        self._http = None

    # ------------------------------------------------------------------
    # Core contract
    # ------------------------------------------------------------------

    async def publish(self, resource: LocalResource, title: str, description: str) -> str:
        """Upload *resource* to the Page and return the new video id."""
        client = await self._ensure_client()
        url = f"{_GRAPH_VIDEO_BASE_URL}/{self._version}/{self._page_id}/videos"
        data = {
            "title": title,
            "description": description,
            "published": "true",
            "access_token": self._token,
        }

        logger.debug(
            "Facebook POST %s (file=%s, bytes=%d, title_chars=%d)",
            url,
            resource.path.name,
            resource.size_bytes,
            len(title),
        )

        try:
            with resource.path.open("rb") as source:
                response = await client.post(
                    url,
                    data=data,
                    files={"source": (resource.path.name, source, resource.content_type)},
                )
        except httpx.TransportError as exc:
            raise TransientError(_SERVICE, f"Upload transport error: {exc!r}") from exc
        except OSError as exc:
            raise TransientError(_SERVICE, f"Could not read {resource.path}: {exc}") from exc

        if not response.is_success:
            raise _map_error_response(response)

        payload = _json_body(response)
        video_id = payload.get("id") or payload.get("video_id")
        if not video_id:
            raise ServiceRejectedError(
                _SERVICE,
                f"Upload response has no id: {response.text[:200]}",
                status_code=response.status_code,
            )
        logger.info("Published video %s to page %s", video_id, self._page_id)
        return str(video_id)

    async def comment(self, published_id: str, text: str) -> None:
        """Post *text* as a comment on *published_id*.

        Raises:
            CommentError: On any transport or API failure.
        """
        client = await self._ensure_client()
        url = f"{_GRAPH_BASE_URL}/{self._version}/{published_id}/comments"
        try:
            response = await client.post(
                url,
                data={"message": text, "access_token": self._token},
                timeout=_COMMENT_TIMEOUT,
            )
        except httpx.TransportError as exc:
            raise CommentError(_SERVICE, f"Comment transport error: {exc!r}") from exc

        if not response.is_success:
            mapped = _map_error_response(response)
            raise CommentError(_SERVICE, f"Comment rejected: {mapped.detail}")
        logger.debug("Comment posted on %s (%d chars)", published_id, len(text))

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _ensure_client(self) -> httpx.AsyncClient:
        """Return the open HTTP client, creating it lazily if necessary."""
        if self._http is None or self._http.is_closed:
            kwargs: dict[str, Any] = {
                "timeout": self._timeout,
                "headers": {"User-Agent": "promoworker/0.1"},
            }
            if self._transport is not None:
                kwargs["transport"] = self._transport
            self._http = httpx.AsyncClient(**kwargs)
            logger.debug("FacebookPublisher HTTP session opened.")
        return self._http


# ---------------------------------------------------------------------------
# Response parsing helpers
# ---------------------------------------------------------------------------


def _json_body(response: httpx.Response) -> dict[str, Any]:
    try:
        body = response.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


def _graph_error(response: httpx.Response) -> tuple[int | None, str]:
    """Return ``(error.code, error.message)`` from a Graph error body."""
    err = _json_body(response).get("error")
    if not isinstance(err, dict):
        return None, response.text[:200] or f"HTTP {response.status_code}"
    code = err.get("code")
    try:
        code = int(code) if code is not None else None
    except (TypeError, ValueError):
        code = None
    message = str(err.get("message") or f"HTTP {response.status_code}")
    return code, message


def _parse_retry_after(response: httpx.Response) -> float | None:
    header = response.headers.get("retry-after", "")
    if not header:
        return None
    try:
        return max(float(header), 0.0)
    except ValueError:
        return None


def _map_error_response(response: httpx.Response) -> ServiceError:
    """Translate a non-2xx Graph response into a :class:`ServiceError`."""
    status = response.status_code
    code, message = _graph_error(response)

    if status == 429 or code in _RATE_LIMIT_CODES:
        retry_after = _parse_retry_after(response)
        logger.warning(
            "Facebook rate limit (HTTP %d, code=%s) retry_after=%s", status, code, retry_after
        )
        return RateLimitedError(_SERVICE, retry_after=retry_after)
    if status >= 500:
        return TransientError(_SERVICE, f"HTTP {status}: {message}")
    if status in (401, 403) or code in _AUTH_CODES:
        return AuthorizationError(_SERVICE, f"HTTP {status}: {message}")
    if status == 413:
        return PayloadTooLargeError(_SERVICE, f"HTTP 413: {message}")
    return ServiceRejectedError(_SERVICE, message, status_code=status)
