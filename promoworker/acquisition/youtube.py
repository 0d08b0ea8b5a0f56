"""YouTube acquisition adapter backed by :mod:`yt_dlp`.

:class:`YtDlpAcquirer` resolves metadata and downloads a single video file
into a caller-supplied scratch directory.

yt-dlp is a synchronous library, so every call runs in a worker thread via
:func:`asyncio.to_thread`; the event loop stays free for the store and the
publisher.  A thread cannot be cancelled, so when the awaiting coroutine is
cancelled (usually by a per-call timeout) the adapter sets a stop flag that a
yt-dlp progress hook checks, and waits for the thread to return before the
cancellation propagates.  No download outlives the call that started it.

yt-dlp reports every failure as a
:class:`yt_dlp.utils.DownloadError` whose message carries the upstream
reason, and :func:`_map_download_error` translates those messages into the
worker's exception taxonomy:

================================================  ==========================
yt-dlp message contains                           raised as
================================================  ==========================
``unavailable`` / ``private`` / ``removed`` /     ContentNotFoundError
``does not exist``
``429`` / ``too many requests``                   RateLimitedError
``sign in`` / ``confirm your age`` / ``members``  AuthorizationError
anything else                                     TransientError
================================================  ==========================

Accepted references:

* ``https://www.youtube.com/watch?v=<id>`` (any extra query parameters)
* ``https://youtube.com/shorts/<id>`` and ``/embed/<id>`` / ``/live/<id>``
* ``https://youtu.be/<id>``
* a bare 11-character video id
"""

from __future__ import annotations

import asyncio
import logging
import re
import threading
from collections.abc import Callable
from pathlib import Path
from typing import Any, ClassVar, Final

import yt_dlp
from yt_dlp.utils import DownloadError

from promoworker.acquisition.base import BaseAcquirer
from promoworker.core.exceptions import (
    AuthorizationError,
    ConfigError,
    ContentNotFoundError,
    EmptyContentError,
    InvalidReferenceError,
    RateLimitedError,
    ResourceTooLargeError,
    ServiceError,
    TransientError,
)
from promoworker.core.models import LocalResource, VideoMetadata
from promoworker.core.settings import Settings

__all__ = ["DownloadAborted", "YtDlpAcquirer", "parse_video_id"]

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Reference parsing
# ---------------------------------------------------------------------------

_SERVICE: Final[str] = "youtube"

_ID_PATTERN: Final[str] = r"[A-Za-z0-9_-]{11}"

_BARE_ID_RE: Final[re.Pattern[str]] = re.compile(rf"^{_ID_PATTERN}$")

_URL_RES: Final[tuple[re.Pattern[str], ...]] = (
    re.compile(
        rf"^(?:https?://)?(?:www\.|m\.|music\.)?youtube\.com/watch\?(?:.*&)?v=({_ID_PATTERN})(?:[&#].*)?$"
    ),
    re.compile(
        rf"^(?:https?://)?(?:www\.|m\.)?youtube\.com/(?:shorts|embed|live|v)/({_ID_PATTERN})(?:[/?#].*)?$"
    ),
    re.compile(rf"^(?:https?://)?youtu\.be/({_ID_PATTERN})(?:[/?#].*)?$"),
)

_NOT_FOUND_MARKERS: Final[tuple[str, ...]] = (
    "video unavailable",
    "is unavailable",
    "private video",
    "has been removed",
    "does not exist",
    "no longer available",
)
_RATE_LIMIT_MARKERS: Final[tuple[str, ...]] = ("http error 429", "too many requests")
_AUTH_MARKERS: Final[tuple[str, ...]] = (
    "sign in",
    "confirm your age",
    "members-only",
    "join this channel",
)


def parse_video_id(reference: str) -> str:
    """Extract the 11-character YouTube video id from *reference*.

    Raises:
        InvalidReferenceError: If *reference* is neither a recognised YouTube
            URL nor a bare id.
    """
    candidate = reference.strip()
    if _BARE_ID_RE.match(candidate):
        return candidate
    for pattern in _URL_RES:
        match = pattern.match(candidate)
        if match:
            return match.group(1)
    raise InvalidReferenceError(_SERVICE, f"Unrecognised video reference: {reference!r}")


def _watch_url(video_id: str) -> str:
    return f"https://www.youtube.com/watch?v={video_id}"


def _map_download_error(exc: DownloadError) -> ServiceError:
    """Translate a yt-dlp :class:`DownloadError` into the worker taxonomy."""
    message = str(exc)
    lowered = message.lower()
    if any(marker in lowered for marker in _NOT_FOUND_MARKERS):
        return ContentNotFoundError(_SERVICE, message)
    if any(marker in lowered for marker in _RATE_LIMIT_MARKERS):
        return RateLimitedError(_SERVICE)
    if any(marker in lowered for marker in _AUTH_MARKERS):
        return AuthorizationError(_SERVICE, message)
    return TransientError(_SERVICE, message)


# ---------------------------------------------------------------------------
# Cancellation
# ---------------------------------------------------------------------------

#: Socket timeout handed to yt-dlp; bounds how long a stalled read can keep
#: a cancelled thread alive between progress callbacks.
_SOCKET_TIMEOUT_S: Final[float] = 20.0


class DownloadAborted(Exception):
    """Raised inside the yt-dlp thread once its caller has given up."""


def _abort_hook(stop: threading.Event) -> Callable[[dict[str, Any]], None]:
    """Build a yt-dlp progress hook that aborts the download once *stop* is set."""

    def _hook(progress: dict[str, Any]) -> None:
        if stop.is_set():
            raise DownloadAborted(f"download of {progress.get('filename', '?')} cancelled")

    return _hook


# ---------------------------------------------------------------------------
# Adapter
# ---------------------------------------------------------------------------


class YtDlpAcquirer(BaseAcquirer):
    """Fetch YouTube metadata and video files with yt-dlp.

    Args:
        settings: Application settings.  Reads ``ytdlp_format``,
            ``ytdlp_cookies_file`` and ``max_video_bytes``.  A fresh
            :class:`~promoworker.core.settings.Settings` is loaded if omitted.
    """

    service: ClassVar[str] = _SERVICE

    def __init__(self, settings: Settings | None = None) -> None:
        self._settings = settings or Settings()
        self._format = self._settings.ytdlp_format
        self._cookies_file = self._settings.ytdlp_cookies_file
        self._max_bytes = self._settings.max_video_bytes

    async def ensure_ready(self) -> None:
        """Check that a configured cookies file actually exists.

        Raises:
            ConfigError: If ``YTDLP_COOKIES_FILE`` points at a missing file.
        """
        if self._cookies_file and not Path(self._cookies_file).is_file():
            raise ConfigError(
                f"YTDLP_COOKIES_FILE is set but not readable: {self._cookies_file!r}"
            )

    # ------------------------------------------------------------------
    # Core contract
    # ------------------------------------------------------------------

    async def resolve_metadata(self, reference: str) -> VideoMetadata:
        """Resolve title and description without downloading the file."""
        video_id = parse_video_id(reference)
        opts = self._base_options()
        opts["skip_download"] = True

        info = await self._run_extract(_watch_url(video_id), opts, download=False)

        metadata = VideoMetadata(
            video_id=str(info.get("id") or video_id),
            title=str(info.get("title") or ""),
            description=info.get("description") or "",
            duration_s=info.get("duration"),
        )
        logger.debug(
            "Resolved metadata for %s (title=%r duration=%s)",
            video_id,
            metadata.title,
            metadata.duration_s,
        )
        return metadata

    async def materialize(self, reference: str, workdir: Path) -> LocalResource:
        """Download the video for *reference* into *workdir*."""
        video_id = parse_video_id(reference)
        workdir.mkdir(parents=True, exist_ok=True)

        opts = self._base_options()
        opts.update(
            {
                "format": self._format,
                "outtmpl": str(workdir / "%(id)s.%(ext)s"),
                "max_filesize": self._max_bytes,
                "overwrites": True,
                "continuedl": False,
            }
        )

        info = await self._run_extract(_watch_url(video_id), opts, download=True)
        path = self._locate_output(info, workdir, video_id)

        if path is None:
            # yt-dlp skips (without raising) when max_filesize is exceeded.
            reported = info.get("filesize") or info.get("filesize_approx") or 0
            if reported and reported > self._max_bytes:
                raise ResourceTooLargeError(
                    _SERVICE,
                    f"Video {video_id} is {reported} bytes (limit {self._max_bytes})",
                )
            raise EmptyContentError(_SERVICE, f"No file was produced for video {video_id}")

        size = path.stat().st_size
        if size <= 0:
            path.unlink(missing_ok=True)
            raise EmptyContentError(_SERVICE, f"Downloaded file for {video_id} is empty")
        if size > self._max_bytes:
            path.unlink(missing_ok=True)
            raise ResourceTooLargeError(
                _SERVICE,
                f"Video {video_id} is {size} bytes (limit {self._max_bytes})",
            )

        logger.info("Downloaded %s to %s (%d bytes)", video_id, path, size)
        return LocalResource(path=path, size_bytes=size)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _base_options(self) -> dict[str, Any]:
        opts: dict[str, Any] = {
            "quiet": True,
            "no_warnings": True,
            "noprogress": True,
            "noplaylist": True,
            "socket_timeout": _SOCKET_TIMEOUT_S,
            "logger": logger,
        }
        if self._cookies_file:
            opts["cookiefile"] = self._cookies_file
        return opts

    async def _run_extract(
        self, url: str, opts: dict[str, Any], *, download: bool
    ) -> dict[str, Any]:
        """Run :meth:`_extract` in a thread that never outlives this call.

        On cancellation the progress hook is told to abort and the thread is
        awaited to completion before :class:`asyncio.CancelledError` is
        re-raised, so a retry or a scratch cleanup never races a live
        download.
        """
        stop = threading.Event()
        opts["progress_hooks"] = [_abort_hook(stop)]
        worker = asyncio.ensure_future(asyncio.to_thread(self._extract, url, opts, download))
        try:
            return await asyncio.shield(worker)
        except asyncio.CancelledError:
            stop.set()
            await asyncio.wait({worker})
            if not worker.cancelled() and worker.exception() is not None:
                logger.debug("yt-dlp call for %s stopped: %s", url, worker.exception())
            raise

    @staticmethod
    def _extract(url: str, opts: dict[str, Any], download: bool) -> dict[str, Any]:
        """Run ``extract_info`` synchronously.  Called from a worker thread."""
        try:
            with yt_dlp.YoutubeDL(opts) as ydl:
                info = ydl.extract_info(url, download=download)
        except DownloadError as exc:
            raise _map_download_error(exc) from exc
        if not info:
            raise TransientError(_SERVICE, f"yt-dlp returned no info for {url}")
        return dict(info)

    @staticmethod
    def _locate_output(info: dict[str, Any], workdir: Path, video_id: str) -> Path | None:
        """Return the downloaded file path, or ``None`` if nothing was written."""
        for item in info.get("requested_downloads") or []:
            filepath = item.get("filepath")
            if filepath and Path(filepath).is_file():
                return Path(filepath)
        candidates = sorted(
            p for p in workdir.glob(f"{video_id}.*") if p.is_file() and p.suffix != ".part"
        )
        return candidates[0] if candidates else None
