"""Post composition: description assembly and link extraction.

Facebook does not render hyperlinks inside video descriptions, so every URL
in the composed description is swapped for a numbered ``[link N]`` marker
and the real URLs are posted as a follow-up comment::

    >>> extract_links("See https://x.co/a and https://x.co/b")
    ('See [link 1] and [link 2]', ('https://x.co/a', 'https://x.co/b'))
    >>> format_link_comment(("https://x.co/a", "https://x.co/b"))
    '1. https://x.co/a\\n2. https://x.co/b'

All functions here are pure.
"""

from __future__ import annotations

import re
from typing import Final

from promoworker.core.models import Job, PostContent, VideoMetadata

__all__ = [
    "attribution_suffix",
    "compose_description",
    "compose_post",
    "extract_links",
    "format_link_comment",
]

#: http(s) URLs and bare ``www.`` hosts, up to the next whitespace or bracket.
_URL_RE: Final[re.Pattern[str]] = re.compile(r"(?:https?://|www\.)[^\s<>\[\]()\"']+", re.IGNORECASE)

#: Sentence punctuation that ends a URL match but rarely belongs to the URL.
_TRAILING_PUNCTUATION: Final[str] = ".,;:!?"


def attribution_suffix(label: str, handle: str) -> str:
    """Return ``"[ <label> by @<handle> ]"``, or ``""`` without a handle."""
    handle = handle.strip().lstrip("@")
    if not handle:
        return ""
    return f"[ {label} by @{handle} ]"


def compose_description(promotional_text: str, video_description: str, suffix: str) -> str:
    """Join the non-empty parts with blank lines."""
    parts = [p.strip() for p in (promotional_text, video_description, suffix)]
    return "\n\n".join(p for p in parts if p)


def extract_links(text: str) -> tuple[str, tuple[str, ...]]:
    """Replace every URL in *text* with ``[link N]`` and return the URLs.

    Numbering starts at 1 and follows order of appearance.  A URL that
    appears twice gets two markers.
    """
    links: list[str] = []

    def _replace(match: re.Match[str]) -> str:
        url = match.group(0)
        trimmed = url.rstrip(_TRAILING_PUNCTUATION)
        tail = url[len(trimmed):]
        links.append(trimmed)
        return f"[link {len(links)}]{tail}"

    replaced = _URL_RE.sub(_replace, text)
    return replaced, tuple(links)


def format_link_comment(links: tuple[str, ...] | list[str]) -> str:
    """Render *links* as a numbered list, one per line."""
    return "\n".join(f"{i}. {url}" for i, url in enumerate(links, start=1))


def compose_post(job: Job, metadata: VideoMetadata, attribution_label: str) -> PostContent:
    """Build the publication payload for *job*.

    The title is the video title.  The description is the promotional text,
    the video description and the attribution suffix, with links extracted.
    """
    description = compose_description(
        job.promotional_text,
        metadata.description,
        attribution_suffix(attribution_label, job.submitter_handle),
    )
    description, links = extract_links(description)
    return PostContent(title=metadata.title, description=description, links=links)
