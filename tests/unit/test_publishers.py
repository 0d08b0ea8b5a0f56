"""Unit tests for post composition and the Facebook Graph publisher.

HTTP is served by :class:`httpx.MockTransport`; no request leaves the
process.
"""

from __future__ import annotations

from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import httpx
import pytest

from promoworker.core.exceptions import (
    AuthorizationError,
    CommentError,
    ConfigError,
    PayloadTooLargeError,
    RateLimitedError,
    ServiceRejectedError,
    TransientError,
)
from promoworker.core.models import Job, LocalResource, VideoMetadata
from promoworker.core.settings import Settings
from promoworker.publishers.compose import (
    attribution_suffix,
    compose_description,
    compose_post,
    extract_links,
    format_link_comment,
)
from promoworker.publishers.facebook import FacebookPublisher

_NOW = datetime(2026, 3, 1, 12, 0, 0, tzinfo=UTC)


# ===========================================================================
# Composition
# ===========================================================================


class TestAttribution:
    def test_suffix(self) -> None:
        assert attribution_suffix("YT Promotion", "alice") == "[ YT Promotion by @alice ]"

    def test_leading_at_not_doubled(self) -> None:
        assert attribution_suffix("YT Promotion", "@alice") == "[ YT Promotion by @alice ]"

    @pytest.mark.parametrize("handle", ["", "   ", "@"])
    def test_no_handle_no_suffix(self, handle: str) -> None:
        assert attribution_suffix("YT Promotion", handle) == ""


class TestComposeDescription:
    def test_joins_with_blank_lines(self) -> None:
        assert compose_description("Promo", "Body", "[ x ]") == "Promo\n\nBody\n\n[ x ]"

    def test_empty_parts_skipped(self) -> None:
        assert compose_description("", "  Body  ", "") == "Body"

    def test_all_empty(self) -> None:
        assert compose_description("", "", "") == ""


class TestExtractLinks:
    def test_two_links_numbered_in_order(self) -> None:
        text, links = extract_links("Check this out: https://x.co/a and https://x.co/b")
        assert text == "Check this out: [link 1] and [link 2]"
        assert links == ("https://x.co/a", "https://x.co/b")

    def test_no_links(self) -> None:
        assert extract_links("plain text") == ("plain text", ())

    def test_trailing_punctuation_stays_in_text(self) -> None:
        text, links = extract_links("Go to https://x.co/a. Or www.example.com!")
        assert text == "Go to [link 1]. Or [link 2]!"
        assert links == ("https://x.co/a", "www.example.com")

    def test_repeated_url_gets_two_markers(self) -> None:
        text, links = extract_links("https://x.co/a https://x.co/a")
        assert text == "[link 1] [link 2]"
        assert links == ("https://x.co/a", "https://x.co/a")

    def test_query_strings_kept(self) -> None:
        _, links = extract_links("(see https://x.co/p?a=1&b=2)")
        assert links == ("https://x.co/p?a=1&b=2",)


class TestFormatLinkComment:
    def test_numbered_lines(self) -> None:
        assert format_link_comment(("https://x.co/a", "https://x.co/b")) == (
            "1. https://x.co/a\n2. https://x.co/b"
        )


class TestComposePost:
    def test_links_extracted_across_all_parts(self) -> None:
        job = Job(
            id="j1",
            content_reference="abc",
            promotional_text="Promo https://promo.example/x",
            submitter_handle="bob",
            created_at=_NOW,
        )
        meta = VideoMetadata(video_id="v", title="Title", description="More: https://x.co/m")

        post = compose_post(job, meta, "YT Promotion")

        assert post.title == "Title"
        assert post.description == (
            "Promo [link 1]\n\nMore: [link 2]\n\n[ YT Promotion by @bob ]"
        )
        assert post.links == ("https://promo.example/x", "https://x.co/m")


# ===========================================================================
# FacebookPublisher
# ===========================================================================


def _json(status: int, body: dict[str, Any], **headers: str) -> httpx.Response:
    return httpx.Response(status, json=body, headers=headers)


def _graph_error(status: int, code: int, message: str = "error") -> httpx.Response:
    return _json(status, {"error": {"message": message, "type": "OAuthException", "code": code}})


@pytest.fixture()
def resource(tmp_path: Path) -> LocalResource:
    path = tmp_path / "clip.mp4"
    path.write_bytes(b"\x00\x00\x00\x18ftypmp42-video-bytes")
    return LocalResource(path=path, size_bytes=path.stat().st_size)


@pytest.fixture()
def fb_settings(clean_env: None) -> Settings:
    return Settings(
        facebook_page_id="1234567890",
        facebook_access_token="page-token",
        facebook_graph_version="v19.0",
    )


def _publisher(settings: Settings, handler: Any) -> tuple[FacebookPublisher, list[httpx.Request]]:
    seen: list[httpx.Request] = []

    def _record(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return handler(request)

    return FacebookPublisher(settings, transport=httpx.MockTransport(_record)), seen


class TestFacebookReadiness:
    async def test_configured(self, fb_settings: Settings) -> None:
        await FacebookPublisher(fb_settings).ensure_ready()

    @pytest.mark.usefixtures("clean_env")
    async def test_missing_credentials_named(self) -> None:
        publisher = FacebookPublisher(Settings(facebook_page_id="123"))
        with pytest.raises(ConfigError, match="FACEBOOK_ACCESS_TOKEN"):
            await publisher.ensure_ready()

    async def test_close_is_idempotent(self, fb_settings: Settings) -> None:
        async with FacebookPublisher(fb_settings) as publisher:
            await publisher.close()
        await publisher.close()


class TestFacebookPublish:
    async def test_success_returns_id(
        self, fb_settings: Settings, resource: LocalResource
    ) -> None:
        publisher, seen = _publisher(fb_settings, lambda r: _json(200, {"id": "987654"}))
        async with publisher:
            video_id = await publisher.publish(resource, "My title", "My description")

        assert video_id == "987654"
        request = seen[0]
        assert request.method == "POST"
        assert str(request.url) == "https://graph-video.facebook.com/v19.0/1234567890/videos"
        body = request.content
        assert b'name="title"' in body and b"My title" in body
        assert b'name="description"' in body and b"My description" in body
        assert b'name="access_token"' in body and b"page-token" in body
        assert b'name="source"; filename="clip.mp4"' in body
        assert b"ftypmp42-video-bytes" in body

    async def test_numeric_id_stringified(
        self, fb_settings: Settings, resource: LocalResource
    ) -> None:
        publisher, _ = _publisher(fb_settings, lambda r: _json(200, {"id": 42}))
        async with publisher:
            assert await publisher.publish(resource, "t", "d") == "42"

    async def test_missing_id_rejected(
        self, fb_settings: Settings, resource: LocalResource
    ) -> None:
        publisher, _ = _publisher(fb_settings, lambda r: _json(200, {"success": True}))
        async with publisher:
            with pytest.raises(ServiceRejectedError):
                await publisher.publish(resource, "t", "d")

    @pytest.mark.parametrize(
        ("response", "expected"),
        [
            (_json(429, {}, **{"Retry-After": "12"}), RateLimitedError),
            (_graph_error(400, 4, "Application request limit reached"), RateLimitedError),
            (_graph_error(400, 613), RateLimitedError),
            (_json(500, {"error": {"message": "internal"}}), TransientError),
            (httpx.Response(503, text="Service Unavailable"), TransientError),
            (_graph_error(401, 102), AuthorizationError),
            (_graph_error(400, 190, "Error validating access token"), AuthorizationError),
            (_graph_error(403, 200, "Permissions error"), AuthorizationError),
            (httpx.Response(413, text="Request Entity Too Large"), PayloadTooLargeError),
            (_graph_error(400, 100, "Invalid parameter"), ServiceRejectedError),
        ],
    )
    async def test_error_mapping(
        self,
        fb_settings: Settings,
        resource: LocalResource,
        response: httpx.Response,
        expected: type,
    ) -> None:
        publisher, _ = _publisher(fb_settings, lambda r: response)
        async with publisher:
            with pytest.raises(expected):
                await publisher.publish(resource, "t", "d")

    async def test_retry_after_header_parsed(
        self, fb_settings: Settings, resource: LocalResource
    ) -> None:
        publisher, _ = _publisher(fb_settings, lambda r: _json(429, {}, **{"Retry-After": "12"}))
        async with publisher:
            with pytest.raises(RateLimitedError) as exc_info:
                await publisher.publish(resource, "t", "d")
        assert exc_info.value.retry_after == 12.0

    async def test_rejection_keeps_status_code(
        self, fb_settings: Settings, resource: LocalResource
    ) -> None:
        publisher, _ = _publisher(fb_settings, lambda r: _graph_error(400, 100, "Invalid parameter"))
        async with publisher:
            with pytest.raises(ServiceRejectedError) as exc_info:
                await publisher.publish(resource, "t", "d")
        assert exc_info.value.status_code == 400
        assert "Invalid parameter" in str(exc_info.value)

    async def test_transport_error_is_transient(
        self, fb_settings: Settings, resource: LocalResource
    ) -> None:
        def _boom(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        publisher, _ = _publisher(fb_settings, _boom)
        async with publisher:
            with pytest.raises(TransientError):
                await publisher.publish(resource, "t", "d")

    async def test_unreadable_file_is_transient(self, fb_settings: Settings, tmp_path: Path) -> None:
        gone = LocalResource(path=tmp_path / "gone.mp4", size_bytes=10)
        publisher, seen = _publisher(fb_settings, lambda r: _json(200, {"id": "1"}))
        async with publisher:
            with pytest.raises(TransientError):
                await publisher.publish(gone, "t", "d")
        assert seen == []


class TestFacebookComment:
    async def test_comment_posted(self, fb_settings: Settings) -> None:
        publisher, seen = _publisher(fb_settings, lambda r: _json(200, {"id": "987654_1"}))
        async with publisher:
            await publisher.comment("987654", "1. https://x.co/a")

        request = seen[0]
        assert str(request.url) == "https://graph.facebook.com/v19.0/987654/comments"
        form = httpx.QueryParams(request.content.decode())
        assert form["message"] == "1. https://x.co/a"
        assert form["access_token"] == "page-token"

    @pytest.mark.parametrize(
        "response",
        [
            _graph_error(400, 100, "Invalid parameter"),
            _graph_error(400, 190),
            httpx.Response(500, text="oops"),
        ],
    )
    async def test_any_failure_is_comment_error(
        self, fb_settings: Settings, response: httpx.Response
    ) -> None:
        publisher, _ = _publisher(fb_settings, lambda r: response)
        async with publisher:
            with pytest.raises(CommentError):
                await publisher.comment("987654", "1. https://x.co/a")

    async def test_transport_error_is_comment_error(self, fb_settings: Settings) -> None:
        def _boom(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        publisher, _ = _publisher(fb_settings, _boom)
        async with publisher:
            with pytest.raises(CommentError):
                await publisher.comment("987654", "x")
