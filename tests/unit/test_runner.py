"""Wiring tests for :mod:`promoworker.orchestrator.runner` and the CLI.

The real yt-dlp and Graph adapters are swapped for local fakes; the SQLite
queue and the processor are real.
"""

from __future__ import annotations

import asyncio
import sys
from pathlib import Path
from typing import ClassVar
from unittest.mock import AsyncMock, patch

import pytest

from promoworker.__main__ import main
from promoworker.acquisition.base import BaseAcquirer
from promoworker.core.models import (
    CompletedOutcome,
    FailedOutcome,
    JobStage,
    LocalResource,
    VideoMetadata,
)
from promoworker.core.settings import Settings
from promoworker.orchestrator.runner import run_continuous, run_once
from promoworker.publishers.base import BasePublisher
from promoworker.publishers.facebook import FacebookPublisher
from promoworker.storage.database import open_db
from promoworker.storage.repository import JobRepository


class _LocalAcquirer(BaseAcquirer):
    service: ClassVar[str] = "local"

    def __init__(self, settings: Settings | None = None) -> None:
        self.closed = False

    async def resolve_metadata(self, reference: str) -> VideoMetadata:
        return VideoMetadata(video_id=reference, title=f"Video {reference}")

    async def materialize(self, reference: str, workdir: Path) -> LocalResource:
        workdir.mkdir(parents=True, exist_ok=True)
        path = workdir / "v.mp4"
        path.write_bytes(b"bytes")
        return LocalResource(path=path, size_bytes=5)

    async def close(self) -> None:
        self.closed = True


class _LocalPublisher(BasePublisher):
    service: ClassVar[str] = "local"

    def __init__(self, settings: Settings | None = None) -> None:
        self._settings = settings

    async def publish(self, resource: LocalResource, title: str, description: str) -> str:
        return f"pub-{resource.path.parent.name[:8]}"

    async def comment(self, published_id: str, text: str) -> None:
        return None


@pytest.fixture()
def settings(clean_env: None, tmp_path: Path) -> Settings:
    return Settings(
        database_path=str(tmp_path / "queue.db"),
        scratch_dir=str(tmp_path / "scratch"),
        facebook_page_id="1",
        facebook_access_token="t",
        poll_interval_s=0.01,
    )


@pytest.fixture()
def local_adapters():
    with (
        patch("promoworker.orchestrator.runner.YtDlpAcquirer", _LocalAcquirer),
        patch("promoworker.orchestrator.runner.FacebookPublisher", _LocalPublisher),
    ):
        yield


async def _seed(settings: Settings, *job_ids: str) -> None:
    conn = await open_db(settings.database_path_resolved)
    try:
        repo = JobRepository(conn)
        for job_id in job_ids:
            await repo.enqueue(job_id, f"ref-{job_id}", submitter_handle="alice")
    finally:
        await conn.close()


async def _stages(settings: Settings) -> dict[JobStage, int]:
    conn = await open_db(settings.database_path_resolved)
    try:
        return await JobRepository(conn).count_by_stage()
    finally:
        await conn.close()


@pytest.mark.usefixtures("local_adapters")
class TestRunOnce:
    async def test_empty_queue(self, settings: Settings) -> None:
        assert await run_once(settings) is None

    async def test_processes_one_job(self, settings: Settings) -> None:
        await _seed(settings, "a", "b")

        outcome = await run_once(settings)

        assert isinstance(outcome, CompletedOutcome)
        assert await _stages(settings) == {JobStage.COMPLETED: 1, JobStage.PENDING: 1}

    async def test_missing_credentials_fail_job_not_process(self, settings: Settings) -> None:
        unconfigured = settings.model_copy(update={"facebook_access_token": ""})
        await _seed(unconfigured, "a")

        with patch("promoworker.orchestrator.runner.FacebookPublisher", FacebookPublisher):
            outcome = await run_once(unconfigured)

        assert isinstance(outcome, FailedOutcome)
        assert outcome.stage is JobStage.PREPARING


@pytest.mark.usefixtures("local_adapters")
class TestRunContinuous:
    async def test_drains_queue_until_stopped(self, settings: Settings) -> None:
        await _seed(settings, "a", "b", "c")
        stop = asyncio.Event()

        task = asyncio.create_task(run_continuous(settings, stop))
        for _ in range(200):
            if (await _stages(settings)).get(JobStage.COMPLETED) == 3:
                break
            await asyncio.sleep(0.01)
        stop.set()
        await asyncio.wait_for(task, timeout=2.0)

        assert await _stages(settings) == {JobStage.COMPLETED: 3}


@pytest.mark.usefixtures("clean_env")
class TestMain:
    def test_once_flag_runs_single_job(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(sys, "argv", ["promoworker", "--once"])
        with (
            patch("promoworker.orchestrator.runner.run_once", new=AsyncMock()) as once,
            patch("promoworker.orchestrator.runner.run_continuous", new=AsyncMock()) as forever,
        ):
            main()
        once.assert_awaited_once()
        forever.assert_not_awaited()

    def test_invalid_log_level_exits(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(sys, "argv", ["promoworker", "--log-level", "LOUD"])
        with pytest.raises(SystemExit) as exc_info:
            main()
        assert exc_info.value.code == 1
