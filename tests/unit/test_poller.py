"""Unit tests for the dispatch loop in :mod:`promoworker.orchestrator.poller`."""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from promoworker.core import events
from promoworker.core.exceptions import StorageError
from promoworker.core.models import CompletedOutcome, Job, JobStage
from promoworker.core.settings import Settings
from promoworker.orchestrator.poller import poll_once, run_poller

_NOW = datetime(2026, 3, 1, 12, 0, 0, tzinfo=UTC)
_OUTCOME = CompletedOutcome(completed_at=_NOW, published_id="fb-1")


def _job(job_id: str = "j1") -> Job:
    return Job(id=job_id, content_reference="abc", stage=JobStage.PREPARING, created_at=_NOW)


class ScriptedStore:
    """Store whose claims follow a script; sets *stop* when the script ends.

    Each script item is a :class:`Job`, ``None`` (empty queue) or an
    exception instance to raise.
    """

    def __init__(self, script: list[object], stop: asyncio.Event) -> None:
        self._script = list(script)
        self._stop = stop
        self.claims = 0

    async def claim_next_pending(self) -> Job | None:
        self.claims += 1
        item = self._script.pop(0)
        if not self._script:
            self._stop.set()
        if isinstance(item, BaseException):
            raise item
        return item  # type: ignore[return-value]

    async def set_stage(self, job_id: str, stage: JobStage) -> None:  # pragma: no cover
        raise AssertionError("poller must not write stages")

    async def set_terminal(self, job_id: str, outcome: object) -> None:  # pragma: no cover
        raise AssertionError("poller must not write outcomes")


def _processor() -> MagicMock:
    processor = MagicMock()
    processor.process = AsyncMock(return_value=_OUTCOME)
    return processor


@pytest.fixture()
def settings(clean_env: None) -> Settings:
    return Settings(poll_interval_s=7.0, poll_error_delay_s=3.0)


# ===========================================================================
# poll_once
# ===========================================================================


class TestPollOnce:
    async def test_empty_queue_returns_none(self) -> None:
        store = ScriptedStore([None], asyncio.Event())
        processor = _processor()
        assert await poll_once(store, processor) is None
        processor.process.assert_not_awaited()

    async def test_claimed_job_is_processed(self) -> None:
        job = _job()
        store = ScriptedStore([job], asyncio.Event())
        processor = _processor()
        assert await poll_once(store, processor) == _OUTCOME
        processor.process.assert_awaited_once_with(job)

    async def test_claim_error_propagates(self) -> None:
        store = ScriptedStore([StorageError("locked")], asyncio.Event())
        with pytest.raises(StorageError):
            await poll_once(store, _processor())


# ===========================================================================
# run_poller
# ===========================================================================


class TestRunPoller:
    async def test_drains_jobs_then_idles(self, settings: Settings, tmp_path: Path) -> None:
        stop = asyncio.Event()
        store = ScriptedStore([_job("a"), _job("b"), None], stop)
        processor = _processor()

        with patch("promoworker.orchestrator.poller._wait", new=AsyncMock()) as wait:
            await run_poller(
                store,
                processor,
                settings,
                stop,
                heartbeat_path=str(tmp_path / "hb"),
                install_signal_handler=False,
            )

        assert processor.process.await_count == 2
        assert store.claims == 3
        # Processed jobs loop immediately; only the idle tick waits.
        wait.assert_awaited_once_with(stop, 7.0)

    async def test_claim_error_uses_error_delay(
        self, settings: Settings, tmp_path: Path, caplog: pytest.LogCaptureFixture
    ) -> None:
        stop = asyncio.Event()
        store = ScriptedStore([StorageError("database is locked"), None], stop)

        with patch("promoworker.orchestrator.poller._wait", new=AsyncMock()) as wait:
            await run_poller(
                store,
                _processor(),
                settings,
                stop,
                heartbeat_path=str(tmp_path / "hb"),
                install_signal_handler=False,
            )

        assert [c.args[1] for c in wait.await_args_list] == [3.0, 7.0]
        assert any(getattr(r, "event", None) == events.POLL_ERROR for r in caplog.records)

    async def test_heartbeat_written_each_tick(self, settings: Settings, tmp_path: Path) -> None:
        stop = asyncio.Event()
        heartbeat = tmp_path / "hb"
        await run_poller(
            ScriptedStore([None], stop),
            _processor(),
            settings,
            stop,
            heartbeat_path=str(heartbeat),
            install_signal_handler=False,
        )
        assert float(heartbeat.read_text()) > 0

    async def test_heartbeat_failure_does_not_stop_loop(
        self, settings: Settings, tmp_path: Path
    ) -> None:
        stop = asyncio.Event()
        store = ScriptedStore([None], stop)
        await run_poller(
            store,
            _processor(),
            settings,
            stop,
            heartbeat_path=str(tmp_path / "missing-dir" / "hb"),
            install_signal_handler=False,
        )
        assert store.claims == 1

    async def test_preset_stop_event_skips_polling(self, settings: Settings) -> None:
        stop = asyncio.Event()
        stop.set()
        store = ScriptedStore([None], asyncio.Event())
        await run_poller(
            store, _processor(), settings, stop, heartbeat_path=None, install_signal_handler=False
        )
        assert store.claims == 0

    async def test_idle_wait_wakes_on_stop(self, settings: Settings) -> None:
        stop = asyncio.Event()
        store = ScriptedStore([None, None], asyncio.Event())
        task = asyncio.create_task(
            run_poller(
                store,
                _processor(),
                settings,
                stop,
                heartbeat_path=None,
                install_signal_handler=False,
            )
        )
        await asyncio.sleep(0.05)
        stop.set()
        await asyncio.wait_for(task, timeout=1.0)
        assert store.claims == 1

    async def test_signal_handler_installed_and_removed(self, settings: Settings) -> None:
        stop = asyncio.Event()
        loop = asyncio.get_running_loop()
        with (
            patch.object(loop, "add_signal_handler") as add,
            patch.object(loop, "remove_signal_handler") as remove,
        ):
            await run_poller(
                ScriptedStore([None], stop), _processor(), settings, stop, heartbeat_path=None
            )
        add.assert_called_once()
        remove.assert_called_once()
