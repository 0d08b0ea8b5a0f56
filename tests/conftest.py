"""Shared pytest fixtures and configuration for the promoworker test suite.

This file is loaded automatically by pytest before any test module.
It provides project-wide fixtures used across the unit tests.
"""

from __future__ import annotations

import logging
import os
from collections.abc import AsyncGenerator
from pathlib import Path

import aiosqlite
import pytest
from pydantic_settings import SettingsConfigDict

from promoworker.core import configure_logging
from promoworker.core.settings import Settings
from promoworker.storage.database import open_db
from promoworker.storage.repository import JobRepository


# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _configure_test_logging() -> None:
    """Force DEBUG logging in text format for every test."""
    configure_logging(level="DEBUG", fmt="text", force=True)


# ---------------------------------------------------------------------------
# Environment
# ---------------------------------------------------------------------------


@pytest.fixture()
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Remove credential and tuning env vars for the duration of a test.

    Also disables pydantic-settings `.env` file loading so that values
    present in a local `.env` file do not leak into Settings isolation tests.
    """
    sensitive_prefixes = (
        "FACEBOOK_",
        "YTDLP_",
        "MAX_VIDEO_",
        "DATABASE_",
        "SCRATCH_",
        "POLL_",
        "BACKOFF_",
        "METADATA_",
        "DOWNLOAD_",
        "PUBLISH_",
        "ATTRIBUTION_",
        "LOG_LEVEL",
        "LOG_FORMAT",
    )
    for key in list(os.environ):
        if any(key.startswith(prefix) for prefix in sensitive_prefixes):
            monkeypatch.delenv(key, raising=False)

    monkeypatch.setattr(
        Settings,
        "model_config",
        SettingsConfigDict(
            env_file=None,
            env_file_encoding="utf-8",
            extra="ignore",
        ),
    )


# ---------------------------------------------------------------------------
# Storage
# ---------------------------------------------------------------------------


@pytest.fixture()
async def db(tmp_path: Path) -> AsyncGenerator[aiosqlite.Connection, None]:
    """Provide a real WAL-mode SQLite job queue in a temp directory."""
    conn = await open_db(tmp_path / "queue.db")
    yield conn
    await conn.close()


@pytest.fixture()
def repo(db: aiosqlite.Connection) -> JobRepository:
    return JobRepository(db)


# ---------------------------------------------------------------------------
# Misc helpers
# ---------------------------------------------------------------------------


@pytest.fixture()
def logger() -> logging.Logger:
    """Return a ``logging.Logger`` scoped to the running test."""
    return logging.getLogger("tests")
