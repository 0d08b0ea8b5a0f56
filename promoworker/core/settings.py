"""Worker configuration, read once at startup.

Every knob is an environment variable; a ``.env`` file in the working
directory fills in anything the environment leaves unset.

The field name is the **lowercase** version of the env-var name (e.g.
``FACEBOOK_PAGE_ID`` → ``facebook_page_id``).

Typical usage::

    from promoworker.core.settings import Settings

    settings = Settings()                      # loads from env + .env
    policy = settings.backoff_policy()         # BackoffPolicy for retries
    print(settings.facebook_configured)        # True / False
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from promoworker.core.backoff import BackoffPolicy

__all__ = ["Settings"]

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Validated worker settings.

    Environment variables win over ``.env`` entries, which win over the
    defaults below.

    Credentials default to empty strings so the process can start without
    them; a job that reaches the ``preparing`` stage with a missing
    credential fails with a configuration error instead.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Publication (Facebook Page)
    # ------------------------------------------------------------------
    facebook_page_id: str = Field(default="", description="Target Facebook Page id.")
    facebook_access_token: str = Field(
        default="",
        description="Page access token with publish_video permission.",
    )
    facebook_graph_version: str = Field(
        default="v19.0",
        description="Graph API version segment used in request paths.",
    )
    facebook_upload_timeout_s: float = Field(
        default=600.0,
        gt=0.0,
        description="httpx write/read timeout for a single video upload.",
    )

    # ------------------------------------------------------------------
    # Acquisition (YouTube via yt-dlp)
    # ------------------------------------------------------------------
    ytdlp_cookies_file: str = Field(
        default="",
        description="Optional Netscape cookies file passed to yt-dlp.",
    )
    ytdlp_format: str = Field(
        default="best[ext=mp4]/best",
        description="yt-dlp format selector.",
    )
    max_video_bytes: int = Field(
        default=1_073_741_824,
        ge=1,
        description="Largest download accepted, in bytes (default 1 GiB).",
    )

    # ------------------------------------------------------------------
    # Storage
    # ------------------------------------------------------------------
    database_path: str = Field(
        default="data/promoworker.db",
        description="Path to the SQLite job-queue database.",
    )
    scratch_dir: str = Field(
        default="data/scratch",
        description="Root directory for per-job download scratch space.",
    )

    # ------------------------------------------------------------------
    # Polling
    # ------------------------------------------------------------------
    poll_interval_s: float = Field(
        default=10.0,
        gt=0.0,
        description="Seconds to wait after a tick that found no pending job.",
    )
    poll_error_delay_s: float = Field(
        default=5.0,
        gt=0.0,
        description="Seconds to wait after a tick whose claim query failed.",
    )

    # ------------------------------------------------------------------
    # Retry budget and backoff
    # ------------------------------------------------------------------
    metadata_max_attempts: int = Field(default=4, ge=1)
    download_max_attempts: int = Field(default=3, ge=1)
    publish_max_attempts: int = Field(default=3, ge=1)
    backoff_base_s: float = Field(default=1.0, gt=0.0)
    backoff_cap_s: float = Field(default=20.0, gt=0.0)
    backoff_max_jitter_s: float = Field(default=1.0, ge=0.0)

    # ------------------------------------------------------------------
    # Per-call timeouts
    # ------------------------------------------------------------------
    metadata_timeout_s: float = Field(default=60.0, gt=0.0)
    download_timeout_s: float = Field(default=900.0, gt=0.0)
    publish_timeout_s: float = Field(default=1200.0, gt=0.0)

    # ------------------------------------------------------------------
    # Post composition
    # ------------------------------------------------------------------
    attribution_label: str = Field(
        default="eSpazza YT Promotion",
        description="Label used in the '[ <label> by @<handle> ]' suffix.",
    )

    # ------------------------------------------------------------------
    # Runtime flags
    # ------------------------------------------------------------------
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_format: Literal["text", "json"] = "text"

    # ------------------------------------------------------------------
    # Field validators
    # ------------------------------------------------------------------

    @field_validator("log_level", mode="before")
    @classmethod
    def _upper_level(cls, v: object) -> object:
        return v.strip().upper() if isinstance(v, str) else v

    @field_validator("log_format", mode="before")
    @classmethod
    def _lower_format(cls, v: object) -> object:
        return v.strip().lower() if isinstance(v, str) else v

    @field_validator("facebook_page_id", "facebook_access_token", "ytdlp_cookies_file")
    @classmethod
    def _strip_credentials(cls, v: str) -> str:
        return v.strip()

    # ------------------------------------------------------------------
    # Model validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def _validate_backoff(self) -> Settings:
        """Ensure the backoff cap is not below its base."""
        if self.backoff_cap_s < self.backoff_base_s:
            raise ValueError(
                f"backoff_cap_s ({self.backoff_cap_s}) "
                f"< backoff_base_s ({self.backoff_base_s})"
            )
        return self

    # ------------------------------------------------------------------
    # Derived helpers
    # ------------------------------------------------------------------

    def backoff_policy(self) -> BackoffPolicy:
        """Build the :class:`BackoffPolicy` shared by every retried call."""
        return BackoffPolicy(
            base=self.backoff_base_s,
            cap=self.backoff_cap_s,
            max_jitter=self.backoff_max_jitter_s,
        )

    @property
    def database_path_resolved(self) -> Path:
        """Return the database path as a resolved :class:`~pathlib.Path`."""
        return Path(self.database_path).resolve()

    @property
    def scratch_dir_resolved(self) -> Path:
        """Return the scratch root as a resolved :class:`~pathlib.Path`."""
        return Path(self.scratch_dir).resolve()

    @property
    def facebook_configured(self) -> bool:
        """``True`` if both the Page id and access token are set."""
        return bool(self.facebook_page_id and self.facebook_access_token)
