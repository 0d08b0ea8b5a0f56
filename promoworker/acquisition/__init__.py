"""Content acquisition adapters."""

from promoworker.acquisition.base import BaseAcquirer
from promoworker.acquisition.youtube import YtDlpAcquirer, parse_video_id

__all__ = ["BaseAcquirer", "YtDlpAcquirer", "parse_video_id"]
