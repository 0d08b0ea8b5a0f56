"""Exponential back-off with jitter for retried external calls.

:class:`BackoffPolicy` is a pure value: ``delay(i)`` depends only on the
attempt index and the jitter source, so tests can pin the jitter and assert
exact delays.

Delay formula for zero-based retry index ``i`` (``0`` = first retry)::

    min(base * 2**i + jitter, cap)        jitter ∈ [0, max_jitter]

Typical usage::

    policy = BackoffPolicy(base=1.0, cap=20.0, max_jitter=1.0)
    await asyncio.sleep(policy.delay(0))   # 1.0 – 2.0 s
"""

from __future__ import annotations

import random
from collections.abc import Callable
from dataclasses import dataclass

__all__ = ["BackoffPolicy"]


@dataclass(frozen=True)
class BackoffPolicy:
    """Exponential back-off schedule with bounded uniform jitter.

    Args:
        base: Delay before the first retry, in seconds (> 0).
        cap: Upper bound on any single delay, in seconds (≥ ``base``).
        max_jitter: Upper bound of the uniform jitter added to each delay.
        jitter: Optional zero-argument callable returning the jitter to add.
            Defaults to ``random.uniform(0, max_jitter)``.  Inject a constant
            to make the schedule deterministic.

    Raises:
        ValueError: On a non-positive base, a cap below base, or negative
            jitter bound.
    """

    base: float = 1.0
    cap: float = 20.0
    max_jitter: float = 1.0
    jitter: Callable[[], float] | None = None

    def __post_init__(self) -> None:
        if self.base <= 0:
            raise ValueError(f"base must be > 0, got {self.base!r}.")
        if self.cap < self.base:
            raise ValueError(f"cap ({self.cap!r}) must be ≥ base ({self.base!r}).")
        if self.max_jitter < 0:
            raise ValueError(f"max_jitter must be ≥ 0, got {self.max_jitter!r}.")

    def delay(self, attempt_index: int) -> float:
        """Return the sleep duration before retry number ``attempt_index + 1``.

        Args:
            attempt_index: Zero-based retry index.

        Returns:
            Seconds to wait; at least ``base`` for index 0 and never above
            ``cap``.
        """
        if attempt_index < 0:
            raise ValueError(f"attempt_index must be ≥ 0, got {attempt_index!r}.")
        exponent = min(attempt_index, 62)
        raw = self.base * (2.0**exponent) + self._draw_jitter()
        return min(raw, self.cap)

    def _draw_jitter(self) -> float:
        if self.jitter is not None:
            return max(0.0, self.jitter())
        return random.uniform(0.0, self.max_jitter)
