"""Bounded retry with exponential back-off for adapter calls.

:func:`retry_with_backoff` wraps a zero-argument coroutine factory in a
:class:`tenacity.AsyncRetrying` loop whose wait schedule comes from a
:class:`~promoworker.core.backoff.BackoffPolicy`.

* Attempt ``n`` (1-based) that fails with a retryable error sleeps
  ``policy.delay(n - 1)`` before attempt ``n + 1``.
* A :class:`~promoworker.core.exceptions.RateLimitedError` carrying a
  ``retry_after`` hint sleeps for the hint instead when it is longer, still
  capped at ``policy.cap``.
* A non-retryable error, or the last permitted attempt failing, re-raises
  the original exception unchanged.
* When ``call_timeout`` is set each attempt runs under
  :func:`asyncio.timeout`; an expired attempt is raised as a
  :class:`~promoworker.core.exceptions.TransientError` and so is retried.

``sleep`` is injectable so tests can record delays without waiting.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
)

from promoworker.core import events
from promoworker.core.backoff import BackoffPolicy
from promoworker.core.exceptions import RateLimitedError, TransientError

__all__ = ["is_transient", "retry_with_backoff"]

logger = logging.getLogger(__name__)

T = TypeVar("T")


def is_transient(exc: BaseException) -> bool:
    """Default classifier: retry :class:`TransientError` (and rate limits)."""
    return isinstance(exc, TransientError)


def _make_wait(policy: BackoffPolicy) -> Callable[[RetryCallState], float]:
    def _wait(retry_state: RetryCallState) -> float:
        delay = policy.delay(max(retry_state.attempt_number - 1, 0))
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        if isinstance(exc, RateLimitedError) and exc.retry_after is not None:
            delay = max(delay, min(exc.retry_after, policy.cap))
        return delay

    return _wait


async def retry_with_backoff(
    operation: Callable[[], Awaitable[T]],
    *,
    label: str,
    policy: BackoffPolicy,
    max_attempts: int,
    is_retryable: Callable[[BaseException], bool] = is_transient,
    call_timeout: float | None = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """Run *operation* until it succeeds, fails permanently, or runs out of attempts.

    Args:
        operation: Zero-argument callable returning a fresh awaitable per
            attempt.
        label: Short name of the call for log lines (e.g. ``"publish"``).
        policy: Back-off schedule.
        max_attempts: Total attempts including the first (``>= 1``).
        is_retryable: Classifier deciding whether an error earns another
            attempt.
        call_timeout: Per-attempt time limit in seconds, or ``None``.
        sleep: Coroutine used to wait between attempts.

    Returns:
        Whatever *operation* returned on the successful attempt.

    Raises:
        ValueError: If ``max_attempts < 1``.
        Exception: The last error raised by *operation*.
    """
    if max_attempts < 1:
        raise ValueError(f"max_attempts must be ≥ 1, got {max_attempts!r}.")

    wait = _make_wait(policy)

    def _before_sleep(rs: RetryCallState) -> None:
        exc = rs.outcome.exception() if rs.outcome else None
        logger.warning(
            "%s attempt %d/%d failed (%s); retrying in %.1f s",
            label,
            rs.attempt_number,
            max_attempts,
            exc if exc is not None else "?",
            rs.next_action.sleep if rs.next_action else 0.0,
            extra={"event": events.JOB_RETRY, "call": label, "attempt": rs.attempt_number},
        )

    async def _attempt() -> T:
        if call_timeout is None:
            return await operation()
        try:
            async with asyncio.timeout(call_timeout):
                return await operation()
        except TimeoutError as exc:
            raise TransientError(label, f"Timed out after {call_timeout:g}s") from exc

    async for attempt in AsyncRetrying(
        sleep=sleep,
        wait=wait,
        stop=stop_after_attempt(max_attempts),
        retry=retry_if_exception(is_retryable),
        reraise=True,
        before_sleep=_before_sleep,
    ):
        with attempt:
            result = await _attempt()
    return result
