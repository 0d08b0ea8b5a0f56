"""Job lifecycle orchestration: retries, per-job state machine, dispatch loop.

Public API
----------
* :func:`~promoworker.orchestrator.runner.run_continuous`: default runtime
  entry-point; polls the queue until ``SIGTERM``.
* :func:`~promoworker.orchestrator.runner.run_once`: process at most one
  job; used by ``--once``.
* :func:`~promoworker.orchestrator.poller.poll_once` /
  :func:`~promoworker.orchestrator.poller.run_poller`: the dispatch loop
  over an injected store and processor.
* :class:`~promoworker.orchestrator.processor.JobProcessor`: the per-job
  state machine.
* :func:`~promoworker.orchestrator.retry.retry_with_backoff`: bounded retry
  for adapter calls.
"""

from promoworker.orchestrator.poller import poll_once, run_poller
from promoworker.orchestrator.processor import JobProcessor
from promoworker.orchestrator.retry import is_transient, retry_with_backoff
from promoworker.orchestrator.runner import run_continuous, run_once

__all__ = [
    "JobProcessor",
    "is_transient",
    "poll_once",
    "retry_with_backoff",
    "run_continuous",
    "run_once",
    "run_poller",
]
