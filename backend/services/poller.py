"""Adaptive status polling – interval schedule and status interpretation."""

from __future__ import annotations

import logging
from enum import Enum

import config
from models import Job
from services.errors import PollTimeoutError, RemoteJobFailedError

logger = logging.getLogger("vgen.poller")

STAGE = "polling"


class PollOutcome(str, Enum):
    PENDING = "polling"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    TIMED_OUT = "timed-out"


def next_poll_delay(attempt: int, elapsed: float, progress: int) -> float:
    """
    Seconds to wait before status query number ``attempt`` (1-based).

    The first query is immediate. Afterwards the fast interval applies while
    the job reports 100% or during the first two minutes, then the slow one.
    """
    if attempt <= 1:
        return 0.0
    if progress >= 100:
        return float(config.POLL_FAST_INTERVAL)
    if elapsed < config.POLL_FAST_WINDOW:
        return float(config.POLL_FAST_INTERVAL)
    return float(config.POLL_SLOW_INTERVAL)


def interpret_status(job: Job, attempt: int, elapsed: float) -> PollOutcome:
    """
    Map one status response to the poller's next state.

    Only ``completed`` counts as success; progress is never consulted.
    Raises RemoteJobFailedError for ``failed`` and PollTimeoutError when a
    pending response uses up the last attempt.
    """
    if job.is_completed:
        return PollOutcome.SUCCEEDED

    if job.is_failed:
        message = "Video generation failed"
        if job.error is not None and job.error.message:
            message += ": " + job.error.message
        raise RemoteJobFailedError(message, stage=STAGE, attempts=attempt)

    if attempt >= config.POLL_MAX_ATTEMPTS:
        raise PollTimeoutError(
            f"timeout waiting for video generation after {int(elapsed)}s "
            f"({attempt} status checks)",
            stage=STAGE,
            attempts=attempt,
        )
    return PollOutcome.PENDING
