"""Failure classification and backoff policies shared by every retry loop."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional

import config
from services.errors import ApiError, ContentNotReadyError, WorkflowError

NOT_READY_MARKERS = ("not ready", "404")


class FailureKind(str, Enum):
    TERMINAL_CLIENT = "terminal-client"
    RETRYABLE_SERVER = "retryable-server"
    RETRYABLE_TRANSIENT = "retryable-transient"


class BackoffPolicy(str, Enum):
    EXPONENTIAL = "exponential"
    FIXED = "fixed"


@dataclass(frozen=True)
class RetryState:
    """Bookkeeping for one bounded retry loop (submission, polling or download)."""

    attempt: int = 0
    elapsed: float = 0.0
    last_failure: Optional[FailureKind] = None
    last_error: Optional[str] = None


@dataclass(frozen=True)
class RetryDecision:
    """What a retry loop does after a failed attempt: wait and retry, or give up."""

    kind: FailureKind
    delay: float = 0.0
    error: Optional[WorkflowError] = None

    @property
    def retry(self) -> bool:
        return self.error is None


def classify(exc: BaseException) -> FailureKind:
    """
    Label a failed remote call.

    The structured signals win: a ContentNotReadyError or an HTTP status
    code. The message is only inspected when the error has no status code.
    """
    if isinstance(exc, ContentNotReadyError):
        return FailureKind.RETRYABLE_TRANSIENT
    if isinstance(exc, ApiError) and exc.status_code is not None:
        if 400 <= exc.status_code < 500:
            return FailureKind.TERMINAL_CLIENT
        return FailureKind.RETRYABLE_SERVER

    message = str(exc).lower()
    if any(marker in message for marker in NOT_READY_MARKERS):
        return FailureKind.RETRYABLE_TRANSIENT
    return FailureKind.RETRYABLE_SERVER


def exponential_backoff(attempt: int) -> float:
    """Seconds to wait before attempt index ``attempt`` (0-based): 0, 2, 4, ..."""
    if attempt <= 0:
        return 0.0
    return float(2 ** attempt)


def fixed_backoff(attempt: int) -> float:
    """Seconds to wait before attempt index ``attempt`` (0-based): 0, 10, 10, ..."""
    if attempt <= 0:
        return 0.0
    return float(config.DOWNLOAD_RETRY_INTERVAL)


def backoff_delay(policy: BackoffPolicy, attempt: int) -> float:
    if policy is BackoffPolicy.EXPONENTIAL:
        return exponential_backoff(attempt)
    return fixed_backoff(attempt)
