from __future__ import annotations

import pytest

from services.errors import ApiError, ContentNotReadyError, TransportError
from services.retry import (
    BackoffPolicy,
    FailureKind,
    backoff_delay,
    classify,
    exponential_backoff,
    fixed_backoff,
)


@pytest.mark.parametrize("status_code", [400, 401, 403, 404, 422, 429])
def test_4xx_is_terminal_client(status_code: int) -> None:
    assert classify(ApiError("nope", status_code=status_code)) is FailureKind.TERMINAL_CLIENT


@pytest.mark.parametrize("status_code", [500, 502, 503, 504])
def test_5xx_is_retryable_server(status_code: int) -> None:
    assert classify(ApiError("boom", status_code=status_code)) is FailureKind.RETRYABLE_SERVER


def test_transport_failure_is_retryable_server() -> None:
    assert classify(TransportError("failed to execute request: timed out")) is FailureKind.RETRYABLE_SERVER


def test_content_not_ready_signal_is_transient() -> None:
    err = ContentNotReadyError("not found", status_code=404)
    assert classify(err) is FailureKind.RETRYABLE_TRANSIENT


def test_message_is_only_consulted_without_a_status_code() -> None:
    assert classify(RuntimeError("content not ready")) is FailureKind.RETRYABLE_TRANSIENT
    # A structured 4xx wins over the wording of the message.
    assert classify(ApiError("content not ready", status_code=400)) is FailureKind.TERMINAL_CLIENT


def test_exponential_backoff_schedule() -> None:
    assert [exponential_backoff(a) for a in range(3)] == [0.0, 2.0, 4.0]


def test_fixed_backoff_schedule() -> None:
    assert [fixed_backoff(a) for a in range(4)] == [0.0, 10.0, 10.0, 10.0]


def test_backoff_delay_dispatches_on_policy() -> None:
    assert backoff_delay(BackoffPolicy.EXPONENTIAL, 2) == 4.0
    assert backoff_delay(BackoffPolicy.FIXED, 2) == 10.0
