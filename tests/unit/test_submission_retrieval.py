from __future__ import annotations

from datetime import datetime
from pathlib import Path

from conftest import not_ready, server_error
from services.errors import (
    ApiError,
    ClientRequestError,
    ContentUnavailableError,
    RetriesExhaustedError,
    TransportError,
    WorkflowError,
)
from services.retrieval import after_download_failure, build_output_path
from services.retry import FailureKind
from services.submission import after_submission_failure, with_hint


def test_client_error_fails_immediately_with_verbatim_message(job_request) -> None:
    decision = after_submission_failure(ApiError("Invalid API key", status_code=401), 1, job_request)
    assert not decision.retry
    assert decision.kind is FailureKind.TERMINAL_CLIENT
    assert isinstance(decision.error, ClientRequestError)
    assert decision.error.message == "Invalid API key"
    assert decision.error.status_code == 401
    assert decision.error.attempts == 1


def test_size_mismatch_gets_a_hint(job_request) -> None:
    message = "Inpaint image must match the requested width and height"
    decision = after_submission_failure(ApiError(message, status_code=400), 1, job_request)
    assert decision.error.message.startswith(message)
    assert "exactly 1280x720 pixels" in decision.error.message
    assert with_hint("Rate limit reached", job_request) == "Rate limit reached"


def test_server_errors_back_off_exponentially(job_request) -> None:
    first = after_submission_failure(server_error(), 1, job_request)
    second = after_submission_failure(TransportError("connection reset"), 2, job_request)
    assert (first.retry, first.delay) == (True, 2.0)
    assert (second.retry, second.delay) == (True, 4.0)


def test_server_errors_exhaust_after_three_attempts(job_request) -> None:
    decision = after_submission_failure(server_error(), 3, job_request)
    assert isinstance(decision.error, RetriesExhaustedError)
    assert "failed after 3 attempts" in str(decision.error)
    assert "upstream exploded" in str(decision.error)


def test_not_ready_download_retries_every_ten_seconds() -> None:
    for attempt in range(1, 12):
        decision = after_download_failure(not_ready(), attempt)
        assert (decision.retry, decision.delay) == (True, 10.0)


def test_not_ready_download_exhausts_after_twelve_attempts() -> None:
    decision = after_download_failure(not_ready(), 12)
    assert decision.kind is FailureKind.RETRYABLE_TRANSIENT
    assert isinstance(decision.error, ContentUnavailableError)
    assert "after 12 attempts (2 minutes)" in str(decision.error)


def test_other_download_failures_are_terminal() -> None:
    forbidden = after_download_failure(ApiError("forbidden", status_code=403), 1)
    assert isinstance(forbidden.error, ClientRequestError)

    broken = after_download_failure(server_error(), 1)
    assert not broken.retry
    assert isinstance(broken.error, WorkflowError)
    assert broken.error.stage == "downloading"


def test_output_path_is_timestamped(tmp_path: Path) -> None:
    path = build_output_path(tmp_path, datetime(2025, 3, 4, 5, 6, 7))
    assert path == tmp_path / "sora_video_20250304_050607.mp4"
