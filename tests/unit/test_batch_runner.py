from __future__ import annotations

import pytest

from conftest import not_ready, server_error
from models import Job
from services.errors import (
    ApiError,
    ClientRequestError,
    ContentUnavailableError,
    RetriesExhaustedError,
    WorkflowCancelled,
    WorkflowError,
)
from services.workflow import Stage
from workers.runner import BatchRunner


@pytest.fixture
def runner(fake_client, clock) -> BatchRunner:
    return BatchRunner(fake_client, clock=clock, sleep=clock.sleep)


def test_happy_path_downloads_and_cleans_up(runner, fake_client, clock, job_request, tmp_path) -> None:
    fake_client.status_results = [
        Job(id="video_123", status="queued"),
        Job(id="video_123", status="in_progress", progress=55),
        Job(id="video_123", status="completed", progress=100),
    ]
    out = tmp_path / "video.mp4"

    snapshot = runner.run(job_request, out)

    assert snapshot.stage is Stage.COMPLETED
    assert snapshot.output_path == out
    assert out.read_bytes() == b"mp4-bytes"
    assert fake_client.status_calls == 3
    assert fake_client.deleted == ["video_123"]
    assert snapshot.warnings == ()
    assert clock.sleeps == [10.0, 10.0]


def test_client_error_makes_exactly_one_call(runner, fake_client, clock, job_request, tmp_path) -> None:
    fake_client.create_results = [ApiError("Your prompt was rejected", status_code=400)]

    with pytest.raises(ClientRequestError, match="Your prompt was rejected"):
        runner.run(job_request, tmp_path / "video.mp4")

    assert fake_client.create_calls == 1
    assert fake_client.status_calls == 0
    assert clock.sleeps == []


def test_server_errors_are_retried_with_backoff(runner, fake_client, clock, job_request, tmp_path) -> None:
    fake_client.create_results = [server_error(), server_error(), Job(id="video_123", status="queued")]

    snapshot = runner.run(job_request, tmp_path / "video.mp4")

    assert snapshot.succeeded
    assert fake_client.create_calls == 3
    assert clock.sleeps == [2.0, 4.0]


def test_server_errors_exhaust_submission(runner, fake_client, clock, job_request, tmp_path) -> None:
    fake_client.create_results = [server_error()]

    with pytest.raises(RetriesExhaustedError) as exc:
        runner.run(job_request, tmp_path / "video.mp4")

    assert exc.value.attempts == 3
    assert fake_client.create_calls == 3
    assert clock.sleeps == [2.0, 4.0]


def test_not_ready_content_is_retried_until_available(runner, fake_client, clock, job_request, tmp_path) -> None:
    fake_client.download_results = [not_ready()] * 11 + [None]

    snapshot = runner.run(job_request, tmp_path / "video.mp4")

    assert snapshot.succeeded
    assert fake_client.download_calls == 12
    assert clock.sleeps == [10.0] * 11


def test_content_that_never_appears_fails_after_twelve_attempts(
    runner, fake_client, clock, job_request, tmp_path,
) -> None:
    fake_client.download_results = [not_ready()]

    with pytest.raises(ContentUnavailableError):
        runner.run(job_request, tmp_path / "video.mp4")

    assert fake_client.download_calls == 12
    assert fake_client.deleted == []
    assert not (tmp_path / "video.mp4").exists()


def test_cleanup_failure_is_only_a_warning(runner, fake_client, job_request, tmp_path) -> None:
    fake_client.delete_error = server_error()

    snapshot = runner.run(job_request, tmp_path / "video.mp4")

    assert snapshot.succeeded
    assert fake_client.deleted == ["video_123"]
    assert len(snapshot.warnings) == 1
    assert "failed to delete video" in snapshot.warnings[0]


def test_status_query_failure_is_fatal(runner, fake_client, job_request, tmp_path) -> None:
    fake_client.status_results = [server_error()]

    with pytest.raises(WorkflowError, match="failed to get video status"):
        runner.run(job_request, tmp_path / "video.mp4")

    assert fake_client.status_calls == 1
    assert fake_client.deleted == []


def test_cancel_between_polls_stops_all_remote_calls(fake_client, clock, job_request, tmp_path) -> None:
    fake_client.status_results = [Job(id="video_123", status="queued")]

    def sleep_then_cancel(seconds: float) -> None:
        clock.sleep(seconds)
        runner.cancel()

    runner = BatchRunner(fake_client, clock=clock, sleep=sleep_then_cancel)

    with pytest.raises(WorkflowCancelled) as exc:
        runner.run(job_request, tmp_path / "video.mp4")

    assert exc.value.stage == "polling"
    assert fake_client.status_calls == 1
    assert fake_client.download_calls == 0
    assert fake_client.deleted == []


def test_observer_sees_every_stage(fake_client, clock, job_request, tmp_path) -> None:
    stages = []
    runner = BatchRunner(
        fake_client, clock=clock, sleep=clock.sleep, on_change=lambda s: stages.append(s.stage),
    )

    runner.run(job_request, tmp_path / "video.mp4")

    assert stages == [
        Stage.SUBMITTING,
        Stage.POLLING,
        Stage.DOWNLOADING,
        Stage.CLEANING_UP,
        Stage.COMPLETED,
    ]


def test_cancel_after_a_confirmed_download_still_cleans_up(fake_client, clock, job_request, tmp_path) -> None:
    runner = BatchRunner(fake_client, clock=clock, sleep=clock.sleep)
    download = fake_client.download_content

    def download_then_cancel(video_id, output_path):
        path = download(video_id, output_path)
        runner.cancel()
        return path

    fake_client.download_content = download_then_cancel
    out = tmp_path / "video.mp4"

    snapshot = runner.run(job_request, out)

    assert snapshot.stage is Stage.COMPLETED
    assert out.exists()
    assert fake_client.deleted == ["video_123"]


def test_cancel_during_cleanup_does_not_fail_the_run(fake_client, clock, job_request, tmp_path) -> None:
    runner = BatchRunner(fake_client, clock=clock, sleep=clock.sleep)
    delete = fake_client.delete_video

    def delete_then_cancel(video_id):
        runner.cancel()
        delete(video_id)

    fake_client.delete_video = delete_then_cancel

    snapshot = runner.run(job_request, tmp_path / "video.mp4")

    assert snapshot.succeeded
    assert snapshot.error is None
    assert fake_client.deleted == ["video_123"]


def test_cancel_during_an_unconfirmed_download_skips_cleanup(fake_client, clock, job_request, tmp_path) -> None:
    runner = BatchRunner(fake_client, clock=clock, sleep=clock.sleep)

    def not_ready_then_cancel(video_id, output_path):
        fake_client.download_calls += 1
        runner.cancel()
        raise not_ready()

    fake_client.download_content = not_ready_then_cancel

    with pytest.raises(WorkflowCancelled) as exc:
        runner.run(job_request, tmp_path / "video.mp4")

    assert exc.value.stage == "downloading"
    assert fake_client.download_calls == 1
    assert fake_client.deleted == []
