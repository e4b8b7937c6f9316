"""Test configuration for importing the backend modules."""

from __future__ import annotations

import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
APP_DIR = ROOT / "backend"
if str(APP_DIR) not in sys.path:
    sys.path.insert(0, str(APP_DIR))

import pytest  # noqa: E402

from models import Job, JobRequest  # noqa: E402
from services.errors import ApiError, ContentNotReadyError  # noqa: E402
from services.run_store import RunStore  # noqa: E402


class FakeClock:
    """Monotonic clock that only moves when the code under test sleeps."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> bool:
        self.sleeps.append(seconds)
        self.now += seconds
        return False


class FakeClient:
    """
    Scripted stand-in for SoraClient.

    Each ``*_results`` list is consumed front to back; an Exception entry is
    raised instead of returned. The last status result repeats forever.
    """

    def __init__(self) -> None:
        self.create_results: list = [Job(id="video_123", status="queued")]
        self.status_results: list = [Job(id="video_123", status="completed", progress=100)]
        self.download_results: list = [None]
        self.delete_error: Exception | None = None
        self.videos: list[Job] = []
        self.trace = None

        self.create_calls = 0
        self.status_calls = 0
        self.download_calls = 0
        self.deleted: list[str] = []

    def create_video(self, request: JobRequest) -> Job:
        self.create_calls += 1
        return _take(self.create_results)

    def get_video(self, video_id: str) -> Job:
        self.status_calls += 1
        if len(self.status_results) > 1:
            result = self.status_results.pop(0)
        else:
            result = self.status_results[0]
        if isinstance(result, Exception):
            raise result
        return result

    def download_content(self, video_id: str, output_path) -> Path:
        self.download_calls += 1
        _take(self.download_results)
        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_bytes(b"mp4-bytes")
        return output_path

    def delete_video(self, video_id: str) -> None:
        self.deleted.append(video_id)
        if self.delete_error is not None:
            raise self.delete_error

    def list_videos(self, limit: int = 10) -> list[Job]:
        return self.videos[:limit]


def _take(results: list):
    result = results.pop(0) if len(results) > 1 else results[0]
    if isinstance(result, Exception):
        raise result
    return result


def not_ready() -> ContentNotReadyError:
    return ContentNotReadyError("Video content is not ready yet", status_code=404)


def server_error() -> ApiError:
    return ApiError("upstream exploded", status_code=500)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def fake_client() -> FakeClient:
    return FakeClient()


@pytest.fixture
def job_request() -> JobRequest:
    return JobRequest(prompt="A calico cat surfing at sunset", model="sora-2", seconds=4, size="1280x720")


@pytest.fixture
def store(tmp_path) -> RunStore:
    s = RunStore(tmp_path / "state" / "video-gen.db")
    s.init_db()
    return s
