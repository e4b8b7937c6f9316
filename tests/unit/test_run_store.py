from __future__ import annotations

from pathlib import Path

import pytest

import config
from models import Job
from services import launch
from services.errors import PreconditionError
from services.workflow import Snapshot, Stage


def test_run_lifecycle_is_recorded(store, job_request) -> None:
    run_id = store.create_run(job_request)
    assert store.get_run(run_id)["stage"] == "idle"

    snapshot = Snapshot(
        stage=Stage.COMPLETED,
        request=job_request,
        job=Job(id="video_9", status="completed", progress=100),
        output_path=Path("/tmp/sora_video.mp4"),
        warnings=("failed to delete video from service: boom",),
    )
    store.record_snapshot(run_id, snapshot)

    row = store.get_run(run_id)
    assert row["video_id"] == "video_9"
    assert row["stage"] == "completed"
    assert row["progress"] == 100
    assert row["output_path"] == "/tmp/sora_video.mp4"
    assert row["warnings"].startswith("failed to delete")
    assert [r["id"] for r in store.list_runs()] == [run_id]


def test_recorder_skips_unchanged_snapshots(store, job_request, monkeypatch) -> None:
    run_id = store.create_run(job_request)
    writes = []
    monkeypatch.setattr(store, "record_snapshot", lambda rid, s: writes.append(s.stage))

    observe = store.recorder(run_id)
    polling = Snapshot(stage=Stage.POLLING, job=Job(id="v", status="queued"))
    observe(polling)
    observe(Snapshot(stage=Stage.POLLING, job=Job(id="v", status="queued"), elapsed=12.0))
    observe(Snapshot(stage=Stage.POLLING, job=Job(id="v", status="in_progress", progress=10)))

    assert writes == [Stage.POLLING, Stage.POLLING]


def test_settings_round_trip(store, job_request, tmp_path) -> None:
    assert store.get_setting("model", "fallback") == "fallback"
    store.remember(job_request, tmp_path)
    store.set_setting("size", "720x1280")

    settings = store.settings()
    assert settings["last_prompt"] == job_request.prompt
    assert settings["duration"] == "4"
    assert settings["size"] == "720x1280"
    assert settings["output_dir"] == str(tmp_path)


def test_options_override_stored_preferences(store) -> None:
    store.set_setting("model", "sora-2-pro")
    store.set_setting("duration", "12")
    store.set_setting("size", "1024x1792")

    stored = launch.build_request(store, prompt="a lighthouse")
    assert (stored.model, stored.seconds, stored.size) == ("sora-2-pro", 12, "1024x1792")

    explicit = launch.build_request(store, prompt="a lighthouse", model="sora", duration="8", size="1280x720")
    assert (explicit.model, explicit.seconds, explicit.size) == ("sora-2", 8, "1280x720")


def test_defaults_apply_without_preferences(store) -> None:
    request = launch.build_request(store, prompt="a lighthouse")
    assert (request.model, request.seconds, request.size) == (
        config.DEFAULT_MODEL, config.DEFAULT_DURATION, config.DEFAULT_SIZE,
    )


def test_invalid_duration_fails_before_any_client_exists(store, fake_client) -> None:
    with pytest.raises(PreconditionError):
        launch.build_request(store, prompt="a lighthouse", duration="5")
    assert fake_client.create_calls == 0


def test_api_key_resolution(store, monkeypatch) -> None:
    monkeypatch.setattr(config, "OPENAI_API_KEY", "")
    with pytest.raises(PreconditionError, match="API key not found"):
        launch.resolve_api_key(store)

    store.set_setting("openai_api_key", "sk-stored")
    assert launch.resolve_api_key(store) == "sk-stored"

    monkeypatch.setattr(config, "OPENAI_API_KEY", "sk-env")
    assert launch.resolve_api_key(store) == "sk-env"


def test_output_dir_resolution(store, tmp_path, monkeypatch) -> None:
    monkeypatch.setattr(config, "DEFAULT_OUTPUT_DIR", tmp_path / "default")
    assert launch.resolve_output_dir(store, None) == tmp_path / "default"
    store.set_setting("output_dir", str(tmp_path / "stored"))
    assert launch.resolve_output_dir(store, None) == tmp_path / "stored"
    assert launch.resolve_output_dir(store, str(tmp_path / "flag")) == tmp_path / "flag"
