"""Run store – SQLite-backed run history and saved preferences."""

from __future__ import annotations

import logging
import sqlite3
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Optional

from models import JobRequest
from services.workflow import Snapshot

logger = logging.getLogger("vgen.run_store")

PREFERENCE_KEYS = ("openai_api_key", "output_dir", "model", "duration", "size", "last_prompt")


class RunStore:
    """Thread-safe run records and key/value settings backed by SQLite."""

    def __init__(self, db_path: Path) -> None:
        self.db_path = Path(db_path)

    # ------------------------------------------------------------------
    # DB helpers
    # ------------------------------------------------------------------
    @contextmanager
    def _connect(self):
        conn = sqlite3.connect(self.db_path, timeout=10)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL;")
        try:
            yield conn
            conn.commit()
        finally:
            conn.close()

    def init_db(self) -> None:
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        with self._connect() as conn:
            conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS runs (
                    id          TEXT PRIMARY KEY,
                    video_id    TEXT,
                    stage       TEXT NOT NULL DEFAULT 'idle',
                    status      TEXT NOT NULL DEFAULT '',
                    progress    INTEGER NOT NULL DEFAULT 0,
                    attempt     INTEGER NOT NULL DEFAULT 0,
                    prompt      TEXT NOT NULL,
                    model       TEXT NOT NULL,
                    seconds     INTEGER NOT NULL,
                    size        TEXT NOT NULL,
                    output_path TEXT,
                    error       TEXT,
                    warnings    TEXT NOT NULL DEFAULT '',
                    created_at  TEXT NOT NULL,
                    updated_at  TEXT NOT NULL
                );
                CREATE TABLE IF NOT EXISTS settings (
                    key   TEXT PRIMARY KEY,
                    value TEXT NOT NULL
                );
                """
            )
        logger.info("Database initialised at %s", self.db_path)

    def _now(self) -> str:
        return datetime.now(timezone.utc).isoformat()

    # ------------------------------------------------------------------
    # Runs
    # ------------------------------------------------------------------
    def create_run(self, request: JobRequest) -> str:
        run_id = uuid.uuid4().hex[:12]
        now = self._now()
        with self._connect() as conn:
            conn.execute(
                "INSERT INTO runs (id, prompt, model, seconds, size, created_at, updated_at) "
                "VALUES (?, ?, ?, ?, ?, ?, ?)",
                (run_id, request.prompt, request.model, request.seconds, request.size, now, now),
            )
        logger.info("Run created: %s", run_id)
        return run_id

    def record_snapshot(self, run_id: str, snapshot: Snapshot) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                UPDATE runs
                   SET video_id = ?, stage = ?, status = ?, progress = ?, attempt = ?,
                       output_path = ?, error = ?, warnings = ?, updated_at = ?
                 WHERE id = ?
                """,
                (
                    snapshot.job_id,
                    snapshot.stage.value,
                    snapshot.status,
                    snapshot.progress,
                    snapshot.attempt,
                    str(snapshot.output_path) if snapshot.output_path else None,
                    str(snapshot.error) if snapshot.error else None,
                    "\n".join(snapshot.warnings),
                    self._now(),
                    run_id,
                ),
            )

    def recorder(self, run_id: str) -> Callable[[Snapshot], None]:
        """Observer that persists a snapshot only when something visible changed."""
        last: dict[str, tuple] = {}

        def _observe(snapshot: Snapshot) -> None:
            key = (snapshot.stage, snapshot.status, snapshot.progress, snapshot.attempt, snapshot.warnings)
            if last.get("key") == key:
                return
            last["key"] = key
            self.record_snapshot(run_id, snapshot)

        return _observe

    def get_run(self, run_id: str) -> Optional[dict]:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM runs WHERE id = ?", (run_id,)).fetchone()
        return dict(row) if row else None

    def list_runs(self, limit: int = 20) -> list[dict]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM runs ORDER BY created_at DESC LIMIT ?", (limit,)
            ).fetchall()
        return [dict(r) for r in rows]

    # ------------------------------------------------------------------
    # Settings
    # ------------------------------------------------------------------
    def get_setting(self, key: str, default: Optional[str] = None) -> Optional[str]:
        with self._connect() as conn:
            row = conn.execute("SELECT value FROM settings WHERE key = ?", (key,)).fetchone()
        return row["value"] if row else default

    def set_setting(self, key: str, value: str) -> None:
        with self._connect() as conn:
            conn.execute(
                "INSERT INTO settings (key, value) VALUES (?, ?) "
                "ON CONFLICT(key) DO UPDATE SET value = excluded.value",
                (key, value),
            )

    def settings(self) -> dict[str, str]:
        with self._connect() as conn:
            rows = conn.execute("SELECT key, value FROM settings ORDER BY key").fetchall()
        return {r["key"]: r["value"] for r in rows}

    def remember(self, request: JobRequest, output_dir: str | Path) -> None:
        """Store the request parameters as defaults for the next run."""
        for key, value in (
            ("last_prompt", request.prompt),
            ("model", request.model),
            ("duration", str(request.seconds)),
            ("size", request.size),
            ("output_dir", str(output_dir)),
        ):
            self.set_setting(key, value)
