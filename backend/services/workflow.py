"""
Generation workflow as a pure state-transition function.

``advance(snapshot, event)`` returns the next snapshot plus the operations
the driver must perform next (at most one). Both drive modes use it: the
batch runner calls it in a tight loop, the interactive session calls it once
per event taken off its queue. Neither does any I/O here.

    idle ─Start─▶ submitting ─Submitted─▶ polling ─Polled(completed)─▶
    downloading ─Downloaded─▶ cleaning_up ─CleanedUp─▶ completed

Any stage can end in ``failed``. A Cancel event ends it in ``cancelled``,
except during cleanup: the artifact is already on disk, so the remote job is
still deleted and the run completes.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import Path
from typing import Optional

from models import Job, JobRequest
from services import poller, retrieval, submission
from services.errors import WorkflowCancelled, WorkflowError
from services.poller import PollOutcome
from services.retry import RetryState

logger = logging.getLogger("vgen.workflow")


class Stage(str, Enum):
    IDLE = "idle"
    SUBMITTING = "submitting"
    POLLING = "polling"
    DOWNLOADING = "downloading"
    CLEANING_UP = "cleaning_up"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


TERMINAL_STAGES = frozenset({Stage.COMPLETED, Stage.FAILED, Stage.CANCELLED})


# ---------------------------------------------------------------------------
# Snapshot
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class Snapshot:
    """Everything needed to resume the workflow after one event."""

    stage: Stage = Stage.IDLE
    request: Optional[JobRequest] = None
    output_path: Optional[Path] = None
    job: Optional[Job] = None
    retry: RetryState = field(default_factory=RetryState)
    poll_attempt: int = 0
    started_at: Optional[float] = None
    stage_started_at: Optional[float] = None
    elapsed: float = 0.0
    error: Optional[WorkflowError] = None
    warnings: tuple[str, ...] = ()

    @property
    def done(self) -> bool:
        return self.stage in TERMINAL_STAGES

    @property
    def succeeded(self) -> bool:
        return self.stage is Stage.COMPLETED

    @property
    def job_id(self) -> Optional[str]:
        return self.job.id if self.job else None

    @property
    def status(self) -> str:
        return self.job.status if self.job else ""

    @property
    def progress(self) -> int:
        return self.job.progress if self.job else 0

    @property
    def attempt(self) -> int:
        """Attempt index of the current stage, for display."""
        if self.stage is Stage.POLLING:
            return self.poll_attempt
        return self.retry.attempt

    @property
    def elapsed_seconds(self) -> int:
        return int(self.elapsed)


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class Event:
    now: float = field(default=0.0, kw_only=True)


@dataclass(frozen=True)
class Start(Event):
    request: JobRequest
    output_path: Path


@dataclass(frozen=True)
class Tick(Event):
    pass


@dataclass(frozen=True)
class Cancel(Event):
    pass


@dataclass(frozen=True)
class Submitted(Event):
    job: Job


@dataclass(frozen=True)
class SubmitFailed(Event):
    error: Exception


@dataclass(frozen=True)
class Polled(Event):
    job: Job


@dataclass(frozen=True)
class PollFailed(Event):
    error: Exception


@dataclass(frozen=True)
class Downloaded(Event):
    path: Path


@dataclass(frozen=True)
class DownloadFailed(Event):
    error: Exception


@dataclass(frozen=True)
class CleanedUp(Event):
    warning: Optional[str] = None


def survives_cancel(event: Event) -> bool:
    """True for results that confirm the artifact on disk; a pending cancel must not drop them."""
    return isinstance(event, (Downloaded, CleanedUp))


# ---------------------------------------------------------------------------
# Pending operations
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class PendingOperation:
    delay: float = field(default=0.0, kw_only=True)


@dataclass(frozen=True)
class SubmitOp(PendingOperation):
    attempt: int


@dataclass(frozen=True)
class PollOp(PendingOperation):
    attempt: int


@dataclass(frozen=True)
class DownloadOp(PendingOperation):
    attempt: int


@dataclass(frozen=True)
class CleanupOp(PendingOperation):
    pass


Transition = tuple[Snapshot, list[PendingOperation]]


# ---------------------------------------------------------------------------
# Transition function
# ---------------------------------------------------------------------------
def advance(snapshot: Snapshot, event: Event) -> Transition:
    """Apply one event to the workflow."""
    if snapshot.done:
        return snapshot, []

    snapshot = _clock(snapshot, event.now)

    if isinstance(event, Tick):
        return snapshot, []
    if isinstance(event, Cancel):
        if snapshot.stage is Stage.CLEANING_UP:
            return snapshot, []
        return _cancel(snapshot)

    handler = _HANDLERS.get((snapshot.stage, type(event)))
    if handler is None:
        logger.debug("Ignoring %s in stage %s", type(event).__name__, snapshot.stage.value)
        return snapshot, []
    return handler(snapshot, event)


def _clock(snapshot: Snapshot, now: float) -> Snapshot:
    if snapshot.started_at is None:
        return snapshot
    stage_elapsed = now - (snapshot.stage_started_at or snapshot.started_at)
    return replace(
        snapshot,
        elapsed=max(snapshot.elapsed, now - snapshot.started_at),
        retry=replace(snapshot.retry, elapsed=max(snapshot.retry.elapsed, stage_elapsed)),
    )


def _enter(snapshot: Snapshot, stage: Stage, now: float, **changes) -> Snapshot:
    logger.info("Workflow stage: %s -> %s", snapshot.stage.value, stage.value)
    return replace(
        snapshot, stage=stage, stage_started_at=now, retry=RetryState(), **changes,
    )


def _fail(snapshot: Snapshot, error: WorkflowError) -> Transition:
    logger.error("Workflow failed in %s: %s", error.stage or snapshot.stage.value, error)
    return replace(snapshot, stage=Stage.FAILED, error=error), []


def _cancel(snapshot: Snapshot) -> Transition:
    logger.info("Workflow cancelled during %s", snapshot.stage.value)
    error = WorkflowCancelled(
        "cancelled by user", stage=snapshot.stage.value, attempts=snapshot.attempt,
    )
    return replace(snapshot, stage=Stage.CANCELLED, error=error), []


def _failed_attempt(snapshot: Snapshot, decision, exc: Exception) -> Snapshot:
    return replace(
        snapshot,
        retry=replace(
            snapshot.retry,
            attempt=snapshot.retry.attempt + 1,
            last_failure=decision.kind,
            last_error=str(exc),
        ),
    )


def _on_start(snapshot: Snapshot, event: Start) -> Transition:
    snapshot = replace(
        snapshot,
        request=event.request,
        output_path=event.output_path,
        started_at=event.now,
        elapsed=0.0,
    )
    snapshot = _enter(snapshot, Stage.SUBMITTING, event.now)
    return snapshot, [SubmitOp(attempt=1)]


def _on_submitted(snapshot: Snapshot, event: Submitted) -> Transition:
    snapshot = _enter(snapshot, Stage.POLLING, event.now, job=event.job, poll_attempt=0)
    return snapshot, [PollOp(attempt=1, delay=poller.next_poll_delay(1, 0.0, 0))]


def _on_submit_failed(snapshot: Snapshot, event: SubmitFailed) -> Transition:
    attempts = snapshot.retry.attempt + 1
    decision = submission.after_submission_failure(event.error, attempts, snapshot.request)
    snapshot = _failed_attempt(snapshot, decision, event.error)
    if not decision.retry:
        return _fail(snapshot, decision.error)
    return snapshot, [SubmitOp(attempt=attempts + 1, delay=decision.delay)]


def _on_polled(snapshot: Snapshot, event: Polled) -> Transition:
    attempt = snapshot.poll_attempt + 1
    elapsed = snapshot.retry.elapsed
    snapshot = replace(
        snapshot,
        job=event.job,
        poll_attempt=attempt,
        retry=replace(snapshot.retry, attempt=attempt),
    )
    logger.info(
        "[%ds] Status: %s (%d%%) (attempt %d)",
        int(elapsed), event.job.status, event.job.progress, attempt,
    )
    try:
        outcome = poller.interpret_status(event.job, attempt, elapsed)
    except WorkflowError as e:
        return _fail(snapshot, e)

    if outcome is PollOutcome.SUCCEEDED:
        return _enter(snapshot, Stage.DOWNLOADING, event.now), [DownloadOp(attempt=1)]

    delay = poller.next_poll_delay(attempt + 1, elapsed, event.job.progress)
    return snapshot, [PollOp(attempt=attempt + 1, delay=delay)]


def _on_poll_failed(snapshot: Snapshot, event: PollFailed) -> Transition:
    attempt = snapshot.poll_attempt + 1
    return _fail(snapshot, WorkflowError(
        f"failed to get video status: {event.error}", stage=Stage.POLLING.value, attempts=attempt,
    ))


def _on_downloaded(snapshot: Snapshot, event: Downloaded) -> Transition:
    snapshot = _enter(snapshot, Stage.CLEANING_UP, event.now, output_path=Path(event.path))
    return snapshot, [CleanupOp()]


def _on_download_failed(snapshot: Snapshot, event: DownloadFailed) -> Transition:
    attempts = snapshot.retry.attempt + 1
    decision = retrieval.after_download_failure(event.error, attempts)
    snapshot = _failed_attempt(snapshot, decision, event.error)
    if not decision.retry:
        return _fail(snapshot, decision.error)
    return snapshot, [DownloadOp(attempt=attempts + 1, delay=decision.delay)]


def _on_cleaned_up(snapshot: Snapshot, event: CleanedUp) -> Transition:
    warnings = snapshot.warnings + ((event.warning,) if event.warning else ())
    return _enter(snapshot, Stage.COMPLETED, event.now, warnings=warnings), []


_HANDLERS = {
    (Stage.IDLE, Start): _on_start,
    (Stage.SUBMITTING, Submitted): _on_submitted,
    (Stage.SUBMITTING, SubmitFailed): _on_submit_failed,
    (Stage.POLLING, Polled): _on_polled,
    (Stage.POLLING, PollFailed): _on_poll_failed,
    (Stage.DOWNLOADING, Downloaded): _on_downloaded,
    (Stage.DOWNLOADING, DownloadFailed): _on_download_failed,
    (Stage.CLEANING_UP, CleanedUp): _on_cleaned_up,
}
