"""Operation executor and the blocking batch driver."""

from __future__ import annotations

import logging
import threading
import time
from pathlib import Path
from typing import Callable, Optional

from models import JobRequest
from services import retrieval, submission
from services.cleanup import cleanup_job
from services.sora_client import SoraClient
from services.workflow import (
    Cancel,
    CleanedUp,
    CleanupOp,
    Downloaded,
    DownloadFailed,
    DownloadOp,
    Event,
    PendingOperation,
    PollFailed,
    Polled,
    PollOp,
    Snapshot,
    Stage,
    Start,
    SubmitFailed,
    Submitted,
    SubmitOp,
    advance,
    survives_cancel,
)

logger = logging.getLogger("vgen.runner")

Clock = Callable[[], float]
Observer = Callable[[Snapshot], None]


def perform(op: PendingOperation, snapshot: Snapshot, client: SoraClient, clock: Clock) -> Event:
    """Run exactly one operation (blocking) and report its completion event."""
    if isinstance(op, SubmitOp):
        try:
            job = submission.send_submission(client, snapshot.request)
        except Exception as e:
            return SubmitFailed(error=e, now=clock())
        return Submitted(job=job, now=clock())

    if isinstance(op, PollOp):
        try:
            job = client.get_video(snapshot.job_id)
        except Exception as e:
            return PollFailed(error=e, now=clock())
        return Polled(job=job, now=clock())

    if isinstance(op, DownloadOp):
        try:
            path = retrieval.send_download(client, snapshot.job_id, snapshot.output_path)
        except Exception as e:
            return DownloadFailed(error=e, now=clock())
        return Downloaded(path=path, now=clock())

    if isinstance(op, CleanupOp):
        return CleanedUp(warning=cleanup_job(client, snapshot.job_id), now=clock())

    raise TypeError(f"unknown operation: {op!r}")


class BatchRunner:
    """
    Drive one workflow to completion on the calling thread.

    Waits between attempts block on ``cancel_event`` so an abort from
    another thread (or a signal handler) stops the loop promptly.
    """

    def __init__(
        self,
        client: SoraClient,
        *,
        on_change: Optional[Observer] = None,
        cancel_event: Optional[threading.Event] = None,
        clock: Clock = time.monotonic,
        sleep: Optional[Callable[[float], object]] = None,
    ) -> None:
        self.client = client
        self.on_change = on_change
        self.cancel_event = cancel_event or threading.Event()
        self.clock = clock
        self._sleep = sleep or self.cancel_event.wait

    def cancel(self) -> None:
        self.cancel_event.set()

    def run(self, request: JobRequest, output_path: str | Path) -> Snapshot:
        """Run submit → poll → retrieve → cleanup. Raises the WorkflowError on failure."""
        snapshot, ops = self._apply(Snapshot(), Start(request=request, output_path=Path(output_path), now=self.clock()))

        while ops:
            op = ops[0]
            if op.delay > 0:
                self._sleep(op.delay)
            if self.cancel_event.is_set() and snapshot.stage is not Stage.CLEANING_UP:
                snapshot, ops = self._apply(snapshot, Cancel(now=self.clock()))
                break
            event = perform(op, snapshot, self.client, self.clock)
            if self.cancel_event.is_set() and not survives_cancel(event):
                event = Cancel(now=self.clock())
            snapshot, ops = self._apply(snapshot, event)

        if snapshot.error is not None:
            raise snapshot.error
        return snapshot

    def _apply(self, snapshot: Snapshot, event: Event):
        snapshot, ops = advance(snapshot, event)
        if self.on_change:
            self.on_change(snapshot)
        return snapshot, ops
