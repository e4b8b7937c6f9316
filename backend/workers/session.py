"""Interactive session – event-driven driver with background operations."""

from __future__ import annotations

import logging
import queue
import threading
import time
from pathlib import Path
from typing import Callable, Optional

import config
from models import JobRequest
from services.sora_client import SoraClient
from services.workflow import (
    Cancel,
    CleanupOp,
    DownloadOp,
    Event,
    PendingOperation,
    Snapshot,
    Start,
    Tick,
    advance,
    survives_cancel,
)
from workers.runner import perform

logger = logging.getLogger("vgen.session")


class InteractiveSession:
    """
    Single workflow driven one event at a time.

    A dispatcher thread owns the snapshot. It takes one event off the queue,
    applies it, publishes the new snapshot and hands any resulting operation
    to a background thread, which posts exactly one completion event back.
    A ticker posts a Tick every second so elapsed time keeps moving while an
    operation is outstanding. The dispatcher itself never blocks on the
    network, so cancel() is always picked up on the next re-entry.

    A cancel that lands while a download is being written waits for that
    attempt's result: a confirmed file still gets cleaned up.
    """

    def __init__(
        self,
        client: SoraClient,
        request: JobRequest,
        output_path: str | Path,
        *,
        on_change: Optional[Callable[[Snapshot], None]] = None,
        clock: Callable[[], float] = time.monotonic,
        tick_interval: float = config.TICK_INTERVAL,
    ) -> None:
        self.client = client
        self.request = request
        self.output_path = Path(output_path)
        self.on_change = on_change
        self.clock = clock
        self.tick_interval = tick_interval

        self._events: queue.Queue[Event] = queue.Queue()
        self._cancel_event = threading.Event()
        self._done_event = threading.Event()
        self._lock = threading.Lock()
        self._snapshot = Snapshot()
        self._performing: Optional[PendingOperation] = None

        self._dispatcher: Optional[threading.Thread] = None
        self._ticker: Optional[threading.Thread] = None
        self._worker: Optional[threading.Thread] = None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    @property
    def snapshot(self) -> Snapshot:
        with self._lock:
            return self._snapshot

    @property
    def done(self) -> bool:
        return self._done_event.is_set()

    def start(self) -> None:
        self._dispatcher = self._spawn(self._dispatch, "session-dispatcher")
        self._ticker = self._spawn(self._tick, "session-ticker")
        self._events.put(Start(request=self.request, output_path=self.output_path, now=self.clock()))

    def cancel(self) -> None:
        with self._lock:
            self._cancel_event.set()
        self._events.put(Cancel(now=self.clock()))

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until the workflow reaches a terminal stage; False on timeout."""
        return self._done_event.wait(timeout=timeout)

    def join(self, timeout: Optional[float] = None) -> None:
        """Wait for the session's threads to exit once the workflow is done."""
        for thread in (self._dispatcher, self._ticker, self._worker):
            if thread is not None:
                thread.join(timeout=timeout)

    # ------------------------------------------------------------------
    # Threads
    # ------------------------------------------------------------------
    def _spawn(self, target, name: str, *args) -> threading.Thread:
        thread = threading.Thread(target=target, args=args, daemon=True, name=name)
        thread.start()
        return thread

    def _dispatch(self) -> None:
        logger.info("Session dispatcher started")
        while not self._done_event.is_set():
            event = self._events.get()
            downloading = self._settle(event)
            if self._cancel_event.is_set() and not survives_cancel(event):
                if downloading:
                    continue
                event = Cancel(now=self.clock())

            with self._lock:
                snapshot, ops = advance(self._snapshot, event)
                self._snapshot = snapshot

            if self.on_change:
                try:
                    self.on_change(snapshot)
                except Exception as e:
                    logger.error("Session observer error: %s", e, exc_info=True)

            for op in ops:
                self._run_worker(op, snapshot)

            if snapshot.done:
                self._done_event.set()
        logger.info("Session finished: %s", self.snapshot.stage.value)

    def _settle(self, event: Event) -> bool:
        """Note a completion event; True while a download attempt is still running."""
        with self._lock:
            if not isinstance(event, (Tick, Cancel)):
                self._performing = None
            return isinstance(self._performing, DownloadOp)

    def _run_worker(self, op: PendingOperation, snapshot: Snapshot) -> None:
        # At most one operation is outstanding; the previous worker has
        # already posted its event.
        if self._worker is not None:
            self._worker.join()
        self._worker = self._spawn(self._execute, f"session-{type(op).__name__}", op, snapshot)

    def _execute(self, op: PendingOperation, snapshot: Snapshot) -> None:
        cleanup = isinstance(op, CleanupOp)
        if op.delay > 0 and self._cancel_event.wait(timeout=op.delay) and not cleanup:
            return
        with self._lock:
            if self._cancel_event.is_set() and not cleanup:
                return
            self._performing = op
        self._events.put(perform(op, snapshot, self.client, self.clock))

    def _tick(self) -> None:
        while not self._done_event.wait(timeout=self.tick_interval):
            self._events.put(Tick(now=self.clock()))
