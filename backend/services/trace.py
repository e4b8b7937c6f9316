"""Diagnostic trace of raw API traffic – a capped ring of recent records."""

from __future__ import annotations

import json
import threading
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Optional

import config


@dataclass(frozen=True)
class TraceEntry:
    direction: str  # "request" | "response"
    method: str
    url: str
    status_code: Optional[int] = None
    body: Any = None
    recorded_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    def render(self) -> str:
        """Human-readable form used by debug output."""
        if self.direction == "request":
            header = f"REQUEST: {self.method} {self.url}"
        else:
            status = self.status_code if self.status_code is not None else "no response"
            header = f"RESPONSE [{status}]: {self.method} {self.url}"
        if self.body is None:
            return header
        if isinstance(self.body, (dict, list)):
            return f"{header}\n{json.dumps(self.body, indent=2)}"
        return f"{header}\n{self.body}"


class TraceSink:
    """Thread-safe bounded append-only buffer; the oldest entry is dropped first."""

    def __init__(
        self,
        capacity: int = config.TRACE_CAPACITY,
        listener: Optional[Callable[[TraceEntry], None]] = None,
    ) -> None:
        self._entries: deque[TraceEntry] = deque(maxlen=capacity)
        self._lock = threading.Lock()
        self._listener = listener

    @property
    def capacity(self) -> int:
        return self._entries.maxlen or 0

    def append(self, entry: TraceEntry) -> None:
        with self._lock:
            self._entries.append(entry)
        if self._listener:
            self._listener(entry)

    def entries(self) -> list[TraceEntry]:
        with self._lock:
            return list(self._entries)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
