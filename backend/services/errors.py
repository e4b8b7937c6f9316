"""Error types raised by the remote client and the generation workflow."""

from __future__ import annotations

from typing import Optional


# ---------------------------------------------------------------------------
# Wire-level errors (raised by SoraClient)
# ---------------------------------------------------------------------------
class ApiError(Exception):
    """A remote call failed; ``status_code`` is None for transport failures."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        error_type: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.error_type = error_type

    def __str__(self) -> str:
        if self.status_code is None:
            return self.message
        if self.error_type:
            return f"API error ({self.status_code} - {self.error_type}): {self.message}"
        return f"API error ({self.status_code}): {self.message}"


class TransportError(ApiError):
    """Connection, timeout or unreadable-response failure."""


class ContentNotReadyError(ApiError):
    """The content endpoint has no artifact yet for a completed job."""


# ---------------------------------------------------------------------------
# Workflow errors (reported to the front ends)
# ---------------------------------------------------------------------------
class WorkflowError(Exception):
    """Fatal workflow failure, annotated with the stage and attempt count."""

    kind = "workflow"

    def __init__(self, message: str, *, stage: str = "", attempts: int = 0) -> None:
        super().__init__(message)
        self.message = message
        self.stage = stage
        self.attempts = attempts


class PreconditionError(WorkflowError, ValueError):
    """Invalid request parameters; raised before any remote call."""

    kind = "precondition"


class ClientRequestError(WorkflowError):
    """The remote service rejected the request; never retried."""

    kind = "terminal-client"

    def __init__(self, message: str, *, status_code: Optional[int] = None, **kwargs) -> None:
        super().__init__(message, **kwargs)
        self.status_code = status_code


class RetriesExhaustedError(WorkflowError):
    """Server-side failures persisted through every submission attempt."""

    kind = "retryable-server"


class ContentUnavailableError(WorkflowError):
    """The artifact never materialised within the download retry window."""

    kind = "retryable-transient"


class RemoteJobFailedError(WorkflowError):
    """The job itself reported ``failed``."""

    kind = "remote-reported-failure"


class PollTimeoutError(WorkflowError):
    """Polling hit its attempt ceiling without a terminal status."""

    kind = "timeout"


class WorkflowCancelled(WorkflowError):
    """The caller aborted the workflow."""

    kind = "cancelled"
