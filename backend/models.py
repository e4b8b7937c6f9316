"""Pydantic models for the remote video API and the generation request."""

from __future__ import annotations

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

import config
from services.errors import PreconditionError


class JobStatus(str, Enum):
    QUEUED = "queued"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


def parse_size(size: str) -> tuple[int, int]:
    """Parse a ``WIDTHxHEIGHT`` string into integers."""
    parts = size.split("x")
    if len(parts) != 2:
        raise ValueError("size must be in format WIDTHxHEIGHT")
    try:
        return int(parts[0]), int(parts[1])
    except ValueError as e:
        raise ValueError(f"invalid size '{size}': {e}") from e


def normalize_model(name: str) -> str:
    return config.MODEL_ALIASES.get(name, name)


# ---------------------------------------------------------------------------
# Request
# ---------------------------------------------------------------------------
class ReferenceImage(BaseModel):
    """Reference image bytes, already resized to the requested frame size."""

    model_config = ConfigDict(frozen=True)

    filename: str
    content_type: str = "application/octet-stream"
    data: bytes = Field(repr=False)


class JobRequest(BaseModel):
    model_config = ConfigDict(frozen=True)

    prompt: str = Field(max_length=config.MAX_PROMPT_LENGTH)
    model: str = config.DEFAULT_MODEL
    seconds: int = config.DEFAULT_DURATION
    size: str = config.DEFAULT_SIZE
    reference: Optional[ReferenceImage] = None

    @field_validator("prompt")
    @classmethod
    def _prompt_not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("prompt cannot be empty")
        return v

    @field_validator("model")
    @classmethod
    def _known_model(cls, v: str) -> str:
        v = normalize_model(v)
        if v not in config.MODELS:
            raise ValueError(f"unsupported model '{v}'. Supported: {', '.join(config.MODELS)}")
        return v

    @field_validator("seconds", mode="before")
    @classmethod
    def _known_duration(cls, v) -> int:
        try:
            seconds = int(v)
        except (TypeError, ValueError):
            seconds = None
        if seconds not in config.DURATIONS or str(v).strip() != str(seconds):
            supported = ", ".join(f"'{d}'" for d in config.DURATIONS)
            raise ValueError(f"invalid duration '{v}'. Supported values are: {supported}")
        return seconds

    @field_validator("size")
    @classmethod
    def _known_size(cls, v: str) -> str:
        if v not in config.SIZES:
            raise ValueError(f"invalid size '{v}'. Supported values are: {', '.join(config.SIZES)}")
        return v

    @property
    def dimensions(self) -> tuple[int, int]:
        return parse_size(self.size)

    @classmethod
    def build(cls, **fields) -> "JobRequest":
        """Validate fields into a request, raising PreconditionError on bad input."""
        try:
            return cls(**fields)
        except ValidationError as e:
            messages = "; ".join(_describe(err) for err in e.errors())
            raise PreconditionError(messages, stage="precondition") from e


def _describe(err: dict) -> str:
    loc = ".".join(str(part) for part in err.get("loc", ()))
    msg = err.get("msg", "invalid value").removeprefix("Value error, ")
    return f"{loc}: {msg}" if loc else msg


# ---------------------------------------------------------------------------
# Remote job
# ---------------------------------------------------------------------------
class JobError(BaseModel):
    message: str = ""
    type: Optional[str] = None
    code: Optional[str] = None


class Job(BaseModel):
    """A remote video job as reported by the service."""

    model_config = ConfigDict(extra="ignore")

    id: str
    status: str = JobStatus.QUEUED.value
    progress: int = 0
    error: Optional[JobError] = None
    created_at: Optional[int] = None
    completed_at: Optional[int] = None
    expires_at: Optional[int] = None
    model: Optional[str] = None
    seconds: Optional[str] = None
    size: Optional[str] = None

    @field_validator("progress", mode="before")
    @classmethod
    def _progress_default(cls, v) -> int:
        return 0 if v is None else int(v)

    @field_validator("seconds", mode="before")
    @classmethod
    def _seconds_as_text(cls, v) -> Optional[str]:
        return None if v is None else str(v)

    @property
    def is_completed(self) -> bool:
        return self.status == JobStatus.COMPLETED.value

    @property
    def is_failed(self) -> bool:
        return self.status == JobStatus.FAILED.value


class VideoList(BaseModel):
    model_config = ConfigDict(extra="ignore")

    data: list[Job] = Field(default_factory=list)
    object: Optional[str] = None


# ---------------------------------------------------------------------------
# Session API schemas
# ---------------------------------------------------------------------------
class SessionRequest(BaseModel):
    prompt: str
    model: Optional[str] = None
    seconds: Optional[int] = None
    size: Optional[str] = None
    reference_path: Optional[str] = None
    output_dir: Optional[str] = None
    debug: bool = False


class SessionResponse(BaseModel):
    run_id: str
    stage: str
    job_id: Optional[str] = None
    status: str = ""
    progress: int = 0
    attempt: int = 0
    elapsed_seconds: int = 0
    output_path: Optional[str] = None
    error: Optional[str] = None
    error_kind: Optional[str] = None
    warnings: list[str] = Field(default_factory=list)


class TraceResponse(BaseModel):
    direction: str
    method: str
    url: str
    status_code: Optional[int] = None
    body: Any = None
    recorded_at: str


class PurgeResponse(BaseModel):
    deleted: int
    warnings: list[str] = Field(default_factory=list)
