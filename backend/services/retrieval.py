"""Artifact retrieval – download with a fixed-interval retry on "not ready"."""

from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path
from typing import Optional

import config
from services.errors import ClientRequestError, ContentUnavailableError, WorkflowError
from services.retry import FailureKind, RetryDecision, classify, fixed_backoff
from services.sora_client import SoraClient

logger = logging.getLogger("vgen.retrieval")

STAGE = "downloading"
FILENAME_TEMPLATE = "sora_video_{timestamp}.mp4"


def build_output_path(output_dir: str | Path, now: Optional[datetime] = None) -> Path:
    """Timestamped artifact path inside ``output_dir``."""
    now = now or datetime.now()
    return Path(output_dir).expanduser() / FILENAME_TEMPLATE.format(
        timestamp=now.strftime("%Y%m%d_%H%M%S"),
    )


def send_download(client: SoraClient, video_id: str, output_path: str | Path) -> Path:
    """Perform a single download attempt."""
    return client.download_content(video_id, output_path)


def after_download_failure(exc: Exception, attempts: int) -> RetryDecision:
    """
    Decide what follows a failed download attempt.

    Only the transient "not ready" signal is retried; any other failure ends
    the workflow with the original cause.
    """
    kind = classify(exc)
    if kind is not FailureKind.RETRYABLE_TRANSIENT:
        return RetryDecision(kind=kind, error=_terminal(exc, kind, attempts))

    if attempts >= config.DOWNLOAD_MAX_ATTEMPTS:
        window = config.DOWNLOAD_MAX_ATTEMPTS * config.DOWNLOAD_RETRY_INTERVAL // 60
        return RetryDecision(
            kind=kind,
            error=ContentUnavailableError(
                f"video content not available after {attempts} attempts ({window} minutes): {exc}",
                stage=STAGE,
                attempts=attempts,
            ),
        )

    delay = fixed_backoff(attempts)
    logger.info(
        "Content not ready (attempt %d/%d), retrying in %.0fs",
        attempts, config.DOWNLOAD_MAX_ATTEMPTS, delay,
    )
    return RetryDecision(kind=kind, delay=delay)


def _terminal(exc: Exception, kind: FailureKind, attempts: int) -> WorkflowError:
    message = f"failed to download video: {exc}"
    if kind is FailureKind.TERMINAL_CLIENT:
        return ClientRequestError(
            message, status_code=getattr(exc, "status_code", None), stage=STAGE, attempts=attempts,
        )
    return WorkflowError(message, stage=STAGE, attempts=attempts)
