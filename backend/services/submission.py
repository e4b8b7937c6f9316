"""Job submission – one create call per attempt, exponential backoff between attempts."""

from __future__ import annotations

import logging

import config
from models import Job, JobRequest
from services.errors import ClientRequestError, RetriesExhaustedError
from services.retry import FailureKind, RetryDecision, classify, exponential_backoff
from services.sora_client import SoraClient

logger = logging.getLogger("vgen.submission")

STAGE = "submitting"
SIZE_MISMATCH_MARKER = "must match the requested width and height"


def send_submission(client: SoraClient, request: JobRequest) -> Job:
    """Perform a single submission attempt."""
    job = client.create_video(request)
    logger.info("Video job created: %s (status=%s)", job.id, job.status)
    return job


def with_hint(message: str, request: JobRequest) -> str:
    """Append a resize hint when the service rejects the reference image dimensions."""
    if SIZE_MISMATCH_MARKER not in message:
        return message
    return (
        f"{message}\n\nHint: Your reference image must be exactly {request.size} pixels "
        "to match the requested video size.\n"
        "Please resize your image or choose a different video size that matches your image dimensions."
    )


def after_submission_failure(exc: Exception, attempts: int, request: JobRequest) -> RetryDecision:
    """
    Decide what follows a failed submission.

    ``attempts`` counts the attempts made so far, including the failed one.
    """
    kind = classify(exc)
    if kind is FailureKind.TERMINAL_CLIENT:
        message = with_hint(getattr(exc, "message", str(exc)), request)
        return RetryDecision(
            kind=kind,
            error=ClientRequestError(
                message,
                status_code=getattr(exc, "status_code", None),
                stage=STAGE,
                attempts=attempts,
            ),
        )

    if attempts >= config.SUBMIT_MAX_ATTEMPTS:
        return RetryDecision(
            kind=kind,
            error=RetriesExhaustedError(
                f"failed after {attempts} attempts: {exc}", stage=STAGE, attempts=attempts,
            ),
        )

    delay = exponential_backoff(attempts)
    logger.warning(
        "Submission attempt %d/%d failed (%s), retrying in %.0fs: %s",
        attempts, config.SUBMIT_MAX_ATTEMPTS, kind.value, delay, exc,
    )
    return RetryDecision(kind=kind, delay=delay)
