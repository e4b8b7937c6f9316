"""Shared start-up helpers for the front ends: option resolution and client wiring."""

from __future__ import annotations

from pathlib import Path
from typing import Callable, Optional

import config
from models import JobRequest
from services.errors import PreconditionError
from services.reference import load_reference
from services.run_store import RunStore
from services.sora_client import SoraClient
from services.trace import TraceEntry, TraceSink


def resolve_api_key(store: RunStore) -> str:
    """Environment first, then the stored key."""
    api_key = config.OPENAI_API_KEY or store.get_setting("openai_api_key", "")
    if not api_key:
        raise PreconditionError(
            "OpenAI API key not found. Set OPENAI_API_KEY or run "
            "`video-gen config set openai_api_key <key>`.",
            stage="precondition",
        )
    return api_key


def resolve_output_dir(store: RunStore, output_dir: Optional[str]) -> Path:
    value = output_dir or store.get_setting("output_dir") or str(config.DEFAULT_OUTPUT_DIR)
    return Path(value).expanduser()


def build_request(
    store: RunStore,
    *,
    prompt: str,
    model: Optional[str] = None,
    duration: Optional[str | int] = None,
    size: Optional[str] = None,
    reference_path: Optional[str] = None,
) -> JobRequest:
    """
    Validate the request, filling unset options from stored preferences and
    then from the defaults. Raises PreconditionError before any remote call.
    """
    fields = {
        "prompt": prompt,
        "model": model or store.get_setting("model") or config.DEFAULT_MODEL,
        "seconds": duration if duration not in (None, "") else (
            store.get_setting("duration") or config.DEFAULT_DURATION
        ),
        "size": size or store.get_setting("size") or config.DEFAULT_SIZE,
    }
    request = JobRequest.build(**fields)
    if reference_path:
        request = request.model_copy(update={"reference": load_reference(reference_path, request.size)})
    return request


def make_client(
    api_key: str,
    *,
    debug: bool = False,
    listener: Optional[Callable[[TraceEntry], None]] = None,
) -> SoraClient:
    trace = TraceSink(listener=listener) if debug else None
    return SoraClient(api_key, trace=trace)
