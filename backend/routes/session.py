"""API routes for the interactive generation session."""

from __future__ import annotations

from dataclasses import asdict

from fastapi import APIRouter, HTTPException, Request

from models import Job, PurgeResponse, SessionRequest, SessionResponse, TraceResponse
from services.cleanup import purge_videos
from services.errors import ApiError, PreconditionError
from services.launch import build_request, resolve_api_key, resolve_output_dir
from services.retrieval import build_output_path
from services.run_store import RunStore
from workers.session import InteractiveSession

router = APIRouter()


def _store(request: Request) -> RunStore:
    return request.app.state.store


def _active(request: Request) -> InteractiveSession:
    session = request.app.state.session
    if session is None:
        raise HTTPException(404, "No session has been started.")
    return session


def _client(request: Request, *, debug: bool = False):
    try:
        api_key = resolve_api_key(_store(request))
    except PreconditionError as e:
        raise HTTPException(400, str(e))
    return request.app.state.client_factory(api_key, debug=debug)


def _view(request: Request, session: InteractiveSession) -> SessionResponse:
    snap = session.snapshot
    return SessionResponse(
        run_id=request.app.state.run_id,
        stage=snap.stage.value,
        job_id=snap.job_id,
        status=snap.status,
        progress=snap.progress,
        attempt=snap.attempt,
        elapsed_seconds=snap.elapsed_seconds,
        output_path=str(snap.output_path) if snap.output_path else None,
        error=str(snap.error) if snap.error else None,
        error_kind=snap.error.kind if snap.error else None,
        warnings=list(snap.warnings),
    )


# ---------------------------------------------------------------------------
# POST /api/session
# ---------------------------------------------------------------------------
@router.post("/session", response_model=SessionResponse)
async def start_session(body: SessionRequest, request: Request):
    """Start the single generation workflow for this process."""
    current = request.app.state.session
    if current is not None and not current.done:
        raise HTTPException(409, "A generation session is already running.")

    store = _store(request)
    try:
        job_request = build_request(
            store,
            prompt=body.prompt,
            model=body.model,
            duration=body.seconds,
            size=body.size,
            reference_path=body.reference_path,
        )
    except PreconditionError as e:
        raise HTTPException(400, str(e))

    client = _client(request, debug=body.debug)
    output_dir = resolve_output_dir(store, body.output_dir)
    store.remember(job_request, output_dir)
    run_id = store.create_run(job_request)

    session = InteractiveSession(
        client,
        job_request,
        build_output_path(output_dir),
        on_change=store.recorder(run_id),
    )
    request.app.state.session = session
    request.app.state.run_id = run_id
    request.app.state.client = client
    session.start()
    return _view(request, session)


# ---------------------------------------------------------------------------
# GET /api/session
# ---------------------------------------------------------------------------
@router.get("/session", response_model=SessionResponse)
async def get_session(request: Request):
    """Current snapshot: stage, status, progress, attempt and elapsed time."""
    return _view(request, _active(request))


# ---------------------------------------------------------------------------
# POST /api/session/cancel
# ---------------------------------------------------------------------------
@router.post("/session/cancel", response_model=SessionResponse)
def cancel_session(request: Request):
    session = _active(request)
    if not session.done:
        session.cancel()
        session.wait(timeout=5)
    return _view(request, session)


# ---------------------------------------------------------------------------
# GET /api/session/trace
# ---------------------------------------------------------------------------
@router.get("/session/trace", response_model=list[TraceResponse])
async def get_trace(request: Request):
    """Raw request/response records (debug sessions only)."""
    _active(request)
    client = request.app.state.client
    if client is None or client.trace is None:
        return []
    return [TraceResponse(**asdict(entry)) for entry in client.trace.entries()]


# ---------------------------------------------------------------------------
# GET /api/videos  (recent remote jobs)
# ---------------------------------------------------------------------------
@router.get("/videos", response_model=list[Job])
def list_videos(request: Request, limit: int = 10):
    try:
        return _client(request).list_videos(limit)
    except ApiError as e:
        raise HTTPException(502, str(e))


# ---------------------------------------------------------------------------
# DELETE /api/videos  (purge recent remote jobs)
# ---------------------------------------------------------------------------
@router.delete("/videos", response_model=PurgeResponse)
def purge_recent_videos(request: Request, limit: int = 10):
    client = _client(request)
    try:
        videos = client.list_videos(limit)
    except ApiError as e:
        raise HTTPException(502, str(e))
    deleted, warnings = purge_videos(client, [v.id for v in videos])
    return PurgeResponse(deleted=deleted, warnings=warnings)


# ---------------------------------------------------------------------------
# GET /api/runs  (local run history)
# ---------------------------------------------------------------------------
@router.get("/runs")
async def list_runs(request: Request, limit: int = 20):
    return _store(request).list_runs(limit)
