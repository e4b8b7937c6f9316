"""video-gen command line: batch runs, the session server and housekeeping."""

from __future__ import annotations

import logging
import signal
from datetime import datetime
from typing import Optional

import typer
from rich import print
from rich.console import Console
from rich.table import Table

import config
from services.cleanup import purge_videos
from services.errors import ApiError, WorkflowError
from services.launch import build_request, make_client, resolve_api_key, resolve_output_dir
from services.retrieval import build_output_path
from services.run_store import PREFERENCE_KEYS, RunStore
from services.trace import TraceEntry
from services.workflow import Snapshot, Stage
from workers.runner import BatchRunner

app = typer.Typer(help="video-gen - generate videos with Sora and download them locally.")
config_app = typer.Typer(help="Read and write saved preferences.")
app.add_typer(config_app, name="config")

console = Console()


def _store() -> RunStore:
    store = RunStore(config.DATABASE_PATH)
    store.init_db()
    return store


def _fail(message: str) -> None:
    print(f"[red]Error:[/red] {message}")
    raise typer.Exit(1)


def _print_trace(entry: TraceEntry) -> None:
    style = "blue" if entry.direction == "request" else "magenta"
    console.print(entry.render(), style=style, markup=False, highlight=False)


class ConsoleReporter:
    """Prints one line per visible workflow change."""

    def __init__(self) -> None:
        self._last: Optional[tuple] = None

    def __call__(self, snap: Snapshot) -> None:
        key = (snap.stage, snap.attempt, snap.status, snap.progress)
        if key == self._last:
            return
        previous = self._last[0] if self._last else None
        self._last = key

        if snap.stage is Stage.SUBMITTING and snap.attempt == 0:
            print("Creating video generation job...")
        elif snap.stage is Stage.SUBMITTING:
            print(f"  [yellow]Submission attempt {snap.attempt} failed:[/yellow] {snap.retry.last_error}")
        elif snap.stage is Stage.POLLING and previous is Stage.SUBMITTING:
            print(f"[green]✓[/green] Video job created: [bold]{snap.job_id}[/bold]\n")
            print("Polling for completion... (this may take several minutes)")
        elif snap.stage is Stage.POLLING:
            progress = f" ({snap.progress}% complete)" if snap.progress > 0 else ""
            print(
                f"[{int(snap.retry.elapsed)}s] Status: {snap.status}{progress} "
                f"(attempt {snap.attempt}/{config.POLL_MAX_ATTEMPTS})"
            )
        elif snap.stage is Stage.DOWNLOADING and snap.attempt == 0:
            print("\n[green]✓[/green] Video generation completed!")
            print(f"Downloading video to: {snap.output_path}")
        elif snap.stage is Stage.DOWNLOADING:
            print(f"  Retrying download (attempt {snap.attempt + 1}/{config.DOWNLOAD_MAX_ATTEMPTS})...")
        elif snap.stage is Stage.CLEANING_UP:
            print(f"[green]✓[/green] Video saved: {snap.output_path}")
            print("Deleting video from service...")
        elif snap.stage is Stage.COMPLETED:
            for warning in snap.warnings:
                print(f"[yellow]Warning:[/yellow] {warning}")
            if not snap.warnings:
                print("[green]✓[/green] Video deleted from service")


# -----------------------------
# Batch run
# -----------------------------
@app.command()
def run(
    prompt: str = typer.Option(..., "--prompt", "-p", help="Video generation prompt"),
    model: Optional[str] = typer.Option(None, "--model", "-m", help="Model: 'sora' or 'sora-pro'"),
    reference: Optional[str] = typer.Option(None, "--reference", "-r", help="Path to reference image"),
    duration: Optional[str] = typer.Option(None, "--duration", "-t", help="Duration: 4, 8, or 12 seconds"),
    size: Optional[str] = typer.Option(
        None, "--size", "-s", help="Size: '1280x720', '720x1280', '1792x1024', or '1024x1792'",
    ),
    output_dir: Optional[str] = typer.Option(None, "--output-dir", "-o", help="Output directory"),
    debug: bool = typer.Option(False, "--debug", "-d", help="Show API requests/responses"),
):
    """Generate one video, blocking until it is downloaded."""
    store = _store()
    try:
        request = build_request(
            store, prompt=prompt, model=model, duration=duration, size=size, reference_path=reference,
        )
        api_key = resolve_api_key(store)
    except WorkflowError as e:
        _fail(str(e))

    out_dir = resolve_output_dir(store, output_dir)
    store.remember(request, out_dir)
    run_id = store.create_run(request)

    print(f"  Prompt: {request.prompt}")
    print(f"  Model: {request.model}")
    print(f"  Duration: {request.seconds}s")
    print(f"  Size: {request.size}")
    if request.reference is not None:
        print(f"  Reference: {request.reference.filename}")
    print()

    client = make_client(api_key, debug=debug, listener=_print_trace)
    reporter = ConsoleReporter()
    recorder = store.recorder(run_id)

    def _observe(snap: Snapshot) -> None:
        reporter(snap)
        recorder(snap)

    runner = BatchRunner(client, on_change=_observe)
    previous_handler = signal.signal(signal.SIGINT, lambda *_: runner.cancel())
    try:
        snapshot = runner.run(request, build_output_path(out_dir, datetime.now()))
    except WorkflowError as e:
        where = f" during {e.stage}" if e.stage else ""
        _fail(f"{e}{where} (attempts: {e.attempts})")
    finally:
        signal.signal(signal.SIGINT, previous_handler)

    print(f"\n[green]✓ Video saved successfully![/green]\n  Location: {snapshot.output_path}")


# -----------------------------
# Interactive session server
# -----------------------------
@app.command()
def serve(
    host: str = typer.Option(config.HOST, help="Bind address"),
    port: int = typer.Option(config.PORT, help="Bind port"),
):
    """Run the interactive session API."""
    import uvicorn

    uvicorn.run("main:app", host=host, port=port)


# -----------------------------
# Remote housekeeping
# -----------------------------
@app.command()
def recent(limit: int = typer.Option(config.RECENT_VIDEOS_LIMIT, help="How many jobs to list")):
    """List recent video jobs on the service."""
    store = _store()
    try:
        videos = make_client(resolve_api_key(store)).list_videos(limit)
    except (ApiError, WorkflowError) as e:
        _fail(str(e))

    t = Table(title=f"Recent videos ({len(videos)} found)")
    for c in ["id", "status", "model", "progress", "created"]:
        t.add_column(c)
    for v in videos:
        created = datetime.fromtimestamp(v.created_at).strftime("%b %d, %H:%M") if v.created_at else ""
        t.add_row(v.id, v.status, v.model or "", f"{v.progress}%", created)
    console.print(t)


@app.command()
def purge(
    limit: int = typer.Option(config.RECENT_VIDEOS_LIMIT, help="How many recent jobs to delete"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
):
    """Delete recent video jobs from the service."""
    store = _store()
    try:
        client = make_client(resolve_api_key(store))
        videos = client.list_videos(limit)
    except (ApiError, WorkflowError) as e:
        _fail(str(e))

    if not videos:
        print("No recent videos found.")
        return
    if not yes and not typer.confirm(f"Delete {len(videos)} videos?", default=True):
        raise typer.Exit(0)

    deleted, warnings = purge_videos(client, [v.id for v in videos])
    for warning in warnings:
        print(f"[yellow]Warning:[/yellow] {warning}")
    print(f"[green]Deleted {deleted}/{len(videos)} videos.[/green]")


# -----------------------------
# Local history
# -----------------------------
@app.command()
def history(limit: int = typer.Option(20, help="How many runs to show")):
    """Show recent local runs."""
    rows = _store().list_runs(limit)
    t = Table(title="Runs")
    for c in ["id", "stage", "video_id", "seconds", "size", "output_path", "error"]:
        t.add_column(c)
    for r in rows:
        t.add_row(
            r["id"],
            r["stage"],
            r["video_id"] or "",
            str(r["seconds"]),
            r["size"],
            r["output_path"] or "",
            (r["error"] or "")[:80],
        )
    console.print(t)


# -----------------------------
# Config
# -----------------------------
@config_app.command("get")
def config_get_cmd(key: str = typer.Argument(..., help="Preference key")):
    print(_store().get_setting(key, ""))


@config_app.command("set")
def config_set_cmd(key: str = typer.Argument(..., help="Preference key"), value: str = typer.Argument(...)):
    if key not in PREFERENCE_KEYS:
        _fail(f"unknown key '{key}'. Known keys: {', '.join(PREFERENCE_KEYS)}")
    _store().set_setting(key, value)
    print(f"set {key}")


@config_app.command("show")
def config_show_cmd():
    t = Table(title="Preferences")
    t.add_column("key")
    t.add_column("value")
    for key, value in _store().settings().items():
        t.add_row(key, "********" if key == "openai_api_key" else value)
    console.print(t)


def main() -> None:
    logging.basicConfig(
        level=logging.WARNING,
        format="%(asctime)s  %(levelname)-8s  %(name)s  %(message)s",
        datefmt="%H:%M:%S",
    )
    app()


if __name__ == "__main__":
    main()
