"""Command-line interface for the activity timeline."""

from __future__ import annotations

import logging
import threading
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

import typer

from .config import TrackerSettings
from .errors import RelocationError
from .paths import get_log_path
from .server_runner import run_server
from .service import ActivityService
from .timeutils import DATE_KEY_FMT, date_key, now_ms

app = typer.Typer(help="Local-first activity timeline.")
logger = logging.getLogger(__name__)

_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


@app.callback(no_args_is_help=True)
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logs.")) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format=_LOG_FORMAT,
    )


def _open_service(
    store_path: Optional[Path], settings: Optional[TrackerSettings] = None, **kwargs: Any
) -> ActivityService:
    return ActivityService.from_settings(store_path=store_path, settings=settings, **kwargs)


@app.command()
def collect(
    store_path: Optional[Path] = typer.Option(
        None,
        "--store",
        path_type=Path,
        help="Location of the activity store JSON file.",
    ),
    sample_seconds: float = typer.Option(
        30.0,
        "--interval",
        min=5.0,
        help="Sampling interval in seconds.",
    ),
    autosave_minutes: float = typer.Option(
        5.0,
        "--autosave",
        min=0.5,
        help="Minutes between automatic saves.",
    ),
) -> None:
    """Run the background collector until interrupted."""
    file_handler = logging.FileHandler(get_log_path(), encoding="utf-8")
    file_handler.setFormatter(logging.Formatter(_LOG_FORMAT))
    logging.getLogger().addHandler(file_handler)

    settings = TrackerSettings.from_intervals(
        sample_seconds=sample_seconds, autosave_minutes=autosave_minutes
    )
    service = _open_service(store_path, settings)
    handle = service.start()
    waiter = threading.Event()
    try:
        while handle.running:
            waiter.wait(1.0)
    except KeyboardInterrupt:
        logger.info("Collector interrupted; saving store.")
    finally:
        service.shutdown()


@app.command()
def summary(
    date: Optional[str] = typer.Option(
        None,
        "--date",
        help="Date (YYYY-MM-DD) to summarize. Defaults to today.",
    ),
    store_path: Optional[Path] = typer.Option(
        None,
        "--store",
        path_type=Path,
        help="Location of the activity store JSON file.",
    ),
) -> None:
    """Print the timeline and totals for a specific day."""
    from .reporting import SummaryPrinter

    day = _validate_date(date) if date else date_key(now_ms())
    service = _open_service(store_path, sources=[])
    SummaryPrinter(service).print_daily_summary(day)


@app.command()
def cleanup(
    store_path: Optional[Path] = typer.Option(
        None, "--store", path_type=Path, help="Location of the activity store JSON file."
    ),
) -> None:
    """Delete days that are past the retention window."""
    service = _open_service(store_path, sources=[])
    removed = service.store.cleanup()
    service.store.save()
    typer.echo(f"Removed {len(removed)} day(s).")


@app.command()
def relocate(
    directory: Path = typer.Argument(..., help="New directory for the activity store."),
    use_existing: bool = typer.Option(
        False,
        "--use-existing",
        help="Adopt a store that already exists in the directory instead of copying.",
    ),
    store_path: Optional[Path] = typer.Option(
        None, "--store", path_type=Path, help="Current activity store JSON file."
    ),
) -> None:
    """Move the activity store to another directory (e.g. a synced folder)."""
    service = _open_service(store_path, sources=[])
    try:
        if use_existing:
            target = service.use_existing_storage(directory)
        else:
            target = service.relocate_storage(directory)
    except RelocationError as exc:
        typer.echo(f"Relocation failed: {exc}", err=True)
        raise typer.Exit(code=1) from exc
    typer.echo(f"Store now at {target}")


@app.command()
def web(
    host: str = typer.Option("127.0.0.1", "--host", help="Interface to bind the API."),
    port: int = typer.Option(
        8765, "--port", min=1, max=65535, help="TCP port for the API."
    ),
    store_path: Optional[Path] = typer.Option(
        None, "--store", path_type=Path, help="Location of the activity store JSON file."
    ),
    sample_seconds: float = typer.Option(
        30.0,
        "--interval",
        min=5.0,
        help="Sampling interval in seconds.",
    ),
    open_browser: bool = typer.Option(
        False,
        "--open-browser/--no-open-browser",
        help="Open the interactive API docs in your default browser.",
    ),
) -> None:
    """Start the local API with the background collector."""
    run_server(
        host=host,
        port=port,
        store_path=store_path,
        settings=TrackerSettings.from_intervals(sample_seconds=sample_seconds),
        open_browser=open_browser,
    )


def _validate_date(value: str) -> str:
    try:
        datetime.strptime(value, DATE_KEY_FMT)
    except ValueError as exc:
        raise typer.BadParameter("expected YYYY-MM-DD", param_hint="--date") from exc
    return value
