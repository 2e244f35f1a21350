"""Run the local timeline API under uvicorn."""

from __future__ import annotations

import logging
import threading
import webbrowser
from pathlib import Path
from typing import Optional

import uvicorn

from .config import TrackerSettings
from .service import ActivityService
from .webapp import create_app

logger = logging.getLogger(__name__)


def build_server(
    *,
    host: str = "127.0.0.1",
    port: int = 8765,
    store_path: Optional[Path] = None,
    settings: Optional[TrackerSettings] = None,
    log_level: str = "info",
) -> uvicorn.Server:
    """Create the uvicorn server; the collector starts with the app."""
    service = ActivityService.from_settings(
        store_path=store_path, settings=settings or TrackerSettings()
    )
    app = create_app(service=service)
    logging.getLogger("uvicorn.error").setLevel(log_level.upper())
    return uvicorn.Server(uvicorn.Config(app, host=host, port=port, log_level=log_level))


def run_server(
    *,
    host: str = "127.0.0.1",
    port: int = 8765,
    store_path: Optional[Path] = None,
    settings: Optional[TrackerSettings] = None,
    open_browser: bool = False,
    log_level: str = "info",
) -> None:
    """Serve the API until interrupted. uvicorn triggers the final store save."""
    server = build_server(
        host=host, port=port, store_path=store_path, settings=settings, log_level=log_level
    )
    if open_browser:
        threading.Thread(
            target=_open_docs_when_ready,
            args=(server, f"http://{host}:{port}/docs"),
            daemon=True,
        ).start()
    logger.info("Serving the timeline API on http://%s:%d", host, port)
    server.run()


def _open_docs_when_ready(server: uvicorn.Server, url: str, timeout: float = 10.0) -> None:
    waiter = threading.Event()
    waited = 0.0
    while not server.started and waited < timeout:
        waiter.wait(0.2)
        waited += 0.2
    if not server.started:
        logger.warning("Server did not start within %.0fs; not opening %s", timeout, url)
        return
    try:
        webbrowser.open(url)
    except Exception:
        logger.exception("Failed to launch browser for %s", url)
