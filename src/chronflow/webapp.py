"""FastAPI application exposing the day timeline to a local UI."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, Optional

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, ConfigDict

from .config import TrackerSettings
from .errors import RelocationError
from .persistence import HeartbeatDocument
from .service import ActivityService
from .timeutils import date_key, is_date_key, now_ms

logger = logging.getLogger(__name__)


class TrackingUpdate(BaseModel):
    tracking: bool

    model_config = ConfigDict(extra="forbid")


class StorageUpdate(BaseModel):
    directory: str
    use_existing: bool = False

    model_config = ConfigDict(extra="forbid")


def create_app(
    *,
    service: Optional[ActivityService] = None,
    store_path: Optional[Path] = None,
    settings: Optional[TrackerSettings] = None,
    run_background: bool = True,
) -> FastAPI:
    """Instantiate the FastAPI application."""
    resolved_service = service or ActivityService.from_settings(
        store_path=store_path, settings=settings
    )

    app = FastAPI(title="Chronflow", version="0.1.0")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.state.service = resolved_service

    @app.on_event("startup")
    async def _startup() -> None:
        if run_background:
            resolved_service.start()

    @app.on_event("shutdown")
    async def _shutdown() -> None:
        resolved_service.shutdown()

    @app.get("/api/status")
    def status(request: Request) -> Dict[str, Any]:
        return request.app.state.service.status()

    @app.get("/api/dates")
    def dates(request: Request) -> Dict[str, Any]:
        return {"dates": request.app.state.service.available_dates()}

    @app.get("/api/summary")
    def summary(
        request: Request,
        date: Optional[str] = Query(
            default=None,
            description="Target date in YYYY-MM-DD format.",
        ),
    ) -> Dict[str, Any]:
        day = _parse_date(date)
        svc: ActivityService = request.app.state.service
        return {
            "date": day,
            "entries": [entry.to_dict() for entry in svc.get_day_summary(day)],
            "totals": svc.get_day_totals(day).to_dict(),
        }

    @app.get("/api/totals")
    def totals(
        request: Request,
        date: Optional[str] = Query(
            default=None,
            description="Target date in YYYY-MM-DD format.",
        ),
    ) -> Dict[str, Any]:
        day = _parse_date(date)
        return {"date": day, "totals": request.app.state.service.get_day_totals(day).to_dict()}

    @app.get("/api/heartbeats")
    def heartbeats(
        request: Request,
        date: Optional[str] = Query(
            default=None,
            description="Target date in YYYY-MM-DD format.",
        ),
    ) -> Dict[str, Any]:
        day = _parse_date(date)
        beats = request.app.state.service.get_heartbeats(day)
        return {
            "date": day,
            "heartbeats": [
                HeartbeatDocument.from_heartbeat(beat).model_dump(by_alias=True, mode="json")
                for beat in beats
            ],
        }

    @app.post("/api/tracking")
    def update_tracking(payload: TrackingUpdate, request: Request) -> Dict[str, Any]:
        svc: ActivityService = request.app.state.service
        if payload.tracking:
            svc.resume_tracking()
        else:
            svc.pause_tracking()
        return {"tracking": svc.collector.tracking}

    @app.post("/api/storage")
    def update_storage(payload: StorageUpdate, request: Request) -> Dict[str, Any]:
        directory = payload.directory.strip()
        if not directory:
            raise HTTPException(status_code=400, detail="directory is required")
        svc: ActivityService = request.app.state.service
        try:
            if payload.use_existing:
                path = svc.use_existing_storage(Path(directory))
            else:
                path = svc.relocate_storage(Path(directory))
        except RelocationError as exc:
            raise HTTPException(status_code=409, detail=str(exc)) from exc
        return {"store_path": str(path)}

    return app


def _parse_date(value: Optional[str]) -> str:
    if not value:
        return date_key(now_ms())
    if not is_date_key(value):
        raise HTTPException(status_code=400, detail="Invalid date format")
    return value
