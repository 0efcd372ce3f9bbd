"""FastAPI application: tab event ingest plus a reporting API."""

from __future__ import annotations

import io
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response
from pydantic import BaseModel, ConfigDict

from .clock import DAY_FMT, now_ms
from .collector import TabCollector
from .config import TrackerSettings, get_db_path
from .models import StateUpdate, tracked_data_to_dict
from .reporting import aggregate_by_hostname, write_csv
from .source import TabDirectory, TabInfo
from .store import DurableStore, SqliteStore, StoreError

logger = logging.getLogger(__name__)


class TabPayload(BaseModel):
    url: Optional[str] = None
    title: Optional[str] = None
    window_id: int = -1
    active: bool = False

    model_config = ConfigDict(extra="forbid")


class TabChangePayload(BaseModel):
    url: Optional[str] = None
    title: Optional[str] = None
    window_id: Optional[int] = None
    active: Optional[bool] = None

    model_config = ConfigDict(extra="forbid")


class ActivationPayload(BaseModel):
    window_id: int

    model_config = ConfigDict(extra="forbid")


class FocusPayload(BaseModel):
    window_id: Optional[int] = None

    model_config = ConfigDict(extra="forbid")


class IdlePayload(BaseModel):
    is_idle: bool

    model_config = ConfigDict(extra="forbid")


def create_app(
    *,
    db_path: Optional[Path] = None,
    settings: Optional[TrackerSettings] = None,
    store: Optional[DurableStore] = None,
    clock: Callable[[], int] = now_ms,
) -> FastAPI:
    """Instantiate the FastAPI application.

    ``store`` takes precedence over ``db_path``; without either the default
    SQLite database in the data directory is used.
    """
    resolved_settings = settings or TrackerSettings()
    if store is None:
        store = SqliteStore(Path(db_path or get_db_path()))
    directory = TabDirectory()
    collector = TabCollector(directory, store, resolved_settings, clock=clock)

    app = FastAPI(title="Tab Time Tracker", version="0.1.0")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.collector = collector
    app.state.directory = directory
    app.state.store = store

    @app.on_event("startup")
    async def _startup() -> None:
        await collector.start()

    @app.on_event("shutdown")
    async def _shutdown() -> None:
        try:
            await collector.shutdown()
        finally:
            store.close()

    @app.get("/api/status")
    async def status(request: Request) -> Dict[str, Any]:
        aggregator = request.app.state.collector.aggregator
        return {
            "collector_running": request.app.state.collector.running,
            "tracked_tabs": len(request.app.state.collector.registry),
            "pending_pages": aggregator.pending_count,
            "store_errors": aggregator.error_count,
            "last_store_error": aggregator.last_error,
            "debounce_ms": resolved_settings.transition_debounce.total_seconds() * 1000,
            "flush_seconds": resolved_settings.flush_delay.total_seconds(),
        }

    @app.post("/api/tabs/{tab_id}")
    async def tab_created(tab_id: int, payload: TabPayload) -> Dict[str, Any]:
        directory.observe(
            TabInfo(
                tab_id=tab_id,
                url=payload.url,
                title=payload.title,
                window_id=payload.window_id,
                active=payload.active,
            )
        )
        await collector.created(tab_id)
        return {"tab_id": tab_id, "tracked": tab_id in collector.registry}

    @app.patch("/api/tabs/{tab_id}")
    async def tab_updated(tab_id: int, payload: TabChangePayload) -> Dict[str, Any]:
        directory.patch(
            tab_id,
            url=payload.url,
            title=payload.title,
            window_id=payload.window_id,
            active=payload.active,
        )
        await collector.updated(
            tab_id,
            StateUpdate(
                url=payload.url,
                title=payload.title,
                container_id=payload.window_id,
                is_active=payload.active,
            ),
        )
        return {"tab_id": tab_id, "scheduled": True}

    @app.post("/api/tabs/{tab_id}/activate")
    async def tab_activated(tab_id: int, payload: ActivationPayload) -> Dict[str, Any]:
        directory.activate(tab_id, payload.window_id)
        await collector.activated(tab_id, payload.window_id)
        return {"tab_id": tab_id, "window_id": payload.window_id}

    @app.delete("/api/tabs/{tab_id}")
    async def tab_removed(tab_id: int) -> Dict[str, Any]:
        directory.forget(tab_id)
        await collector.removed(tab_id)
        return {"tab_id": tab_id, "removed": True}

    @app.post("/api/windows/focus")
    async def window_focus(payload: FocusPayload) -> Dict[str, Any]:
        directory.set_focus(payload.window_id)
        await collector.container_focus_changed(payload.window_id)
        return {"window_id": payload.window_id}

    @app.post("/api/idle")
    async def idle_changed(payload: IdlePayload) -> Dict[str, Any]:
        await collector.system_idle_changed(payload.is_idle)
        return {"is_idle": payload.is_idle}

    @app.get("/api/data")
    async def data(
        start: Optional[str] = Query(
            default=None, description="Start date in YYYY-MM-DD format (inclusive)."
        ),
        end: Optional[str] = Query(
            default=None, description="End date in YYYY-MM-DD format (inclusive)."
        ),
    ) -> Dict[str, Any]:
        start_day, end_day = _parse_range(start, end)
        tracked = await collector.get_aggregate_for_range(start_day, end_day)
        return {"start": start_day, "end": end_day, "days": tracked_data_to_dict(tracked)}

    @app.get("/api/overview")
    async def overview(
        start: Optional[str] = Query(
            default=None, description="Start date in YYYY-MM-DD format (inclusive)."
        ),
        end: Optional[str] = Query(
            default=None, description="End date in YYYY-MM-DD format (inclusive)."
        ),
    ) -> Dict[str, Any]:
        start_day, end_day = _parse_range(start, end)
        stats = aggregate_by_hostname(
            await collector.get_aggregate_for_range(start_day, end_day)
        )
        return {
            "start": start_day,
            "end": end_day,
            "totals": {
                "active_ms": sum(s.active_ms for s in stats),
                "focused_ms": sum(s.focused_ms for s in stats),
                "unfocused_ms": sum(s.unfocused_ms for s in stats),
                "idle_ms": sum(s.idle_ms for s in stats),
            },
            "hostnames": [stat.to_dict() for stat in stats],
            "store_errors": collector.aggregator.error_count,
        }

    @app.get("/api/export.csv")
    async def export_csv(
        start: Optional[str] = Query(default=None),
        end: Optional[str] = Query(default=None),
    ) -> Response:
        start_day, end_day = _parse_range(start, end)
        stats = aggregate_by_hostname(
            await collector.get_aggregate_for_range(start_day, end_day)
        )
        buffer = io.StringIO()
        write_csv(stats, buffer)
        return Response(
            content=buffer.getvalue(),
            media_type="text/csv",
            headers={
                "Content-Disposition": f'attachment; filename="tabs_{start_day}_{end_day}.csv"'
            },
        )

    @app.post("/api/clear")
    async def clear() -> Dict[str, Any]:
        try:
            await collector.request_clear()
        except StoreError as exc:
            logger.exception("Failed to clear tracking data.")
            raise HTTPException(status_code=503, detail=str(exc)) from exc
        return {"cleared": True}

    return app


def _parse_range(start: Optional[str], end: Optional[str]) -> tuple[str, str]:
    start_day = _parse_date(start)
    end_day = _parse_date(end) if end else start_day
    if end_day < start_day:
        raise HTTPException(status_code=400, detail="end date must be on or after start date")
    return start_day, end_day


def _parse_date(value: Optional[str]) -> str:
    if not value:
        return datetime.now().strftime(DAY_FMT)
    try:
        parsed = datetime.strptime(value, DAY_FMT)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail="Invalid date format") from exc
    return parsed.strftime(DAY_FMT)
