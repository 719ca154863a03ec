from __future__ import annotations

import asyncio
import logging
from datetime import timedelta
from typing import Any, Dict, List, Literal, Optional

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from hypercorn.asyncio import serve
from hypercorn.config import Config
from pydantic import BaseModel, Field

from ...domain import today_events, tomorrow_events
from ...domain.leave_time import utcnow
from ...errors import TimeToLeaveError
from ..context import ServiceContext

logger = logging.getLogger(__name__)


class RefreshRequest(BaseModel):
    days: int = Field(default=7, ge=1, le=62)
    force: bool = False


class SettingsUpdate(BaseModel):
    buffer_minutes: Optional[int] = Field(default=None, ge=0, le=240)
    alerts_enabled: Optional[bool] = None


def _serialize_event(event, now) -> Dict[str, Any]:
    record = event.to_record()
    leave_by = event.leave_by
    record.update(
        {
            "leave_by": leave_by.isoformat() if leave_by else None,
            "minutes_until_leave": event.minutes_until_leave(now),
            "should_leave_now": event.should_leave_now(now),
            "has_started": event.has_started(now),
            "drive_time_display": event.drive_time_display,
            "leave_countdown_display": event.leave_countdown_display(now),
        }
    )
    return record


def create_app(context: ServiceContext) -> FastAPI:
    app = FastAPI(title="Time to Leave Local API", version="0.1.0")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.state.context = context

    @app.get("/timeline")
    async def get_timeline() -> Dict[str, Any]:
        return context.timeline.generate().to_record()

    @app.get("/events")
    async def list_events(day: Optional[Literal["today", "tomorrow"]] = None) -> Dict[str, List[Dict[str, Any]]]:
        now = utcnow()
        events = context.store.read()
        if day == "today":
            events = today_events(events, now)
        elif day == "tomorrow":
            events = tomorrow_events(events, now)
        return {"events": [_serialize_event(event, now) for event in events]}

    @app.post("/refresh")
    async def refresh(request: RefreshRequest) -> Dict[str, Any]:
        if not await asyncio.to_thread(context.sign_in):
            raise HTTPException(status_code=409, detail="Calendar backend session is not available.")
        try:
            events = await context.calendar.load_upcoming(timedelta(days=request.days), force_refresh=request.force)
        except TimeToLeaveError as exc:
            logger.warning("Refresh failed: %s", exc)
            raise HTTPException(status_code=502, detail=str(exc)) from exc
        return {"fetched": len(events), "status": context.orchestrator.state.to_record()}

    @app.get("/settings")
    async def get_settings() -> Dict[str, Any]:
        return {
            "buffer_minutes": context.store.buffer_minutes,
            "alerts_enabled": context.store.alerts_enabled,
            "buffer_options": list(context.settings.alerts.buffer_options),
        }

    @app.put("/settings")
    async def update_settings(update: SettingsUpdate) -> Dict[str, Any]:
        if update.buffer_minutes is not None:
            await context.orchestrator.update_buffer_time(update.buffer_minutes)
        if update.alerts_enabled is True:
            if not await context.orchestrator.enable_alerts():
                raise HTTPException(status_code=403, detail="Notification authorization was denied.")
        elif update.alerts_enabled is False:
            await context.orchestrator.disable_alerts()
        return await get_settings()

    @app.get("/alerts")
    async def list_alerts() -> Dict[str, Any]:
        pending = await context.notification_center.pending()
        return {"alerts": [request.to_record() for request in pending]}

    @app.get("/status")
    async def status() -> Dict[str, Any]:
        return context.orchestrator.state.to_record()

    return app


def run_local_server(context: ServiceContext, host: str = "127.0.0.1", port: int = 8000) -> None:
    config = Config()
    config.bind = [f"{host}:{port}"]
    app = create_app(context)

    async def _serve() -> None:
        refresher = asyncio.create_task(context.background.run_forever())
        try:
            await serve(app, config)
        finally:
            context.background.stop()
            await refresher
            await context.aclose()

    asyncio.run(_serve())
