"""GET /analytics/events — buffered analytics events, newest last."""

from __future__ import annotations

from fastapi import APIRouter, Query, Request

from services.intentflow.routers._deps import envelope, get_pipeline

router = APIRouter(prefix="/analytics", tags=["analytics"])


@router.get("/events")
async def list_events(
    request: Request,
    event: str | None = Query(default=None, max_length=64),
    sessionId: str | None = Query(default=None, max_length=128),
    limit: int = Query(default=100, ge=1, le=1000),
) -> dict:
    events = get_pipeline(request).tracker.events(event)
    if sessionId is not None:
        events = [e for e in events if e.session_id == sessionId]
    events = events[-limit:]
    return envelope(request, {
        "events": [e.to_dict() for e in events],
        "count": len(events),
    })
