"""
Session endpoints — interaction events, CTA clicks, observer state.

POST   /sessions/{session_id}/events     — queue interaction events for the observer
POST   /sessions/{session_id}/cta-click  — record a hero CTA click
GET    /sessions/{session_id}/observer   — observer report (scores, actions, re-triggers)
DELETE /sessions/{session_id}            — stop the observer and forget the session

Events are queued, not processed inline: the response reports how many
were accepted. Events sent before the observer's settle delay has elapsed
are accepted into the queue and then dropped by the IDLE observer.
"""

from __future__ import annotations

import logging
from typing import Annotated, Literal, Union

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel, Field

from services.intentflow.observer.events import (
    ClickEvent,
    HoverDwell,
    HoverEnd,
    HoverStart,
    InteractionEvent,
    ScrollSample,
    VisibilityChange,
)
from services.intentflow.routers._deps import (
    envelope,
    get_pipeline,
    get_sessions,
    require_session,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/sessions", tags=["sessions"])

MAX_EVENTS_PER_BATCH = 100


# ---------------------------------------------------------------------------
# Event payloads
# ---------------------------------------------------------------------------


class ScrollPayload(BaseModel):
    type: Literal["scroll"]
    y: float
    t: float = Field(..., description="Client timestamp in milliseconds")

    def to_event(self) -> InteractionEvent:
        return ScrollSample(position_y=self.y, timestamp_ms=self.t)


class ClickPayload(BaseModel):
    type: Literal["click"]
    className: str = Field(default="", max_length=512)
    text: str = Field(default="", max_length=512)
    href: str = Field(default="", max_length=2048)

    def to_event(self) -> InteractionEvent:
        return ClickEvent(class_name=self.className, text=self.text, href=self.href)


class HoverStartPayload(BaseModel):
    type: Literal["hover_start"]
    targetId: str = Field(..., min_length=1, max_length=128)
    category: str = Field(default="", max_length=64)

    def to_event(self) -> InteractionEvent:
        return HoverStart(target_id=self.targetId, category=self.category)


class HoverEndPayload(BaseModel):
    type: Literal["hover_end"]
    targetId: str = Field(..., min_length=1, max_length=128)

    def to_event(self) -> InteractionEvent:
        return HoverEnd(target_id=self.targetId)


class HoverDwellPayload(BaseModel):
    type: Literal["hover_dwell"]
    targetId: str = Field(..., min_length=1, max_length=128)
    category: str = Field(default="", max_length=64)

    def to_event(self) -> InteractionEvent:
        return HoverDwell(target_id=self.targetId, category=self.category)


class VisibilityPayload(BaseModel):
    type: Literal["visibility"]
    elementId: str = Field(default="", max_length=128)
    className: str = Field(default="", max_length=512)
    ratio: float = Field(default=1.0, ge=0.0, le=1.0)
    title: str = Field(default="", max_length=256)

    def to_event(self) -> InteractionEvent:
        return VisibilityChange(
            element_id=self.elementId,
            class_name=self.className,
            ratio=self.ratio,
            title=self.title,
        )


EventPayload = Annotated[
    Union[
        ScrollPayload,
        ClickPayload,
        HoverStartPayload,
        HoverEndPayload,
        HoverDwellPayload,
        VisibilityPayload,
    ],
    Field(discriminator="type"),
]


class EventBatchRequest(BaseModel):
    events: list[EventPayload] = Field(..., max_length=MAX_EVENTS_PER_BATCH)


class CtaClickRequest(BaseModel):
    elementId: str | None = Field(default=None, max_length=128)


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------


@router.post("/{session_id}/events")
async def submit_events(session_id: str, body: EventBatchRequest, request: Request) -> dict:
    state = require_session(request, session_id)
    observer = state.observer
    if observer is None or observer.closed:
        raise HTTPException(status_code=409, detail="Observer is not running for this session")

    accepted = sum(1 for payload in body.events if observer.submit(payload.to_event()))
    dropped = len(body.events) - accepted
    if dropped:
        logger.warning("Dropped %d events for session=%s (queue full)", dropped, session_id)

    return envelope(request, {
        "accepted": accepted,
        "dropped": dropped,
        "state": observer.state.value,
    })


@router.post("/{session_id}/cta-click")
async def cta_click(session_id: str, request: Request, body: CtaClickRequest | None = None) -> dict:
    state = require_session(request, session_id)
    element_id = body.elementId if body is not None else None

    recorded = await get_pipeline(request).record_cta_click(state, element_id)
    if not recorded:
        raise HTTPException(status_code=409, detail="No hero decision for this session yet")

    decision = state.last_decision
    return envelope(request, {
        "recorded": True,
        "intent": decision.intent.value,
        "abVariant": decision.ab_variant,
    })


@router.get("/{session_id}/observer")
async def observer_report(session_id: str, request: Request) -> dict:
    state = require_session(request, session_id)
    report = state.observer.report() if state.observer is not None else None
    return envelope(request, {
        "observer": report,
        "currentIntent": state.current_intent.value if state.current_intent else None,
    })


@router.delete("/{session_id}")
async def close_session(session_id: str, request: Request) -> dict:
    closed = await get_sessions(request).close(session_id)
    if not closed:
        raise HTTPException(status_code=404, detail=f"Session {session_id} not found")
    return envelope(request, {"closed": True})
