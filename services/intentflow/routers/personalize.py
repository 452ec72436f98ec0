"""
POST /personalize — run one personalization cycle for a visitor session.

The host page posts whatever arrival context it has (URL or query string,
referrer, device facts, local hour, persona attributes, page type). Every
field except sessionId is optional; missing context degrades to the
DEFAULT hero. The session's ContextObserver is started on first use.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel, Field

from services.intentflow.intent.types import Intent
from services.intentflow.routers._deps import envelope, get_pipeline, get_sessions
from services.intentflow.signals.context import DeviceInfo, VisitorContext, parse_query_string

logger = logging.getLogger(__name__)

router = APIRouter(tags=["personalize"])


class DevicePayload(BaseModel):
    isTouch: bool = False
    screenWidth: int | None = Field(default=None, ge=0)
    screenHeight: int | None = Field(default=None, ge=0)
    pixelRatio: float = Field(default=1.0, gt=0)


class PersonalizeRequest(BaseModel):
    sessionId: str = Field(..., min_length=1, max_length=128)
    url: str | None = Field(default=None, max_length=4096)
    query: str | dict[str, str] | None = None
    referrer: str | None = Field(default=None, max_length=4096)
    device: DevicePayload | None = None
    localHour: int | None = Field(default=None, ge=0, le=23)
    persona: str | None = Field(default=None, max_length=64)
    scriptPersona: str | None = Field(default=None, max_length=64)
    pageType: str | None = Field(default=None, max_length=32)
    overrideIntent: str | None = Field(default=None, max_length=32)

    def to_context(self) -> VisitorContext:
        if isinstance(self.query, dict):
            query = dict(self.query)
        elif self.query is not None:
            query = parse_query_string(self.query)
        else:
            query = parse_query_string(self.url)

        device = None
        if self.device is not None:
            device = DeviceInfo(
                is_touch=self.device.isTouch,
                screen_width=self.device.screenWidth,
                screen_height=self.device.screenHeight,
                pixel_ratio=self.device.pixelRatio,
            )

        return VisitorContext(
            query=query,
            referrer=self.referrer,
            device=device,
            local_hour=self.localHour,
            persona=self.persona,
            script_persona=self.scriptPersona,
            page_type=self.pageType,
        )


@router.post("/personalize")
async def personalize(body: PersonalizeRequest, request: Request) -> dict:
    override = None
    if body.overrideIntent:
        override = Intent.parse(body.overrideIntent)
        if override is None:
            raise HTTPException(
                status_code=422,
                detail=f"overrideIntent must be one of {[i.value for i in Intent]}",
            )

    sessions = get_sessions(request)
    state = sessions.get_or_create(body.sessionId)
    await sessions.evict()
    decision = await get_pipeline(request).personalize(
        state,
        context=body.to_context(),
        override_intent=override,
        page_type=body.pageType,
    )

    if state.observer is not None:
        state.observer.start()

    return envelope(request, decision.to_dict())
