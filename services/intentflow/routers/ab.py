"""
A/B exploration admin endpoints.

GET    /ab/report   — per-intent impressions, clicks, CTR and winner
POST   /ab/enable   — persist the enabled flag
POST   /ab/disable  — persist the disabled flag
DELETE /ab          — delete assignments, counters and winners
"""

from __future__ import annotations

from fastapi import APIRouter, Request

from services.intentflow.routers._deps import envelope, get_pipeline

router = APIRouter(prefix="/ab", tags=["ab"])


@router.get("/report")
async def ab_report(request: Request) -> dict:
    explorer = get_pipeline(request).explorer
    return envelope(request, {
        "enabled": await explorer.is_enabled(),
        "report": await explorer.report(),
    })


@router.post("/enable")
async def ab_enable(request: Request) -> dict:
    await get_pipeline(request).explorer.enable()
    return envelope(request, {"enabled": True})


@router.post("/disable")
async def ab_disable(request: Request) -> dict:
    await get_pipeline(request).explorer.disable()
    return envelope(request, {"enabled": False})


@router.delete("")
async def ab_reset(request: Request) -> dict:
    await get_pipeline(request).explorer.reset()
    return envelope(request, {"reset": True})
