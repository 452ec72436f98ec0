"""Shared helpers for IntentFlow routers: response envelope and app-state lookups."""

from __future__ import annotations

from typing import Any

from fastapi import HTTPException, Request

from services.intentflow.pipeline import PersonalizationPipeline, SessionRegistry, SessionState


def envelope(request: Request, data: Any) -> dict:
    return {
        "success": True,
        "data": data,
        "requestId": request.state.request_id,
    }


def get_pipeline(request: Request) -> PersonalizationPipeline:
    return request.app.state.pipeline


def get_sessions(request: Request) -> SessionRegistry:
    return request.app.state.sessions


def require_session(request: Request, session_id: str) -> SessionState:
    state = get_sessions(request).get(session_id)
    if state is None:
        raise HTTPException(status_code=404, detail=f"Session {session_id} not found")
    return state
