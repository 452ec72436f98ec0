"""Health check endpoint."""

from fastapi import APIRouter, Request

router = APIRouter()


@router.get("/health")
async def health_check(request: Request) -> dict:
    state = request.app.state
    return {
        "success": True,
        "data": {
            "status": "healthy",
            "version": state.settings.app_version,
            "catalog": state.pipeline.catalog.source,
            "abStorage": "redis" if state.redis is not None else "memory",
            "sessions": len(state.sessions),
        },
        "requestId": request.state.request_id,
    }
