"""
IntentFlow FastAPI service — intent-based hero personalization.

Entrypoint: uvicorn services.intentflow.main:app --host 0.0.0.0 --port 8000
"""

import logging
import uuid
from contextlib import asynccontextmanager

import redis.asyncio as aioredis
from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.responses import JSONResponse

from services.intentflow.ab.explorer import ABExplorer
from services.intentflow.ab.store import InMemoryKeyValueStore, KeyValueStore, RedisKeyValueStore
from services.intentflow.analytics.tracker import EventTracker
from services.intentflow.config import settings
from services.intentflow.decision.catalog import load_catalog
from services.intentflow.middleware.cors import setup_cors
from services.intentflow.middleware.sentry import setup_sentry
from services.intentflow.pipeline import PersonalizationPipeline, SessionRegistry
from services.intentflow.routers import ab, analytics, health, personalize, sessions

logger = logging.getLogger(__name__)


def init_state(app: FastAPI, redis_client=None, store: KeyValueStore | None = None) -> None:
    """Wire catalog, A/B store, tracker, pipeline and session registry onto app.state."""
    if store is None:
        store = RedisKeyValueStore(redis_client) if redis_client is not None else InMemoryKeyValueStore()

    catalog = load_catalog(settings.templates_registry_path, settings.assets_registry_path)
    tracker = EventTracker()
    explorer = ABExplorer(store, tracker=tracker)
    pipeline = PersonalizationPipeline(catalog, explorer, tracker)

    app.state.settings = settings
    app.state.redis = redis_client
    app.state.pipeline = pipeline
    app.state.sessions = SessionRegistry(pipeline)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown lifecycle."""
    setup_sentry()

    # Redis for durable A/B state
    redis_client = None
    if settings.redis_url:
        try:
            redis_client = aioredis.from_url(
                settings.redis_url,
                decode_responses=True,
                socket_connect_timeout=5,
            )
            await redis_client.ping()
        except Exception:
            # A/B state degrades to the in-process store
            logger.warning("Redis unavailable, A/B state kept in memory", exc_info=True)
            redis_client = None

    init_state(app, redis_client)

    yield

    await app.state.sessions.close_all()
    if redis_client:
        await redis_client.aclose()


app = FastAPI(
    title="IntentFlow API",
    version=settings.app_version,
    docs_url="/docs" if settings.environment == "development" else None,
    redoc_url=None,
    lifespan=lifespan,
)

# -- Middleware (order matters: last added = outermost in Starlette) --

# Routers first (innermost)
app.include_router(health.router)
app.include_router(personalize.router)
app.include_router(sessions.router)
app.include_router(ab.router)
app.include_router(analytics.router)

# CORS (needs to be outermost to handle preflight)
setup_cors(app)


# Request ID injection
@app.middleware("http")
async def request_envelope_middleware(request: Request, call_next) -> Response:
    request_id = request.headers.get("x-request-id", str(uuid.uuid4()))
    request.state.request_id = request_id

    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response


# -- Exception Handlers --

_ERROR_CODES = {
    400: "BAD_REQUEST",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    409: "CONFLICT",
    422: "VALIDATION_ERROR",
}


def _error(request: Request, status_code: int, code: str, message: str) -> JSONResponse:
    request_id = getattr(request.state, "request_id", str(uuid.uuid4()))
    return JSONResponse(
        status_code=status_code,
        content={
            "success": False,
            "error": {"code": code, "message": message},
            "requestId": request_id,
        },
        headers={"X-Request-ID": request_id},
    )


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    code = _ERROR_CODES.get(exc.status_code, "HTTP_ERROR")
    return _error(request, exc.status_code, code, str(exc.detail))


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    first = errors[0] if errors else {}
    location = ".".join(str(p) for p in first.get("loc", ()))
    message = f"{location}: {first.get('msg', 'invalid')}" if location else "Validation error."
    return _error(request, 422, "VALIDATION_ERROR", message)


@app.exception_handler(500)
async def internal_error_handler(request: Request, exc) -> JSONResponse:
    logger.error("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
    return _error(request, 500, "INTERNAL_ERROR", "An unexpected error occurred.")
