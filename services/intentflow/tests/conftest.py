"""
Shared test fixtures for the IntentFlow test suite.

Provides:
- catalog / tracker / explorer / pipeline fixtures wired to in-memory stores
- async FastAPI test client (no Redis, no Sentry)
- factory functions for visitor contexts and intent results
"""

import os
import random
from typing import Any

import pytest
from httpx import ASGITransport, AsyncClient

# Ensure test env vars before any app imports
os.environ.setdefault("ENVIRONMENT", "development")
os.environ.setdefault("REDIS_URL", "")
os.environ.setdefault("SENTRY_DSN", "")

from services.intentflow.ab.explorer import ABExplorer  # noqa: E402
from services.intentflow.ab.store import InMemoryKeyValueStore  # noqa: E402
from services.intentflow.analytics.tracker import EventTracker  # noqa: E402
from services.intentflow.config import settings  # noqa: E402
from services.intentflow.decision.catalog import load_catalog  # noqa: E402
from services.intentflow.intent.types import Intent, IntentResult, Signal, zero_scores  # noqa: E402
from services.intentflow.pipeline import PersonalizationPipeline, SessionState  # noqa: E402
from services.intentflow.signals.context import DeviceInfo, VisitorContext  # noqa: E402


# ---------------------------------------------------------------------------
# Core components
# ---------------------------------------------------------------------------

@pytest.fixture
def catalog():
    """Catalog loaded from the bundled registry documents."""
    return load_catalog(settings.templates_registry_path, settings.assets_registry_path)


@pytest.fixture
def tracker() -> EventTracker:
    return EventTracker(buffer_size=500)


@pytest.fixture
def store() -> InMemoryKeyValueStore:
    return InMemoryKeyValueStore()


@pytest.fixture
def explorer(store, tracker) -> ABExplorer:
    """Explorer with a seeded RNG so variant draws are reproducible."""
    return ABExplorer(store, tracker=tracker, min_sample_size=10, rng=random.Random(7))


@pytest.fixture
def pipeline(catalog, explorer, tracker) -> PersonalizationPipeline:
    return PersonalizationPipeline(catalog, explorer, tracker)


@pytest.fixture
def session_state() -> SessionState:
    return SessionState(session_id="sess-test")


# ---------------------------------------------------------------------------
# FastAPI test client
# ---------------------------------------------------------------------------

@pytest.fixture
async def app():
    """Test app with state wired to an in-memory A/B store (lifespan is not run)."""
    from services.intentflow.main import app as _app
    from services.intentflow.main import init_state

    init_state(_app, redis_client=None)
    yield _app
    await _app.state.sessions.close_all()


@pytest.fixture
async def client(app):
    """Async HTTP client bound to the test app."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


# ---------------------------------------------------------------------------
# Factory functions
# ---------------------------------------------------------------------------

def make_context(url: str | None = None, **overrides: Any) -> VisitorContext:
    """Factory for VisitorContext; ``url`` may be a full URL or a bare query string."""
    return VisitorContext.from_url(url, **overrides)


def make_device(**overrides: Any) -> DeviceInfo:
    base = {"is_touch": False, "screen_width": 1920, "screen_height": 1080, "pixel_ratio": 1.0}
    base.update(overrides)
    return DeviceInfo(**base)


def make_signal(intent: Intent, weight: float, source_type: str = "utm_campaign", **overrides: Any) -> Signal:
    base = {
        "source_type": source_type,
        "key": source_type,
        "raw_value": intent.value.lower(),
        "detected_intent": intent,
        "weight": weight,
    }
    base.update(overrides)
    return Signal(**base)


def make_intent_result(
    intent: Intent,
    confidence: float = 1.0,
    signals: tuple[Signal, ...] | None = None,
) -> IntentResult:
    if signals is None:
        signals = () if intent is Intent.DEFAULT else (make_signal(intent, 0.6),)
    scores = zero_scores()
    for signal in signals:
        scores[signal.detected_intent] += signal.weight
    return IntentResult(intent=intent, confidence=confidence, scores=scores, signals=signals)
