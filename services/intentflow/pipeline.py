"""
Personalization pipeline — one cycle from visitor context to rendered hero.

Cycle:
  1. intent     — scorer.detect(context), or override_result(intent) when an
                  explicit override is given (preview / behavioral re-trigger)
  2. decide     — DecisionEngine.decide()
  3. A/B        — ABExplorer.apply_variant() when exploration is enabled
  4. page       — apply_page_overrides() for non-homepage page types
  5. render     — optional renderer callback, guarded
  6. analytics  — decision_made, hero_impression, variant_swap (only when
                  the intent or variant changed)
  7. store      — decision kept on the SessionState

Cycles for one session hold ``state.lock`` end to end, so an observer
re-trigger and an explicit request never interleave their A/B
read-modify-writes or overwrite each other's decision mid-flight.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

from services.intentflow.ab.explorer import ABExplorer
from services.intentflow.analytics.tracker import EventTracker
from services.intentflow.config import settings
from services.intentflow.decision.catalog import Catalog
from services.intentflow.decision.engine import DecisionEngine, DecisionResult
from services.intentflow.decision.page_overrides import apply_page_overrides
from services.intentflow.intent import scorer
from services.intentflow.intent.types import Intent
from services.intentflow.observer.context_observer import ContextObserver
from services.intentflow.signals.context import VisitorContext

logger = logging.getLogger(__name__)

Renderer = Callable[[DecisionResult], Awaitable[Any]]


@dataclass
class SessionState:
    """Per-visitor session: last decision, last context, observer, cycle lock."""

    session_id: str
    context: VisitorContext | None = None
    last_decision: DecisionResult | None = None
    observer: ContextObserver | None = None
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    last_seen: float = 0.0

    @property
    def current_intent(self) -> Intent | None:
        return self.last_decision.intent if self.last_decision else None


class PersonalizationPipeline:
    """
    Usage:
        pipeline = PersonalizationPipeline(catalog, explorer, tracker)
        decision = await pipeline.personalize(state, context)
    """

    def __init__(
        self,
        catalog: Catalog,
        explorer: ABExplorer,
        tracker: EventTracker,
        renderer: Renderer | None = None,
    ) -> None:
        self.catalog = catalog
        self.engine = DecisionEngine(catalog)
        self.explorer = explorer
        self.tracker = tracker
        self.renderer = renderer

    async def personalize(
        self,
        state: SessionState,
        context: VisitorContext | None = None,
        override_intent: Intent | None = None,
        page_type: str | None = None,
    ) -> DecisionResult:
        """
        Run one cycle for the session and return the decision.

        ``context`` replaces the session's stored context when given; a
        re-trigger passes only ``override_intent`` and reuses the stored one
        for A/B enablement and page type.
        """
        async with state.lock:
            if context is not None:
                state.context = context
            ctx = state.context

            if override_intent is not None:
                result = scorer.override_result(override_intent)
            else:
                result = scorer.detect(ctx)

            decision = self.engine.decide(result)

            query = ctx.query if ctx is not None else None
            if await self.explorer.is_enabled(query):
                decision = await self.explorer.apply_variant(decision, self.catalog)

            page = page_type or (ctx.page_type if ctx is not None else None)
            decision = apply_page_overrides(decision, self.catalog, page)

            await self._render(state, decision)

            previous = state.last_decision
            self.tracker.track_decision(decision, state.session_id)
            self.tracker.track_impression(decision, state.session_id)
            if previous is not None and (
                previous.intent is not decision.intent or previous.ab_variant != decision.ab_variant
            ):
                self.tracker.track_variant_swap(
                    previous.intent.value, decision.intent.value, state.session_id
                )

            state.last_decision = decision

        logger.info(
            "Personalized session=%s intent=%s confidence=%.2f template=%s variant=%s page=%s",
            state.session_id,
            decision.intent.value,
            decision.confidence,
            decision.template_id,
            decision.ab_variant,
            decision.page_type,
        )
        return decision

    async def _render(self, state: SessionState, decision: DecisionResult) -> None:
        if self.renderer is None:
            return
        try:
            await self.renderer(decision)
        except Exception as exc:
            logger.warning(
                "Render failed for session=%s intent=%s",
                state.session_id, decision.intent.value, exc_info=True,
            )
            self.tracker.log("render_failed", {
                "intent": decision.intent.value,
                "template": decision.template_id,
                "error": str(exc),
            }, state.session_id)

    async def record_cta_click(self, state: SessionState, element_id: str | None = None) -> bool:
        """Track a hero CTA click. Returns False when the session has no decision yet."""
        decision = state.last_decision
        if decision is None:
            return False

        self.tracker.track_cta_click(decision, element_id, state.session_id)
        if decision.ab_variant is not None:
            await self.explorer.record_click(decision.intent, decision.ab_variant)
        return True


class SessionRegistry:
    """
    In-process session table. Each session owns one ContextObserver wired to
    re-run the pipeline with the observer's dominant intent as override.

    Entries are kept in least-recently-used order. evict() drops sessions
    idle for longer than ``idle_ttl_s`` and, past ``max_sessions``, the least
    recently used ones; their observers are stopped.
    """

    def __init__(
        self,
        pipeline: PersonalizationPipeline,
        observer_factory: Callable[..., ContextObserver] = ContextObserver,
        idle_ttl_s: float | None = None,
        max_sessions: int | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.pipeline = pipeline
        self._observer_factory = observer_factory
        self.idle_ttl_s = idle_ttl_s if idle_ttl_s is not None else settings.session_idle_ttl_s
        self.max_sessions = max_sessions if max_sessions is not None else settings.session_max_count
        self._clock = clock
        self._sessions: OrderedDict[str, SessionState] = OrderedDict()

    def _touch(self, state: SessionState) -> None:
        state.last_seen = self._clock()
        self._sessions.move_to_end(state.session_id)

    def get(self, session_id: str) -> SessionState | None:
        state = self._sessions.get(session_id)
        if state is not None:
            self._touch(state)
        return state

    def get_or_create(self, session_id: str) -> SessionState:
        state = self.get(session_id)
        if state is not None:
            return state

        state = SessionState(session_id=session_id, last_seen=self._clock())

        async def retrigger(intent: Intent) -> DecisionResult:
            return await self.pipeline.personalize(state, override_intent=intent)

        state.observer = self._observer_factory(
            session_id,
            on_retrigger=retrigger,
            current_intent=lambda: state.current_intent,
            tracker=self.pipeline.tracker,
        )
        self._sessions[session_id] = state
        logger.debug("Session created: %s", session_id)
        return state

    async def evict(self) -> int:
        """Close expired and overflow sessions. Returns how many were closed."""
        now = self._clock()
        victims: list[str] = []
        for session_id, state in self._sessions.items():
            if now - state.last_seen < self.idle_ttl_s:
                break
            if not state.lock.locked():
                victims.append(session_id)

        overflow = len(self._sessions) - len(victims) - self.max_sessions
        if overflow > 0:
            for session_id, state in self._sessions.items():
                if overflow <= 0:
                    break
                if session_id in victims or state.lock.locked():
                    continue
                victims.append(session_id)
                overflow -= 1

        for session_id in victims:
            await self.close(session_id)
        if victims:
            logger.info("Evicted %d sessions (%d remain)", len(victims), len(self._sessions))
        return len(victims)

    async def close(self, session_id: str) -> bool:
        state = self._sessions.pop(session_id, None)
        if state is None:
            return False
        if state.observer is not None:
            await state.observer.stop()
        logger.debug("Session closed: %s", session_id)
        return True

    async def close_all(self) -> None:
        for session_id in list(self._sessions):
            await self.close(session_id)

    def __len__(self) -> int:
        return len(self._sessions)
