"""
ContextObserver — mid-session behavioral re-personalization.

State machine:
  IDLE       -> OBSERVING   after the settle delay from start()
  OBSERVING  runs until the session ends (stop() cancels every task)

While OBSERVING each interaction event adds a weighted increment to one
intent in the session's BehaviorAccumulator. After every increment:

  1. cooldown   — skip if a re-trigger completed less than cooldown_ms ago
  2. dominant   — highest non-DEFAULT score (earliest category wins ties)
  3. threshold  — skip if dominant score < min_confidence_shift (0.3)
  4. shift      — skip if dominant equals the active decision's intent
  5. re-trigger — run a personalization cycle with the dominant intent as
                  override (the scorer is bypassed), then record the
                  completion time and multiply every score by decay (0.4)

Scores are decayed, never cleared, so repeated strong evidence can
re-trigger later while a single noisy event cannot flip the hero back.

Events flow through a bounded asyncio.Queue drained by one consumer task,
so increments and checks for a session never interleave. Events arriving
while IDLE are dropped.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import re
import time
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable

from services.intentflow.analytics.tracker import EventTracker
from services.intentflow.config import settings
from services.intentflow.intent.types import (
    Intent,
    ScoreVector,
    dominant_intent,
    scores_to_dict,
    utc_now_iso,
    zero_scores,
)
from services.intentflow.observer.events import (
    ClickEvent,
    HoverDwell,
    HoverEnd,
    HoverStart,
    InteractionEvent,
    ScrollSample,
    VisibilityChange,
)
from services.intentflow.observer.scroll import ScrollTracker

logger = logging.getLogger(__name__)

# (intent, weight) per behavioral action
_FAST_SCROLL = (Intent.COMPARE, 0.05)
_CLICK_PRICE = (Intent.BUDGET, 0.15)
_CLICK_CTA = (Intent.BUY_NOW, 0.2)
_CLICK_SPECS = (Intent.COMPARE, 0.15)
_CLICK_CATEGORY = (Intent.USE_CASE, 0.15)
_HOVER_USE_CASE = (Intent.USE_CASE, 0.1)
_HOVER_PRODUCT = (Intent.BUY_NOW, 0.08)
_PRODUCT_VIEW = (Intent.BUY_NOW, 0.05)

# class / id fragment -> (intent, weight, label)
_SECTION_MAP: dict[str, tuple[Intent, float, str]] = {
    "products-section": (Intent.BUY_NOW, 0.1, "Product grid section"),
    "trust-section": (Intent.BUY_NOW, 0.08, "Trust badges section"),
}

_PRICE_TEXT = re.compile(r"\$\d")
_CLICK_TEXT_LIMIT = 50
_QUOTE_LIMIT = 30

Retrigger = Callable[[Intent], Awaitable[Any]]


def _monotonic_ms() -> float:
    return time.monotonic() * 1000


class ObserverState(str, Enum):
    IDLE = "idle"
    OBSERVING = "observing"


@dataclass(frozen=True)
class ObservedAction:
    type: str
    intent: Intent
    weight: float
    description: str
    timestamp: str = field(default_factory=utc_now_iso)

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "intent": self.intent.value,
            "weight": self.weight,
            "description": self.description,
            "timestamp": self.timestamp,
        }


@dataclass
class BehaviorAccumulator:
    """Session-scoped, long-lived decayable score vector."""

    scores: ScoreVector = field(default_factory=zero_scores)
    last_trigger_ms: float | None = None
    actions: deque[ObservedAction] = field(
        default_factory=lambda: deque(maxlen=settings.observer_action_log_size)
    )
    # every action ever added; ``actions`` keeps only the newest
    action_count: int = 0

    def add(self, action: ObservedAction) -> None:
        self.scores[action.intent] += action.weight
        self.actions.append(action)
        self.action_count += 1

    def decay(self, factor: float) -> None:
        for intent in self.scores:
            self.scores[intent] *= factor


class ContextObserver:
    """
    Per-session behavioral accumulator with cooldown/decay re-triggering.

    Usage:
        observer = ContextObserver(
            session_id,
            on_retrigger=lambda intent: pipeline.personalize(state, override_intent=intent),
            current_intent=lambda: state.current_intent,
            tracker=tracker,
        )
        observer.start()
        observer.submit(ClickEvent(class_name="price-tag"))
        ...
        await observer.stop()
    """

    def __init__(
        self,
        session_id: str,
        on_retrigger: Retrigger,
        current_intent: Callable[[], Intent | None],
        tracker: EventTracker | None = None,
        clock: Callable[[], float] = _monotonic_ms,
        min_confidence_shift: float | None = None,
        cooldown_ms: int | None = None,
        settle_delay_ms: int | None = None,
        decay_factor: float | None = None,
        scroll_velocity_threshold: float | None = None,
        scroll_gap_ms: int | None = None,
        hover_dwell_ms: int | None = None,
        visibility_ratio: float | None = None,
        queue_size: int | None = None,
        action_log_size: int | None = None,
    ) -> None:
        self.session_id = session_id
        self._on_retrigger = on_retrigger
        self._current_intent = current_intent
        self._tracker = tracker
        self._clock = clock

        self.min_confidence_shift = _pick(min_confidence_shift, settings.observer_min_confidence_shift)
        self.cooldown_ms = _pick(cooldown_ms, settings.observer_cooldown_ms)
        self.settle_delay_ms = _pick(settle_delay_ms, settings.observer_settle_delay_ms)
        self.decay_factor = _pick(decay_factor, settings.observer_decay_factor)
        self.scroll_velocity_threshold = _pick(
            scroll_velocity_threshold, settings.observer_scroll_velocity_threshold
        )
        self.hover_dwell_ms = _pick(hover_dwell_ms, settings.observer_hover_dwell_ms)
        self.visibility_ratio = _pick(visibility_ratio, settings.observer_visibility_ratio)

        self.state = ObserverState.IDLE
        self.accumulator = BehaviorAccumulator(
            actions=deque(maxlen=_pick(action_log_size, settings.observer_action_log_size))
        )
        self.current_session_intent: Intent | None = None
        self.repersonalization_count = 0

        self._scroll = ScrollTracker(gap_ms=scroll_gap_ms)
        self._seen_elements: set[str] = set()
        self._hover_target: str | None = None
        self._hover_task: asyncio.Task | None = None
        self._settle_task: asyncio.Task | None = None
        self._consumer_task: asyncio.Task | None = None
        self._queue: asyncio.Queue[InteractionEvent] = asyncio.Queue(
            maxsize=_pick(queue_size, settings.observer_queue_size)
        )
        self._closed = False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Schedule the settle delay and start draining the event queue."""
        if self._consumer_task is not None or self._closed:
            return
        self._consumer_task = asyncio.create_task(self._consume())
        self._settle_task = asyncio.create_task(self._settle())

    async def _settle(self) -> None:
        await asyncio.sleep(self.settle_delay_ms / 1000)
        self.begin_observing()

    def begin_observing(self) -> None:
        if self._closed or self.state is ObserverState.OBSERVING:
            return
        self.state = ObserverState.OBSERVING
        logger.info("ContextObserver active: session=%s", self.session_id)

    async def stop(self) -> None:
        """Cancel settle, dwell and consumer tasks. The observer cannot be restarted."""
        self._closed = True
        tasks = [t for t in (self._settle_task, self._hover_task, self._consumer_task) if t is not None]
        for task in tasks:
            task.cancel()
        for task in tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._settle_task = self._hover_task = self._consumer_task = None
        logger.debug("ContextObserver stopped: session=%s", self.session_id)

    @property
    def closed(self) -> bool:
        return self._closed

    # ------------------------------------------------------------------
    # Event intake
    # ------------------------------------------------------------------

    def submit(self, event: InteractionEvent) -> bool:
        """Queue an event for the consumer. Returns False if dropped (full or closed)."""
        if self._closed:
            return False
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            logger.warning("ContextObserver queue full, dropping %s: session=%s",
                           type(event).__name__, self.session_id)
            return False
        return True

    async def drain(self) -> None:
        """Wait until every queued event has been handled."""
        await self._queue.join()

    async def _consume(self) -> None:
        while True:
            event = await self._queue.get()
            try:
                await self.handle(event)
            except Exception:
                logger.warning("ContextObserver failed on %s: session=%s",
                               type(event).__name__, self.session_id, exc_info=True)
            finally:
                self._queue.task_done()

    async def handle(self, event: InteractionEvent) -> None:
        """Translate one event into behavioral increments (no-op while IDLE)."""
        if self.state is not ObserverState.OBSERVING:
            logger.debug("ContextObserver idle, ignoring %s", type(event).__name__)
            return

        if isinstance(event, ScrollSample):
            await self._on_scroll(event)
        elif isinstance(event, ClickEvent):
            await self._on_click(event)
        elif isinstance(event, VisibilityChange):
            await self._on_visibility(event)
        elif isinstance(event, HoverStart):
            self._on_hover_start(event)
        elif isinstance(event, HoverEnd):
            self._on_hover_end(event)
        elif isinstance(event, HoverDwell):
            await self._on_hover_dwell(event)

    # ------------------------------------------------------------------
    # Event handlers
    # ------------------------------------------------------------------

    async def _on_scroll(self, event: ScrollSample) -> None:
        velocity = self._scroll.observe(event.position_y, event.timestamp_ms)
        if velocity is not None and velocity > self.scroll_velocity_threshold:
            await self.add_behavior_score(
                *_FAST_SCROLL, "fast_scroll",
                f"Rapid scrolling at {round(velocity)}px/s suggests comparison behavior",
            )

    async def _on_click(self, event: ClickEvent) -> None:
        class_name = (event.class_name or "").lower()
        text = (event.text or "").strip().lower()[:_CLICK_TEXT_LIMIT]
        href = (event.href or "").lower()
        quoted = text[:_QUOTE_LIMIT]

        if "price" in class_name or _PRICE_TEXT.search(text) or "deal" in text:
            await self.add_behavior_score(*_CLICK_PRICE, "click_price", f'Clicked on price element: "{quoted}"')

        if "cta" in class_name or "add to cart" in text or "buy" in text or "shop" in text:
            await self.add_behavior_score(*_CLICK_CTA, "click_cta", f'Clicked purchase CTA: "{quoted}"')

        if "spec" in class_name or "compare" in text or "vs" in text or "compare" in href:
            await self.add_behavior_score(*_CLICK_SPECS, "click_specs", "Clicked comparison/spec element")

        if "category" in class_name or any(
            word in text for word in ("gaming", "design", "creative", "office")
        ):
            await self.add_behavior_score(
                *_CLICK_CATEGORY, "click_category", f'Clicked use-case category: "{quoted}"'
            )

    async def _on_visibility(self, event: VisibilityChange) -> None:
        if event.ratio < self.visibility_ratio:
            return

        class_name = (event.class_name or "").lower()
        element_key = event.element_id or f"{class_name}|{event.title}"
        if element_key in self._seen_elements:
            return

        for fragment, (intent, weight, label) in _SECTION_MAP.items():
            if fragment in class_name or event.element_id == fragment:
                self._seen_elements.add(element_key)
                await self.add_behavior_score(intent, weight, "section_view", f"Scrolled to {label}")

        if "product-card" in class_name:
            self._seen_elements.add(element_key)
            await self.add_behavior_score(*_PRODUCT_VIEW, "product_view", f"Viewed product: {event.title}")

    def _on_hover_start(self, event: HoverStart) -> None:
        if event.target_id == self._hover_target:
            return
        self._cancel_hover()
        self._hover_target = event.target_id
        self._hover_task = asyncio.create_task(self._dwell(event))

    def _on_hover_end(self, event: HoverEnd) -> None:
        if event.target_id == self._hover_target:
            self._cancel_hover()
            self._hover_target = None

    def _cancel_hover(self) -> None:
        if self._hover_task is not None and not self._hover_task.done():
            self._hover_task.cancel()
        self._hover_task = None

    async def _dwell(self, event: HoverStart) -> None:
        await asyncio.sleep(self.hover_dwell_ms / 1000)
        self.submit(HoverDwell(target_id=event.target_id, category=event.category))

    async def _on_hover_dwell(self, event: HoverDwell) -> None:
        category = (event.category or "").lower()
        if "gaming" in category or "creative" in category:
            await self.add_behavior_score(
                *_HOVER_USE_CASE, "hover_dwell", f"Extended hover on {category} product"
            )
        else:
            await self.add_behavior_score(
                *_HOVER_PRODUCT, "hover_dwell",
                f"Extended hover on product card ({self.hover_dwell_ms}ms)",
            )

    # ------------------------------------------------------------------
    # Accumulation + re-trigger
    # ------------------------------------------------------------------

    async def add_behavior_score(
        self,
        intent: Intent,
        weight: float,
        action_type: str,
        description: str,
    ) -> bool:
        """Add one increment and run the re-trigger check. Returns True if it re-triggered."""
        self.accumulator.add(ObservedAction(
            type=action_type, intent=intent, weight=weight, description=description,
        ))
        logger.debug(
            "ContextObserver %s: %s (+%s -> %s) session=%s",
            action_type, description, weight, intent.value, self.session_id,
        )
        return await self.check_for_repersonalization()

    async def check_for_repersonalization(self) -> bool:
        acc = self.accumulator
        now = self._clock()

        if acc.last_trigger_ms is not None and now - acc.last_trigger_ms < self.cooldown_ms:
            return False

        dominant, max_score = dominant_intent(acc.scores)
        if dominant is None or max_score < self.min_confidence_shift:
            return False

        current = self._current_intent() or Intent.DEFAULT
        if dominant is current:
            return False

        try:
            await self._on_retrigger(dominant)
        except Exception:
            logger.warning(
                "ContextObserver re-personalization failed: session=%s to=%s",
                self.session_id, dominant.value, exc_info=True,
            )
            return False

        acc.last_trigger_ms = self._clock()
        acc.decay(self.decay_factor)
        self.current_session_intent = dominant
        self.repersonalization_count += 1

        trigger = acc.actions[-1].type if acc.actions else None
        logger.info(
            "ContextObserver re-personalized: session=%s from=%s to=%s score=%.2f",
            self.session_id, current.value, dominant.value, max_score,
        )
        if self._tracker is not None:
            self._tracker.log("behavioral_re_personalization", {
                "from_intent": current.value,
                "to_intent": dominant.value,
                "behavior_score": round(max_score, 2),
                "actions_count": acc.action_count,
                "trigger": trigger,
            }, session_id=self.session_id)
        return True

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    def report(self) -> dict[str, Any]:
        return {
            "sessionId": self.session_id,
            "state": self.state.value,
            "isEnabled": not self._closed,
            "behaviorScores": scores_to_dict(self.accumulator.scores),
            "observedActions": [a.to_dict() for a in self.accumulator.actions],
            "rePersonalizationCount": self.repersonalization_count,
            "currentSessionIntent": (
                self.current_session_intent.value if self.current_session_intent else None
            ),
            "scrollVelocityAvg": self._scroll.average,
        }


def _pick(value, default):
    return default if value is None else value
