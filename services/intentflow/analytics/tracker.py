"""
EventTracker — structured analytics events for the personalization pipeline.

Every event is a record {event, data, timestamp} appended to a bounded
in-process buffer, logged at INFO, and fanned out to any subscribed sinks.

Emitted events:
  decision_made                  one per personalization cycle
  hero_impression                decision handed to the renderer
  cta_click                      visitor clicked the hero CTA
  variant_swap                   hero changed from a previous decision
  behavioral_re_personalization  context observer re-triggered a cycle
  ab_winner                      A/B explorer locked a winner
  render_failed                  renderer raised; decision still returned

A failing sink is logged and skipped; tracking never raises into the pipeline.
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable

from services.intentflow.config import settings
from services.intentflow.intent.types import utc_now_iso

if TYPE_CHECKING:
    from services.intentflow.decision.engine import DecisionResult

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AnalyticsEvent:
    event: str
    data: dict[str, Any] = field(default_factory=dict)
    timestamp: str = field(default_factory=utc_now_iso)
    session_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "event": self.event,
            "data": dict(self.data),
            "timestamp": self.timestamp,
            "sessionId": self.session_id,
        }


Sink = Callable[[AnalyticsEvent], None]


class EventTracker:
    """
    Bounded analytics buffer with optional sinks.

    Usage:
        tracker = EventTracker()
        tracker.subscribe(my_sink)
        tracker.log("decision_made", {"intent": "COMPARE"})
    """

    def __init__(self, buffer_size: int | None = None) -> None:
        self._events: deque[AnalyticsEvent] = deque(
            maxlen=buffer_size or settings.analytics_buffer_size
        )
        self._sinks: list[Sink] = []

    def subscribe(self, sink: Sink) -> None:
        self._sinks.append(sink)

    def log(
        self,
        event_name: str,
        data: dict[str, Any] | None = None,
        session_id: str | None = None,
    ) -> AnalyticsEvent:
        event = AnalyticsEvent(event=event_name, data=dict(data or {}), session_id=session_id)
        self._events.append(event)
        logger.info("analytics event=%s session=%s data=%s", event_name, session_id, event.data)

        for sink in self._sinks:
            try:
                sink(event)
            except Exception:
                logger.warning("analytics sink failed for event=%s", event_name, exc_info=True)
        return event

    # ------------------------------------------------------------------
    # Typed helpers
    # ------------------------------------------------------------------

    def track_decision(self, decision: "DecisionResult", session_id: str | None = None) -> AnalyticsEvent:
        return self.log("decision_made", {
            "intent": decision.intent.value,
            "template": decision.template_id,
            "confidence": decision.confidence,
            "signals_count": len(decision.signals_used),
        }, session_id)

    def track_impression(self, decision: "DecisionResult", session_id: str | None = None) -> AnalyticsEvent:
        return self.log("hero_impression", {
            "intent": decision.intent.value,
            "template": decision.template_id,
            "headline": decision.headline,
            "cta_text": decision.cta_text,
            "confidence": decision.confidence,
            "fallback_used": decision.fallback_used,
            "ab_variant": decision.ab_variant,
        }, session_id)

    def track_cta_click(
        self,
        decision: "DecisionResult",
        element_id: str | None = None,
        session_id: str | None = None,
    ) -> AnalyticsEvent:
        return self.log("cta_click", {
            "intent": decision.intent.value,
            "template": decision.template_id,
            "cta_text": decision.cta_text,
            "cta_link": decision.cta_link,
            "element_id": element_id,
        }, session_id)

    def track_variant_swap(self, from_intent: str, to_intent: str, session_id: str | None = None) -> AnalyticsEvent:
        return self.log("variant_swap", {"from": from_intent, "to": to_intent}, session_id)

    # ------------------------------------------------------------------
    # Buffer access
    # ------------------------------------------------------------------

    def events(self, event_name: str | None = None) -> list[AnalyticsEvent]:
        if event_name is None:
            return list(self._events)
        return [e for e in self._events if e.event == event_name]

    def count(self) -> int:
        return len(self._events)

    def clear(self) -> None:
        self._events.clear()
