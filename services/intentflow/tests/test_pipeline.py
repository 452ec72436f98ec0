"""
Tests for PersonalizationPipeline and SessionRegistry.

Covers the full cycle (detect -> decide -> A/B -> page -> render ->
analytics), renderer failure isolation, CTA click recording and the
observer wiring that re-runs the pipeline with an override intent.
"""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock

import pytest

from services.intentflow.intent.types import Intent
from services.intentflow.observer.events import ClickEvent
from services.intentflow.pipeline import PersonalizationPipeline, SessionRegistry
from services.intentflow.tests.conftest import make_context
from services.intentflow.tests.helpers.fakes import ManualClock


# ---------------------------------------------------------------------------
# personalize()
# ---------------------------------------------------------------------------

class TestPersonalize:
    @pytest.mark.asyncio
    async def test_cycle_stores_decision_and_emits_events(self, pipeline, session_state, tracker):
        decision = await pipeline.personalize(session_state, make_context("?utm_campaign=budget_deals"))

        assert decision.intent is Intent.BUDGET
        assert decision.template_id == "hero-value"
        assert session_state.last_decision is decision
        assert session_state.current_intent is Intent.BUDGET
        assert [e.event for e in tracker.events()] == ["decision_made", "hero_impression"]
        assert all(e.session_id == "sess-test" for e in tracker.events())

    @pytest.mark.asyncio
    async def test_empty_context_is_fallback(self, pipeline, session_state):
        decision = await pipeline.personalize(session_state)
        assert decision.intent is Intent.DEFAULT
        assert decision.fallback_used is True

    @pytest.mark.asyncio
    async def test_second_cycle_emits_variant_swap(self, pipeline, session_state, tracker):
        await pipeline.personalize(session_state, make_context("?intent=compare"))
        await pipeline.personalize(session_state, override_intent=Intent.BUY_NOW)

        [swap] = tracker.events("variant_swap")
        assert swap.data == {"from": "COMPARE", "to": "BUY_NOW"}
        assert session_state.current_intent is Intent.BUY_NOW

    @pytest.mark.asyncio
    async def test_repeated_identical_cycle_emits_no_swap(self, pipeline, session_state, tracker):
        await pipeline.personalize(session_state, make_context("?intent=compare"))
        await pipeline.personalize(session_state, make_context("?intent=compare"))
        await pipeline.personalize(session_state, override_intent=Intent.COMPARE)

        assert len(tracker.events("decision_made")) == 3
        assert tracker.events("variant_swap") == []

    @pytest.mark.asyncio
    async def test_override_reuses_stored_context_for_page_type(self, pipeline, session_state):
        await pipeline.personalize(session_state, make_context("?intent=compare", page_type="product"))
        decision = await pipeline.personalize(session_state, override_intent=Intent.BUDGET)

        assert decision.page_type == "product"
        assert decision.headline == "Best Value in Its Class"
        assert decision.signals_used == ("preview_override",)

    @pytest.mark.asyncio
    async def test_page_type_argument_wins(self, pipeline, session_state):
        decision = await pipeline.personalize(
            session_state, make_context("?intent=buy_now", page_type="product"), page_type="landing"
        )
        assert decision.page_type == "landing"
        assert decision.headline == "Exclusive Offer — Today Only"

    @pytest.mark.asyncio
    async def test_ab_disabled_leaves_variant_unset(self, pipeline, session_state, store):
        decision = await pipeline.personalize(session_state, make_context("?intent=compare"))
        assert decision.ab_variant is None
        assert await store.get("intentflow_ab") is None

    @pytest.mark.asyncio
    async def test_ab_enabled_by_query(self, pipeline, session_state, explorer):
        decision = await pipeline.personalize(
            session_state, make_context("?intent=compare&intentflow_ab=true")
        )
        assert decision.ab_variant in ("A", "B")
        assert decision.explanation.endswith(f"[A/B Test: Variant {decision.ab_variant} assigned]")

        state = await explorer.load_state()
        assert state.impressions == {f"COMPARE_{decision.ab_variant}": 1}

    @pytest.mark.asyncio
    async def test_ab_overlay_applies_before_page_overlay(self, pipeline, session_state, explorer):
        await explorer.enable()
        decision = await pipeline.personalize(
            session_state, make_context("?intent=budget", page_type="category")
        )
        assert decision.ab_variant is not None
        # page override copy is the final copy
        assert decision.headline == "Quality Monitors Under $300"
        assert "[A/B Test:" in decision.explanation
        assert decision.explanation.endswith("[Multi-page: category page overrides applied]")

    @pytest.mark.asyncio
    async def test_malformed_ab_document_does_not_break_cycle(self, pipeline, session_state, store):
        await store.set("intentflow_ab", '{"impressions": {"COMPARE_A": "oops"}}')
        decision = await pipeline.personalize(
            session_state, make_context("?intent=compare&intentflow_ab=true")
        )
        assert decision.intent is Intent.COMPARE
        assert decision.ab_variant in ("A", "B")


class TestRenderer:
    @pytest.mark.asyncio
    async def test_renderer_receives_final_decision(self, catalog, explorer, tracker, session_state):
        renderer = AsyncMock()
        pipeline = PersonalizationPipeline(catalog, explorer, tracker, renderer=renderer)

        decision = await pipeline.personalize(session_state, make_context("?intent=use_case"))
        renderer.assert_awaited_once_with(decision)

    @pytest.mark.asyncio
    async def test_render_failure_still_returns_decision(self, catalog, explorer, tracker, session_state):
        renderer = AsyncMock(side_effect=RuntimeError("dom gone"))
        pipeline = PersonalizationPipeline(catalog, explorer, tracker, renderer=renderer)

        decision = await pipeline.personalize(session_state, make_context("?intent=use_case"))

        assert decision.intent is Intent.USE_CASE
        assert session_state.last_decision is decision
        [failed] = tracker.events("render_failed")
        assert failed.data["error"] == "dom gone"
        assert tracker.events("hero_impression")


class TestCtaClick:
    @pytest.mark.asyncio
    async def test_no_decision_yet(self, pipeline, session_state, tracker):
        assert await pipeline.record_cta_click(session_state) is False
        assert tracker.events("cta_click") == []

    @pytest.mark.asyncio
    async def test_click_tracked(self, pipeline, session_state, tracker):
        await pipeline.personalize(session_state, make_context("?intent=buy_now"))
        assert await pipeline.record_cta_click(session_state, "hero-cta") is True

        [click] = tracker.events("cta_click")
        assert click.data["intent"] == "BUY_NOW"
        assert click.data["element_id"] == "hero-cta"

    @pytest.mark.asyncio
    async def test_click_counted_for_ab_variant(self, pipeline, session_state, explorer):
        decision = await pipeline.personalize(
            session_state, make_context("?intent=budget&intentflow_ab=true")
        )
        await pipeline.record_cta_click(session_state)

        state = await explorer.load_state()
        assert state.clicks == {f"BUDGET_{decision.ab_variant}": 1}


class TestConcurrency:
    @pytest.mark.asyncio
    async def test_concurrent_cycles_are_serialized(self, pipeline, session_state, tracker):
        order: list[str] = []
        real_is_enabled = pipeline.explorer.is_enabled

        async def slow_is_enabled(query=None):
            order.append("enter")
            await asyncio.sleep(0.01)
            order.append("exit")
            return await real_is_enabled(query)

        pipeline.explorer.is_enabled = slow_is_enabled
        await asyncio.gather(
            pipeline.personalize(session_state, override_intent=Intent.COMPARE),
            pipeline.personalize(session_state, override_intent=Intent.BUDGET),
        )

        assert order == ["enter", "exit", "enter", "exit"]
        assert len(tracker.events("decision_made")) == 2
        assert len(tracker.events("variant_swap")) == 1


# ---------------------------------------------------------------------------
# SessionRegistry
# ---------------------------------------------------------------------------

class TestSessionRegistry:
    @pytest.mark.asyncio
    async def test_get_or_create_is_idempotent(self, pipeline):
        registry = SessionRegistry(pipeline)
        first = registry.get_or_create("s1")
        assert registry.get_or_create("s1") is first
        assert registry.get("missing") is None
        assert len(registry) == 1
        await registry.close_all()

    @pytest.mark.asyncio
    async def test_close_stops_observer(self, pipeline):
        registry = SessionRegistry(pipeline)
        state = registry.get_or_create("s1")
        state.observer.start()

        assert await registry.close("s1") is True
        assert state.observer.closed
        assert registry.get("s1") is None
        assert await registry.close("s1") is False

    @pytest.mark.asyncio
    async def test_observer_retrigger_runs_pipeline_with_override(self, pipeline, tracker):
        registry = SessionRegistry(pipeline)
        state = registry.get_or_create("s1")
        await pipeline.personalize(state, make_context("?intent=compare"))

        observer = state.observer
        observer.begin_observing()
        await observer.handle(ClickEvent(class_name="hero-cta"))
        await observer.handle(ClickEvent(class_name="hero-cta"))

        assert state.current_intent is Intent.BUY_NOW
        assert state.last_decision.signals_used == ("preview_override",)
        [swap] = tracker.events("variant_swap")
        assert swap.data == {"from": "COMPARE", "to": "BUY_NOW"}
        assert tracker.events("behavioral_re_personalization")[0].session_id == "s1"

        # BUY_NOW is now the active decision, so more BUY_NOW evidence does not re-trigger
        observer.accumulator.last_trigger_ms = None
        observer.accumulator.scores[Intent.BUY_NOW] = 0.9
        assert await observer.check_for_repersonalization() is False
        await registry.close_all()


class TestSessionEviction:
    @pytest.mark.asyncio
    async def test_idle_sessions_are_evicted(self, pipeline):
        clock = ManualClock(start_ms=0)
        registry = SessionRegistry(pipeline, idle_ttl_s=60, clock=clock)
        stale = registry.get_or_create("stale")
        stale.observer.start()
        clock.advance(30)
        registry.get_or_create("fresh")
        clock.advance(40)

        assert await registry.evict() == 1
        assert stale.observer.closed
        assert registry.get("stale") is None
        assert registry.get("fresh") is not None
        await registry.close_all()

    @pytest.mark.asyncio
    async def test_lookup_refreshes_idle_timer(self, pipeline):
        clock = ManualClock(start_ms=0)
        registry = SessionRegistry(pipeline, idle_ttl_s=60, clock=clock)
        registry.get_or_create("s1")
        clock.advance(50)
        assert registry.get("s1") is not None
        clock.advance(50)

        assert await registry.evict() == 0
        assert len(registry) == 1
        await registry.close_all()

    @pytest.mark.asyncio
    async def test_least_recently_used_evicted_past_max(self, pipeline):
        clock = ManualClock(start_ms=0)
        registry = SessionRegistry(pipeline, max_sessions=2, clock=clock)
        for session_id in ("a", "b", "c"):
            registry.get_or_create(session_id)
            clock.advance(1)
        registry.get("a")

        assert await registry.evict() == 1
        assert registry.get("b") is None
        assert registry.get("a") is not None
        assert registry.get("c") is not None
        await registry.close_all()

    @pytest.mark.asyncio
    async def test_session_mid_cycle_is_kept(self, pipeline):
        clock = ManualClock(start_ms=0)
        registry = SessionRegistry(pipeline, idle_ttl_s=10, clock=clock)
        busy = registry.get_or_create("busy")
        clock.advance(20)

        async with busy.lock:
            assert await registry.evict() == 0
        assert await registry.evict() == 1
