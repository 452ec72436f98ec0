"""
Tests for the intent scorer: aggregation, floor, confidence formula,
tie-breaking and end-to-end detection from a VisitorContext.
"""

from __future__ import annotations

import pytest

from services.intentflow.decision.engine import DecisionEngine
from services.intentflow.intent.scorer import (
    aggregate,
    detect,
    override_result,
    round_confidence,
)
from services.intentflow.intent.types import Intent, dominant_intent, zero_scores
from services.intentflow.signals.context import VisitorContext
from services.intentflow.tests.conftest import make_context, make_device


def _vector(**scores: float):
    vector = zero_scores()
    for name, value in scores.items():
        vector[Intent(name)] = value
    return vector


# ---------------------------------------------------------------------------
# aggregate()
# ---------------------------------------------------------------------------

class TestAggregate:
    def test_no_vectors_is_confident_default(self):
        summary = aggregate([])
        assert summary.intent is Intent.DEFAULT
        assert summary.confidence == 1.0
        assert set(summary.scores) == set(Intent)

    def test_below_floor_is_default(self):
        summary = aggregate([_vector(COMPARE=0.05), _vector(BUY_NOW=0.04)])
        assert summary.intent is Intent.DEFAULT
        assert summary.confidence == 1.0

    def test_exactly_floor_wins(self):
        summary = aggregate([_vector(BUDGET=0.1)])
        assert summary.intent is Intent.BUDGET

    def test_single_category_confidence_capped_at_one(self):
        summary = aggregate([_vector(COMPARE=0.6)])
        assert summary.intent is Intent.COMPARE
        assert summary.confidence == 1.0

    def test_confidence_reflects_concentration(self):
        # 0.6 / (0.6 + 0.5) * 1.5 = 0.818... -> 0.82
        summary = aggregate([_vector(COMPARE=0.6), _vector(USE_CASE=0.5)])
        assert summary.intent is Intent.COMPARE
        assert summary.confidence == 0.82

    def test_default_scores_count_toward_total(self):
        # 0.3 / (0.3 + 0.6) * 1.5 = 0.5
        summary = aggregate([_vector(COMPARE=0.3, DEFAULT=0.6)])
        assert summary.intent is Intent.COMPARE
        assert summary.confidence == 0.5

    def test_vectors_sum_componentwise(self):
        summary = aggregate([_vector(BUY_NOW=0.3), _vector(BUY_NOW=0.3), _vector(BUDGET=0.5)])
        assert summary.scores[Intent.BUY_NOW] == pytest.approx(0.6)
        assert summary.intent is Intent.BUY_NOW

    @pytest.mark.parametrize("first,second", [
        ("BUY_NOW", "COMPARE"),
        ("COMPARE", "USE_CASE"),
        ("USE_CASE", "BUDGET"),
        ("BUY_NOW", "BUDGET"),
    ])
    def test_ties_go_to_earlier_category(self, first, second):
        summary = aggregate([_vector(**{second: 0.5}), _vector(**{first: 0.5})])
        assert summary.intent is Intent(first)

    def test_custom_floor_and_multiplier(self):
        summary = aggregate([_vector(COMPARE=0.3, BUDGET=0.3)], floor=0.5)
        assert summary.intent is Intent.DEFAULT

        summary = aggregate([_vector(COMPARE=0.4, BUDGET=0.4)], multiplier=1.0)
        assert summary.confidence == 0.5

    def test_confidence_always_in_range(self):
        vectors = [
            _vector(BUY_NOW=0.15, COMPARE=0.1, USE_CASE=0.05),
            _vector(BUDGET=1.0, COMPARE=1.0, USE_CASE=1.0, BUY_NOW=1.0, DEFAULT=1.0),
            _vector(USE_CASE=0.11),
        ]
        for vector in vectors:
            assert 0.0 <= aggregate([vector]).confidence <= 1.0


class TestRoundConfidence:
    @pytest.mark.parametrize("value,expected", [
        (0.125, 0.13),
        (0.8181818, 0.82),
        (0.5, 0.5),
        (1.0, 1.0),
    ])
    def test_half_up(self, value, expected):
        assert round_confidence(value) == expected


class TestDominantIntent:
    def test_all_zero(self):
        assert dominant_intent(zero_scores()) == (None, 0.0)

    def test_default_never_dominant(self):
        assert dominant_intent(_vector(DEFAULT=5.0, BUDGET=0.2)) == (Intent.BUDGET, 0.2)


# ---------------------------------------------------------------------------
# detect()
# ---------------------------------------------------------------------------

class TestDetect:
    def test_no_context_is_default_without_signals(self):
        result = detect(None)
        assert result.intent is Intent.DEFAULT
        assert result.confidence == 1.0
        assert result.signals == ()

    def test_intent_param_wins_over_everything(self):
        ctx = make_context(
            "?intent=budget&utm_campaign=gaming_launch",
            referrer="https://www.google.com/search?q=x",
            device=make_device(is_touch=True, screen_width=390),
            local_hour=2,
        )
        result = detect(ctx)
        assert result.intent is Intent.BUDGET
        assert result.confidence == 1.0
        assert [s.source_type for s in result.signals] == ["query_param"]

    @pytest.mark.parametrize("attrs", [
        {"persona": "buy-now"},
        {"script_persona": "compare"},
        {"persona": "buy_now", "script_persona": "use_case"},
    ])
    def test_intent_param_beats_persona_attributes(self, attrs):
        result = detect(make_context("?intent=budget", **attrs))
        assert result.intent is Intent.BUDGET
        assert result.confidence == 1.0
        assert result.scores[Intent.BUY_NOW] == 0.0

    def test_persona_param_beats_persona_attributes(self):
        result = detect(make_context("?persona=use_case", persona="buy_now", script_persona="buy_now"))
        assert result.intent is Intent.USE_CASE
        assert [s.source_type for s in result.signals] == ["persona_override"]

    def test_google_comparison_campaign(self, catalog):
        ctx = make_context(
            "?utm_campaign=comparison",
            referrer="https://www.google.com/search?q=4k+monitor",
        )
        result = detect(ctx)

        assert result.intent is Intent.COMPARE
        assert [s.source_type for s in result.signals] == ["utm_campaign", "referrer"]
        assert all(s.detected_intent is Intent.COMPARE for s in result.signals)
        assert result.confidence > 0.5
        assert DecisionEngine(catalog).decide(result).template_id == "hero-comparison"

    def test_comparison_shopper(self):
        ctx = make_context(
            "?utm_campaign=monitor_review&q=best+4k+monitor",
            referrer="https://www.rtings.com/monitor",
        )
        result = detect(ctx)
        assert result.intent is Intent.COMPARE
        # review(0.6) + best(0.5) + rtings(0.35) all COMPARE
        assert result.scores[Intent.COMPARE] == pytest.approx(1.45)
        assert result.confidence == 1.0

    def test_ambient_only_can_fall_below_floor(self):
        ctx = VisitorContext(local_hour=10)
        result = detect(ctx)
        assert result.intent is Intent.DEFAULT
        assert result.signal_count == 1

    def test_detect_is_deterministic(self):
        ctx = make_context("?q=cheap+office+monitor", local_hour=20)
        first, second = detect(ctx), detect(ctx)
        assert first.intent == second.intent
        assert first.confidence == second.confidence
        assert first.scores == second.scores


class TestOverrideResult:
    def test_override_bypasses_extraction(self):
        result = override_result(Intent.USE_CASE)
        assert result.intent is Intent.USE_CASE
        assert result.confidence == 1.0
        assert len(result.signals) == 1
        assert result.signals[0].source_type == "preview_override"
        assert result.scores[Intent.USE_CASE] == 1.0
