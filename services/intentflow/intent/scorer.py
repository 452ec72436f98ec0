"""
Intent scorer — aggregates extractor score vectors into one winning intent.

Algorithm:
  0. A query-string override (intent= / persona=) is scored on its own.
  1. Sum all vectors component-wise into totals (all five keys present).
  2. Take the maximum over BUY_NOW, COMPARE, USE_CASE, BUDGET in that order;
     a later category replaces the leader only with a strictly greater score,
     so ties resolve to the earliest category.
  3. max < floor (0.1)  -> DEFAULT with confidence 1.0. "No evidence" is
     reported as a fully confident default, not a low-confidence guess.
  4. Otherwise confidence = min(max / sum(totals) * 1.5, 1.0), rounded
     half-up to two decimals. Concentration beats raw magnitude.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Iterable

from services.intentflow.config import settings
from services.intentflow.intent.types import (
    Intent,
    IntentResult,
    ScoreVector,
    Signal,
    dominant_intent,
    zero_scores,
)
from services.intentflow.signals.context import VisitorContext
from services.intentflow.signals.extractors import extract_all
from services.intentflow.signals.taxonomy import OVERRIDE_WEIGHT

# Query-string overrides: when present, no other extractor is consulted
QUERY_OVERRIDE_SOURCES = frozenset({"query_param", "persona_override"})

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScoreSummary:
    intent: Intent
    confidence: float
    scores: ScoreVector


def round_confidence(value: float) -> float:
    """Half-up rounding to two decimals (0.125 -> 0.13, not banker's 0.12)."""
    return math.floor(value * 100 + 0.5) / 100


def aggregate(
    score_vectors: Iterable[ScoreVector],
    floor: float | None = None,
    multiplier: float | None = None,
) -> ScoreSummary:
    floor = settings.intent_score_floor if floor is None else floor
    multiplier = settings.confidence_multiplier if multiplier is None else multiplier

    totals = zero_scores()
    for vector in score_vectors:
        for intent, score in vector.items():
            totals[Intent(intent)] += max(float(score), 0.0)

    winner, max_score = dominant_intent(totals)

    if winner is None or max_score < floor:
        return ScoreSummary(intent=Intent.DEFAULT, confidence=1.0, scores=totals)

    total = sum(totals.values())
    confidence = min(max_score / total * multiplier, 1.0) if total > 0 else 1.0
    return ScoreSummary(
        intent=winner,
        confidence=round_confidence(confidence),
        scores=totals,
    )


def detect(context: VisitorContext | None) -> IntentResult:
    """
    Run every extractor against the context and aggregate the result.

    An explicit ``intent=`` or ``persona=`` query override is returned alone,
    so persona attributes and ambient evidence can never outvote it.
    """
    results = extract_all(context)
    for result in results:
        if any(s.source_type in QUERY_OVERRIDE_SOURCES for s in result.signals):
            results = [result]
            break
    summary = aggregate(r.scores for r in results)
    signals = tuple(s for r in results for s in r.signals)

    logger.debug(
        "detect: intent=%s confidence=%.2f signals=%d",
        summary.intent.value,
        summary.confidence,
        len(signals),
    )
    return IntentResult(
        intent=summary.intent,
        confidence=summary.confidence,
        scores=summary.scores,
        signals=signals,
    )


def override_result(intent: Intent) -> IntentResult:
    """
    Synthetic result for an explicit override (preview / behavioral re-trigger).

    Bypasses extraction: one 'preview_override' signal, confidence 1.0.
    """
    scores = zero_scores()
    scores[intent] = OVERRIDE_WEIGHT
    signal = Signal(
        source_type="preview_override",
        key="manual",
        raw_value=intent.value,
        detected_intent=intent,
        weight=OVERRIDE_WEIGHT,
    )
    return IntentResult(intent=intent, confidence=1.0, scores=scores, signals=(signal,))
