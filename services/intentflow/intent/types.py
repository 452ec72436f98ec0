"""
Core value types shared by the extractors, scorer and decision engine.

Intent taxonomy (closed, ordered):
  BUY_NOW   — ready to purchase
  COMPARE   — evaluating options side by side
  USE_CASE  — shopping for a specific workload (gaming, design, office)
  BUDGET    — price-sensitive
  DEFAULT   — fallback when no category wins; never a scoring target

The declaration order of Intent is the tie-break order used everywhere a
maximum is taken over categories: the earliest category wins a tie.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


class Intent(str, Enum):
    BUY_NOW = "BUY_NOW"
    COMPARE = "COMPARE"
    USE_CASE = "USE_CASE"
    BUDGET = "BUDGET"
    DEFAULT = "DEFAULT"

    @classmethod
    def parse(cls, raw: str | None) -> "Intent | None":
        """
        Normalise a free-form intent label ('buy-now', 'Compare') to an Intent.

        Returns None when the label does not name a member.
        """
        if not raw:
            return None
        key = str(raw).strip().upper().replace("-", "_")
        try:
            return cls(key)
        except ValueError:
            return None


# Categories eligible to win, in tie-break order
SCORING_INTENTS: tuple[Intent, ...] = (
    Intent.BUY_NOW,
    Intent.COMPARE,
    Intent.USE_CASE,
    Intent.BUDGET,
)

# Mapping Intent -> accumulated score. Always carries all five keys.
ScoreVector = dict[Intent, float]


def zero_scores() -> ScoreVector:
    return {intent: 0.0 for intent in Intent}


def scores_to_dict(scores: ScoreVector) -> dict[str, float]:
    """JSON-ready copy of a score vector keyed by intent name."""
    return {intent.value: round(scores.get(intent, 0.0), 6) for intent in Intent}


def dominant_intent(scores: ScoreVector) -> tuple[Intent | None, float]:
    """
    Return (intent, score) for the highest-scoring non-DEFAULT category.

    Only a strictly greater score replaces the current leader, so ties go
    to the category declared first in SCORING_INTENTS. Returns (None, 0.0)
    when every category is zero.
    """
    leader: Intent | None = None
    best = 0.0
    for intent in SCORING_INTENTS:
        score = scores.get(intent, 0.0)
        if score > best:
            best = score
            leader = intent
    return leader, best


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(frozen=True)
class Signal:
    """
    One piece of weighted evidence for an intent category.

    Attributes:
        source_type:     Extractor that produced it (utm_campaign, referrer, ...).
        key:             Context field that was read (utm_campaign, document.referrer).
        raw_value:       The value found in that field.
        detected_intent: Category this evidence points to.
        weight:          Fixed per-type constant, 0.05–1.0.
        matched_pattern: Keyword / pattern / bucket that matched, if any.
        label:           Display label for the matched pattern.
        description:     Free-text description for behavior-derived signals.
    """

    source_type: str
    key: str
    raw_value: str
    detected_intent: Intent
    weight: float
    matched_pattern: str | None = None
    label: str | None = None
    description: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "type": self.source_type,
            "key": self.key,
            "value": self.raw_value,
            "detectedIntent": self.detected_intent.value,
            "weight": self.weight,
        }
        if self.matched_pattern is not None:
            data["matchedPattern"] = self.matched_pattern
        if self.label is not None:
            data["label"] = self.label
        if self.description is not None:
            data["description"] = self.description
        return data


@dataclass
class ExtractorResult:
    """Output of one extractor: its private score vector plus the signals behind it."""

    scores: ScoreVector = field(default_factory=zero_scores)
    signals: list[Signal] = field(default_factory=list)

    def add(self, signal: Signal) -> None:
        self.signals.append(signal)
        self.scores[signal.detected_intent] += signal.weight


@dataclass(frozen=True)
class IntentResult:
    """Winning intent for one personalization cycle, with its evidence."""

    intent: Intent
    confidence: float
    scores: ScoreVector
    signals: tuple[Signal, ...] = ()
    timestamp: str = field(default_factory=utc_now_iso)

    @property
    def signal_count(self) -> int:
        return len(self.signals)
