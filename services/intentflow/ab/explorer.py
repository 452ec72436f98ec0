"""
ABExplorer — two-variant content exploration per intent with a winner lock.

How it works:
  1. Each intent has variant A (catalog content) and variant B (catalog
     ``variants`` copy).
  2. assign_variant(intent): a locked winner is returned as-is; otherwise an
     existing assignment is returned (sticky per intent per storage scope,
     i.e. per store, not per visitor session); otherwise A or B is drawn
     50/50 and persisted.
  3. record_impression / record_click increment per-(intent, variant) counters.
  4. After every impression: once impressions(A) + impressions(B) for the
     intent reach min_sample_size, the variant with the higher CTR
     (clicks / impressions, 0 when no impressions) is locked; ties go to A.
     The lock is permanent. This is a raw-count heuristic, not a
     significance test.

Persistence:
  One JSON document under ``settings.ab_storage_key``:
    {"assignments": {intent: v}, "impressions": {"INTENT_V": n},
     "clicks": {"INTENT_V": n}, "winners": {intent: v}}
  Every mutation is a plain read-modify-write of that document. Two writers
  sharing the store (several tabs, several workers) can lose increments;
  this is a known hazard and is left as-is so counter semantics match a
  single writer exactly.

Degradation:
  StorageUnavailable is caught here. Assignment falls back to a fresh random
  draw per call, counters are not recorded, and nothing propagates.
"""

from __future__ import annotations

import json
import logging
import random
from dataclasses import dataclass, field, replace
from typing import Any

from services.intentflow.ab.store import KeyValueStore, StorageUnavailable
from services.intentflow.analytics.tracker import EventTracker
from services.intentflow.config import settings
from services.intentflow.decision.catalog import Catalog
from services.intentflow.decision.engine import DecisionResult
from services.intentflow.intent.types import Intent

logger = logging.getLogger(__name__)

VARIANTS: tuple[str, str] = ("A", "B")


def _counter_key(intent: Intent, variant: str) -> str:
    return f"{intent.value}_{variant}"


def _ctr(clicks: int, impressions: int) -> float:
    return clicks / impressions if impressions > 0 else 0.0


@dataclass
class ABState:
    assignments: dict[str, str] = field(default_factory=dict)
    impressions: dict[str, int] = field(default_factory=dict)
    clicks: dict[str, int] = field(default_factory=dict)
    winners: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_json(cls, raw: str | None) -> "ABState":
        if not raw:
            return cls()
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("A/B state is not valid JSON; starting fresh")
            return cls()
        if not isinstance(data, dict):
            return cls()
        try:
            return cls(
                assignments=dict(data.get("assignments") or {}),
                impressions={k: int(v) for k, v in (data.get("impressions") or {}).items()},
                clicks={k: int(v) for k, v in (data.get("clicks") or {}).items()},
                winners=dict(data.get("winners") or {}),
            )
        except (TypeError, ValueError, AttributeError) as exc:
            logger.warning("A/B state has malformed fields (%s); starting fresh", exc)
            return cls()

    def to_json(self) -> str:
        return json.dumps({
            "assignments": self.assignments,
            "impressions": self.impressions,
            "clicks": self.clicks,
            "winners": self.winners,
        }, sort_keys=True)


class ABExplorer:
    """
    Usage:
        explorer = ABExplorer(store, tracker=tracker)
        variant = await explorer.assign_variant(Intent.COMPARE)
        await explorer.record_impression(Intent.COMPARE, variant)
    """

    def __init__(
        self,
        store: KeyValueStore,
        tracker: EventTracker | None = None,
        min_sample_size: int | None = None,
        storage_key: str | None = None,
        enabled_key: str | None = None,
        enabled_by_default: bool | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self._store = store
        self._tracker = tracker
        self.min_sample_size = min_sample_size or settings.ab_min_sample_size
        self._storage_key = storage_key or settings.ab_storage_key
        self._enabled_key = enabled_key or settings.ab_enabled_key
        self._enabled_by_default = (
            settings.ab_enabled_by_default if enabled_by_default is None else enabled_by_default
        )
        self._rng = rng or random.Random()

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    async def load_state(self) -> ABState:
        """Raises StorageUnavailable."""
        return ABState.from_json(await self._store.get(self._storage_key))

    async def _save_state(self, state: ABState) -> None:
        await self._store.set(self._storage_key, state.to_json())

    def _draw(self) -> str:
        return "A" if self._rng.random() < 0.5 else "B"

    # ------------------------------------------------------------------
    # Assignment
    # ------------------------------------------------------------------

    async def assign_variant(self, intent: Intent) -> str:
        try:
            state = await self.load_state()
        except StorageUnavailable:
            logger.warning("A/B storage unavailable; random variant for %s", intent.value, exc_info=True)
            return self._draw()

        winner = state.winners.get(intent.value)
        if winner in VARIANTS:
            return winner

        assigned = state.assignments.get(intent.value)
        if assigned in VARIANTS:
            return assigned

        variant = self._draw()
        state.assignments[intent.value] = variant
        try:
            await self._save_state(state)
        except StorageUnavailable:
            logger.warning("A/B assignment for %s not persisted", intent.value, exc_info=True)

        logger.debug("A/B assigned %s -> %s", intent.value, variant)
        return variant

    # ------------------------------------------------------------------
    # Counters
    # ------------------------------------------------------------------

    async def record_impression(self, intent: Intent, variant: str) -> str | None:
        """
        Count an impression and run the winner check.

        Returns the variant locked by this impression, or None.
        """
        try:
            state = await self.load_state()
            key = _counter_key(intent, variant)
            state.impressions[key] = state.impressions.get(key, 0) + 1
            locked = self.check_for_winner(intent, state)
            await self._save_state(state)
        except StorageUnavailable:
            logger.warning("A/B impression for %s/%s not recorded", intent.value, variant, exc_info=True)
            return None

        if locked is not None:
            self._announce_winner(intent, state)
        return locked

    async def record_click(self, intent: Intent, variant: str) -> None:
        try:
            state = await self.load_state()
            key = _counter_key(intent, variant)
            state.clicks[key] = state.clicks.get(key, 0) + 1
            await self._save_state(state)
        except StorageUnavailable:
            logger.warning("A/B click for %s/%s not recorded", intent.value, variant, exc_info=True)

    def check_for_winner(self, intent: Intent, state: ABState) -> str | None:
        """Lock a winner on ``state`` if the sample threshold is met. Returns the new winner."""
        if intent.value in state.winners:
            return None

        imp_a = state.impressions.get(_counter_key(intent, "A"), 0)
        imp_b = state.impressions.get(_counter_key(intent, "B"), 0)
        if imp_a + imp_b < self.min_sample_size:
            return None

        ctr_a = _ctr(state.clicks.get(_counter_key(intent, "A"), 0), imp_a)
        ctr_b = _ctr(state.clicks.get(_counter_key(intent, "B"), 0), imp_b)
        winner = "A" if ctr_a >= ctr_b else "B"
        state.winners[intent.value] = winner
        return winner

    def _announce_winner(self, intent: Intent, state: ABState) -> None:
        winner = state.winners[intent.value]
        imp_a = state.impressions.get(_counter_key(intent, "A"), 0)
        imp_b = state.impressions.get(_counter_key(intent, "B"), 0)
        ctr_a = _ctr(state.clicks.get(_counter_key(intent, "A"), 0), imp_a)
        ctr_b = _ctr(state.clicks.get(_counter_key(intent, "B"), 0), imp_b)

        logger.info(
            "A/B winner for %s: variant %s (ctrA=%.2f ctrB=%.2f impressions=%d)",
            intent.value, winner, ctr_a, ctr_b, imp_a + imp_b,
        )
        if self._tracker is not None:
            self._tracker.log("ab_winner", {
                "intent": intent.value,
                "winner": winner,
                "ctrA": ctr_a,
                "ctrB": ctr_b,
                "totalImpressions": imp_a + imp_b,
            })

    # ------------------------------------------------------------------
    # Overlay
    # ------------------------------------------------------------------

    async def apply_variant(self, decision: DecisionResult, catalog: Catalog) -> DecisionResult:
        """
        Assign a variant for the decision's intent, swap in variant-B copy when
        the catalog defines it, and record the impression.
        """
        intent = decision.intent
        variant = await self.assign_variant(intent)
        alt = catalog.assets.variants.get(intent.value)

        if variant == "B" and alt is not None:
            applied = replace(
                decision,
                headline=alt.headline,
                subheadline=alt.subheadline,
                cta_text=alt.cta_text,
                cta_link=alt.cta_link,
                ab_variant="B",
                explanation=f"{decision.explanation} [A/B Test: Variant B assigned]",
            )
        else:
            applied = replace(
                decision,
                ab_variant="A",
                explanation=f"{decision.explanation} [A/B Test: Variant A assigned]",
            )

        await self.record_impression(intent, variant)
        return applied

    # ------------------------------------------------------------------
    # Enablement
    # ------------------------------------------------------------------

    async def is_enabled(self, query: dict[str, str] | None = None) -> bool:
        if query and query.get("intentflow_ab") == "true":
            return True
        try:
            flag = await self._store.get(self._enabled_key)
        except StorageUnavailable:
            return self._enabled_by_default
        if flag is None:
            return self._enabled_by_default
        return flag == "true"

    async def enable(self) -> None:
        try:
            await self._store.set(self._enabled_key, "true")
        except StorageUnavailable:
            logger.warning("A/B enable flag not persisted", exc_info=True)

    async def disable(self) -> None:
        try:
            await self._store.set(self._enabled_key, "false")
        except StorageUnavailable:
            logger.warning("A/B disable flag not persisted", exc_info=True)

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    async def report(self) -> dict[str, Any]:
        try:
            state = await self.load_state()
        except StorageUnavailable:
            logger.warning("A/B storage unavailable; empty report", exc_info=True)
            state = ABState()

        report: dict[str, Any] = {}
        for intent in Intent:
            per_variant: dict[str, dict[str, Any]] = {}
            total = 0
            for variant in VARIANTS:
                imp = state.impressions.get(_counter_key(intent, variant), 0)
                clk = state.clicks.get(_counter_key(intent, variant), 0)
                total += imp
                per_variant[f"variant{variant}"] = {
                    "impressions": imp,
                    "clicks": clk,
                    "ctr": f"{round(_ctr(clk, imp) * 100)}%",
                }
            report[intent.value] = {
                **per_variant,
                "winner": state.winners.get(intent.value, "pending"),
                "totalImpressions": total,
                "sampleNeeded": self.min_sample_size,
            }
        return report

    async def reset(self) -> None:
        try:
            await self._store.delete(self._storage_key)
        except StorageUnavailable:
            logger.warning("A/B reset failed", exc_info=True)
