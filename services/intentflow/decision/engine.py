"""
DecisionEngine — maps a winning intent to a template and a content bundle.

Flow per decision:
  1. Template: first catalog template (registry order) whose matchIntents
     contains the intent, else the registry's defaultTemplate.
  2. Content: catalog content for the intent, else the DEFAULT entry.
     Image and badge keys resolve through the catalog tables; keys with
     no lookup hit are skipped.
  3. Explanation: signal sentence + template reason + content reason.

fallback_used is True exactly when the intent is DEFAULT *and* no signals
were supplied. A DEFAULT reached through the low-score floor with signals
present is not a fallback. This asymmetry is intentional and pinned by tests.

Decisions are immutable. Overlays (A/B variant, page type) produce new
instances via dataclasses.replace.
"""

from __future__ import annotations

import logging
import math
from dataclasses import asdict, dataclass, field
from typing import Any

from services.intentflow.decision.catalog import (
    DEFAULT_TEMPLATE_ID,
    Catalog,
    ContentSpec,
    TemplateSpec,
)
from services.intentflow.intent.types import (
    Intent,
    IntentResult,
    scores_to_dict,
    utc_now_iso,
    zero_scores,
)

logger = logging.getLogger(__name__)

ENGINE_VERSION = "1.0.0"

# Used only when the catalog has neither intent nor DEFAULT content
_BUILTIN_CONTENT = ContentSpec(
    headline="Monitors Reimagined",
    subheadline="Discover the next generation of displays.",
    cta_text="Explore Collection →",
    cta_link="#collection",
)

_BUILTIN_TEMPLATE = TemplateSpec(
    id=DEFAULT_TEMPLATE_ID,
    name="Impact Hero",
    css_class="intentflow-hero--impact",
)


@dataclass(frozen=True)
class ContentSelection:
    content: ContentSpec
    image: dict[str, Any] | None
    badges: tuple[dict[str, str], ...]
    reason: str


@dataclass(frozen=True)
class DecisionResult:
    """Fully resolved, explainable output of one personalization cycle."""

    intent: Intent
    confidence: float
    template_id: str
    template_name: str
    template_css_class: str
    headline: str
    subheadline: str
    cta_text: str
    cta_link: str
    image: dict[str, Any] | None
    image_key: str | None
    badges: tuple[dict[str, str], ...]
    explanation: str
    signals_used: tuple[str, ...]
    signal_details: tuple[dict[str, Any], ...]
    raw_scores: dict[str, float]
    fallback_used: bool
    engine_version: str = ENGINE_VERSION
    ab_variant: str | None = None
    page_type: str = "homepage"
    timestamp: str = field(default_factory=utc_now_iso)

    def to_dict(self, include_timestamp: bool = True) -> dict[str, Any]:
        data = asdict(self)
        data["intent"] = self.intent.value
        data["badges"] = [dict(b) for b in self.badges]
        data["signals_used"] = list(self.signals_used)
        data["signal_details"] = [dict(s) for s in self.signal_details]
        if not include_timestamp:
            data.pop("timestamp")
        return data


def _percent(confidence: float) -> int:
    return int(math.floor(confidence * 100 + 0.5))


class DecisionEngine:
    """
    Deterministic template + content selector over a read-only Catalog.

    Usage:
        engine = DecisionEngine(catalog)
        decision = engine.decide(scorer.detect(context))
    """

    def __init__(self, catalog: Catalog) -> None:
        self._catalog = catalog

    @property
    def catalog(self) -> Catalog:
        return self._catalog

    # ------------------------------------------------------------------
    # Selection
    # ------------------------------------------------------------------

    def select_template(self, intent: Intent) -> tuple[TemplateSpec, str]:
        registry = self._catalog.templates
        if not registry.templates:
            return _BUILTIN_TEMPLATE, "Fallback: template registry not loaded."

        for template in registry.templates.values():
            if intent.value in template.match_intents:
                return template, f'Template "{template.name}" is optimized for {intent.value} intent.'

        default = registry.templates.get(registry.default_template)
        if default is None:
            logger.warning(
                "defaultTemplate %r missing from registry; using first template",
                registry.default_template,
            )
            default = next(iter(registry.templates.values()))
        return default, f'No intent-specific template found. Using default: "{default.name}".'

    def select_content(self, intent: Intent) -> ContentSelection:
        assets = self._catalog.assets
        content = assets.content.get(intent.value)
        if content is not None:
            reason = f'Content matched to "{intent.value}" intent from asset registry.'
        else:
            content = assets.content.get(Intent.DEFAULT.value)
            if content is not None:
                reason = f'No content defined for "{intent.value}" intent. Using DEFAULT content.'
            else:
                content = _BUILTIN_CONTENT
                reason = "Fallback: asset registry has no usable content."

        image = None
        if content.image_key and content.image_key in assets.images:
            image = assets.images[content.image_key].model_dump()

        badges: list[dict[str, str]] = []
        for key in content.badge_keys:
            badge = assets.badges.get(key)
            if badge is not None:
                badges.append({"key": key, "icon": badge.icon, "label": badge.label})

        return ContentSelection(content=content, image=image, badges=tuple(badges), reason=reason)

    # ------------------------------------------------------------------
    # Explanation
    # ------------------------------------------------------------------

    @staticmethod
    def build_explanation(result: IntentResult, template_reason: str, content_reason: str) -> str:
        parts: list[str] = []
        pct = _percent(result.confidence)

        if result.signals:
            described = ", ".join(
                f'{s.source_type}({s.key}="{s.raw_value}")' for s in result.signals
            )
            if result.intent is Intent.DEFAULT:
                parts.append(
                    f"Detected intent: DEFAULT (confidence: {pct}%); no category scored above "
                    f"the minimum threshold across {len(result.signals)} signal(s): {described}."
                )
            else:
                parts.append(
                    f"Detected intent: {result.intent.value} (confidence: {pct}%) from "
                    f"{len(result.signals)} signal(s): {described}."
                )
        elif result.intent is Intent.DEFAULT:
            parts.append("No signals detected. Using DEFAULT intent.")
        else:
            parts.append(
                f"No signals recorded. Intent {result.intent.value} supplied directly "
                f"(confidence: {pct}%)."
            )

        parts.append(template_reason)
        parts.append(content_reason)
        return " ".join(parts)

    # ------------------------------------------------------------------
    # Decide
    # ------------------------------------------------------------------

    def decide(self, result: IntentResult | None) -> DecisionResult:
        if result is None:
            result = IntentResult(intent=Intent.DEFAULT, confidence=1.0, scores=zero_scores())

        intent = result.intent
        template, template_reason = self.select_template(intent)
        selection = self.select_content(intent)
        content = selection.content

        decision = DecisionResult(
            intent=intent,
            confidence=result.confidence,
            template_id=template.id,
            template_name=template.name,
            template_css_class=template.css_class,
            headline=content.headline,
            subheadline=content.subheadline,
            cta_text=content.cta_text,
            cta_link=content.cta_link,
            image=selection.image,
            image_key=content.image_key,
            badges=selection.badges,
            explanation=self.build_explanation(result, template_reason, selection.reason),
            signals_used=tuple(s.source_type for s in result.signals),
            signal_details=tuple(s.to_dict() for s in result.signals),
            raw_scores=scores_to_dict(result.scores),
            fallback_used=intent is Intent.DEFAULT and not result.signals,
        )

        logger.debug(
            "decide: intent=%s template=%s fallback_used=%s",
            intent.value,
            template.id,
            decision.fallback_used,
        )
        return decision
