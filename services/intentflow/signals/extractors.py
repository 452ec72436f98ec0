"""
Signal extractors.

Each extractor is a pure function ``(VisitorContext) -> ExtractorResult``:
no side effects, callable in any order, and tolerant of missing fields
(absence yields an empty result with a zero vector).

Extractor registry (run order of extract_all):
  query       -> detect_from_query_params   intent=/persona= overrides, UTM, search keywords
  referrer    -> detect_from_referrer       first matching referrer pattern only
  behavior    -> detect_from_behavior       discrete behavior token from the query
  persona     -> detect_from_persona        hero / script persona attributes
  device      -> detect_from_device         touch + width -> device bucket
  hour        -> detect_from_local_hour     local hour -> time-of-day bucket
  resolution  -> detect_from_resolution     width x pixel ratio -> resolution bucket
"""

from __future__ import annotations

import logging
from typing import Callable

from services.intentflow.intent.types import ExtractorResult, Intent, Signal
from services.intentflow.signals.context import VisitorContext
from services.intentflow.signals.taxonomy import (
    BEHAVIOR_TOKENS,
    BUYER_UTM_SOURCES,
    DEVICE_BUCKETS,
    HOUR_BUCKETS,
    OVERRIDE_WEIGHT,
    QUERY_KEYWORDS,
    REFERRER_PATTERNS,
    RESOLUTION_BUCKETS,
    SEARCH_QUERY_KEYS,
    UTM_CAMPAIGN_MAP,
    device_bucket,
    get_signal_weight,
    hour_bucket,
    resolution_bucket,
)

logger = logging.getLogger(__name__)

Extractor = Callable[[VisitorContext], ExtractorResult]


# ---------------------------------------------------------------------------
# Query string / UTM
# ---------------------------------------------------------------------------

def _override_signal(source_type: str, key: str, raw: str) -> Signal | None:
    intent = Intent.parse(raw)
    if intent is None:
        return None
    return Signal(
        source_type=source_type,
        key=key,
        raw_value=raw,
        detected_intent=intent,
        weight=OVERRIDE_WEIGHT,
    )


def detect_from_query_params(context: VisitorContext) -> ExtractorResult:
    """
    Score the query string.

    An ``intent=`` or ``persona=`` param naming a known intent short-circuits:
    the override signal is returned alone and no other query evidence is read.
    Otherwise UTM campaign substrings, buyer utm_source values and search
    keywords all contribute cumulatively.
    """
    result = ExtractorResult()

    for key, source_type in (("intent", "query_param"), ("persona", "persona_override")):
        raw = context.param(key)
        if raw:
            override = _override_signal(source_type, key, raw)
            if override is not None:
                result.add(override)
                return result

    campaign = context.param("utm_campaign")
    if campaign:
        lowered = campaign.lower()
        for keyword, intent in UTM_CAMPAIGN_MAP.items():
            if keyword in lowered:
                result.add(Signal(
                    source_type="utm_campaign",
                    key="utm_campaign",
                    raw_value=campaign,
                    detected_intent=intent,
                    weight=get_signal_weight("utm_campaign"),
                    matched_pattern=keyword,
                ))

    source = context.param("utm_source")
    if source and source.lower() in BUYER_UTM_SOURCES:
        result.add(Signal(
            source_type="utm_source",
            key="utm_source",
            raw_value=source,
            detected_intent=Intent.BUY_NOW,
            weight=get_signal_weight("utm_source"),
        ))

    for key in SEARCH_QUERY_KEYS:
        text = context.param(key)
        if not text:
            continue
        lowered = text.lower()
        for intent, keywords in QUERY_KEYWORDS.items():
            for keyword in keywords:
                if keyword in lowered:
                    result.add(Signal(
                        source_type="search_query",
                        key=key,
                        raw_value=text,
                        detected_intent=intent,
                        weight=get_signal_weight("search_query"),
                        matched_pattern=keyword,
                    ))

    return result


# ---------------------------------------------------------------------------
# Referrer
# ---------------------------------------------------------------------------

def detect_from_referrer(context: VisitorContext) -> ExtractorResult:
    """Match the referrer against REFERRER_PATTERNS; only the first hit counts."""
    result = ExtractorResult()
    referrer = context.referrer or ""
    if not referrer:
        return result

    lowered = referrer.lower()
    for pattern, config in REFERRER_PATTERNS.items():
        if pattern in lowered:
            result.add(Signal(
                source_type="referrer",
                key="document.referrer",
                raw_value=referrer,
                detected_intent=config["intent"],
                weight=config["weight"],
                matched_pattern=pattern,
                label=config["label"],
            ))
            break

    return result


# ---------------------------------------------------------------------------
# Behavior token
# ---------------------------------------------------------------------------

def detect_from_behavior(context: VisitorContext) -> ExtractorResult:
    result = ExtractorResult()
    token = context.param("behavior").lower()
    config = BEHAVIOR_TOKENS.get(token)
    if config is None:
        return result

    result.add(Signal(
        source_type="behavior",
        key="on_page_action",
        raw_value=token,
        detected_intent=config["intent"],
        weight=config["weight"],
        description=config["description"],
    ))
    return result


# ---------------------------------------------------------------------------
# Persona attributes
# ---------------------------------------------------------------------------

def detect_from_persona(context: VisitorContext) -> ExtractorResult:
    """
    Persona attributes set by the host (hero container and loader script).

    Both attributes are read; each valid one adds a 1.0 override signal.
    """
    result = ExtractorResult()
    for raw, source_type, key in (
        (context.persona, "persona_toggle", "data-intentflow-persona"),
        (context.script_persona, "script_persona", "script[data-intentflow-persona]"),
    ):
        if raw:
            signal = _override_signal(source_type, key, raw)
            if signal is not None:
                result.add(signal)
    return result


# ---------------------------------------------------------------------------
# Ambient: device, hour, resolution
# ---------------------------------------------------------------------------

def detect_from_device(context: VisitorContext) -> ExtractorResult:
    result = ExtractorResult()
    device = context.device
    if device is None or not device.screen_width or device.screen_width <= 0:
        return result

    bucket = device_bucket(bool(device.is_touch), device.screen_width)
    intent, weight = DEVICE_BUCKETS[bucket]
    result.add(Signal(
        source_type="device_class",
        key="device",
        raw_value=f"touch={str(bool(device.is_touch)).lower()},width={device.screen_width}",
        detected_intent=intent,
        weight=weight,
        matched_pattern=bucket,
    ))
    return result


def detect_from_local_hour(context: VisitorContext) -> ExtractorResult:
    result = ExtractorResult()
    hour = context.local_hour
    if hour is None or isinstance(hour, bool):
        return result
    try:
        hour = int(hour)
    except (TypeError, ValueError):
        return result

    bucket = hour_bucket(hour)
    if bucket is None:
        logger.debug("local_hour out of range: %r", hour)
        return result

    intent, weight = HOUR_BUCKETS[bucket]
    result.add(Signal(
        source_type="local_hour",
        key="local_hour",
        raw_value=str(hour),
        detected_intent=intent,
        weight=weight,
        matched_pattern=bucket,
    ))
    return result


def detect_from_resolution(context: VisitorContext) -> ExtractorResult:
    result = ExtractorResult()
    device = context.device
    if device is None or not device.screen_width or device.screen_width <= 0:
        return result

    ratio = device.pixel_ratio if device.pixel_ratio and device.pixel_ratio > 0 else 1.0
    effective = device.screen_width * ratio
    bucket = resolution_bucket(effective)
    mapped = RESOLUTION_BUCKETS.get(bucket)
    if mapped is None:
        return result

    intent, weight = mapped
    result.add(Signal(
        source_type="screen_resolution",
        key="effective_width",
        raw_value=str(int(effective)),
        detected_intent=intent,
        weight=weight,
        matched_pattern=bucket,
    ))
    return result


EXTRACTORS: tuple[Extractor, ...] = (
    detect_from_query_params,
    detect_from_referrer,
    detect_from_behavior,
    detect_from_persona,
    detect_from_device,
    detect_from_local_hour,
    detect_from_resolution,
)


def extract_all(context: VisitorContext | None) -> list[ExtractorResult]:
    """Run every extractor in registry order. A None context yields empty results."""
    ctx = context or VisitorContext()
    results = [extractor(ctx) for extractor in EXTRACTORS]
    logger.debug(
        "extract_all: %d signals from %d extractors",
        sum(len(r.signals) for r in results),
        len(results),
    )
    return results
