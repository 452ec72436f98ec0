"""
Signal taxonomy — lookup tables and weights for every context signal type.

Tier 1 (Override):   weight 1.0        — explicit intent / persona; dominates
Tier 2 (Campaign):   weight 0.5–0.6    — UTM campaign and search keywords
Tier 3 (Source):     weight 0.15–0.35  — referrer, utm_source, behavior token
Tier 4 (Ambient):    weight 0.05–0.15  — device, local hour, resolution
"""

from __future__ import annotations

from services.intentflow.intent.types import Intent

# ---------------------------------------------------------------------------
# Signal weights: maps source_type to its fixed weight
# ---------------------------------------------------------------------------

SIGNAL_WEIGHTS: dict[str, float] = {
    # Tier 1: Override (1.0)
    "query_param": 1.0,
    "persona_override": 1.0,
    "persona_toggle": 1.0,
    "script_persona": 1.0,
    "preview_override": 1.0,
    # Tier 2: Campaign
    "utm_campaign": 0.6,
    "search_query": 0.5,
    # Tier 3: Source
    "utm_source": 0.3,
}

OVERRIDE_WEIGHT = SIGNAL_WEIGHTS["query_param"]

# Params checked for free-text search keywords, in order
SEARCH_QUERY_KEYS: tuple[str, ...] = ("q", "query", "search", "keyword", "keywords")

# utm_source values that indicate an owned-channel buyer
BUYER_UTM_SOURCES: frozenset[str] = frozenset({"email", "newsletter"})

# ---------------------------------------------------------------------------
# Keyword tables
# ---------------------------------------------------------------------------

QUERY_KEYWORDS: dict[Intent, tuple[str, ...]] = {
    Intent.BUY_NOW: (
        "buy", "purchase", "order", "shop", "add to cart", "checkout",
        "get", "deal", "sale", "discount",
    ),
    Intent.COMPARE: (
        "compare", "comparison", "vs", "versus", "best", "top",
        "review", "rating", "benchmark",
    ),
    Intent.USE_CASE: (
        "gaming", "design", "coding", "office", "work", "creative",
        "video editing", "streaming", "programming",
    ),
    Intent.BUDGET: (
        "cheap", "affordable", "budget", "under", "price", "value",
        "low cost", "inexpensive", "save",
    ),
}

# Substring -> intent; every matching substring contributes (cumulative)
UTM_CAMPAIGN_MAP: dict[str, Intent] = {
    "purchase": Intent.BUY_NOW,
    "buy": Intent.BUY_NOW,
    "sale": Intent.BUY_NOW,
    "promo": Intent.BUY_NOW,
    "comparison": Intent.COMPARE,
    "compare": Intent.COMPARE,
    "review": Intent.COMPARE,
    "best_of": Intent.COMPARE,
    "gaming": Intent.USE_CASE,
    "design": Intent.USE_CASE,
    "office": Intent.USE_CASE,
    "work": Intent.USE_CASE,
    "budget": Intent.BUDGET,
    "deals": Intent.BUDGET,
    "savings": Intent.BUDGET,
    "value": Intent.BUDGET,
}

# ---------------------------------------------------------------------------
# Referrer patterns: first match wins, checked in declaration order
# ---------------------------------------------------------------------------

REFERRER_PATTERNS: dict[str, dict] = {
    "google.com/search": {"intent": Intent.COMPARE, "weight": 0.3, "label": "Google Search"},
    "bing.com/search": {"intent": Intent.COMPARE, "weight": 0.3, "label": "Bing Search"},
    "youtube.com": {"intent": Intent.USE_CASE, "weight": 0.25, "label": "YouTube"},
    "reddit.com": {"intent": Intent.COMPARE, "weight": 0.25, "label": "Reddit"},
    "facebook.com": {"intent": Intent.DEFAULT, "weight": 0.15, "label": "Facebook"},
    "instagram.com": {"intent": Intent.DEFAULT, "weight": 0.15, "label": "Instagram"},
    "twitter.com": {"intent": Intent.DEFAULT, "weight": 0.15, "label": "Twitter/X"},
    "x.com": {"intent": Intent.DEFAULT, "weight": 0.15, "label": "Twitter/X"},
    "tiktok.com": {"intent": Intent.DEFAULT, "weight": 0.15, "label": "TikTok"},
    "email": {"intent": Intent.BUY_NOW, "weight": 0.2, "label": "Email Campaign"},
    "slickdeals.net": {"intent": Intent.BUDGET, "weight": 0.35, "label": "SlickDeals"},
    "rtings.com": {"intent": Intent.COMPARE, "weight": 0.35, "label": "Rtings"},
    "pcpartpicker.com": {"intent": Intent.COMPARE, "weight": 0.3, "label": "PCPartPicker"},
}

# ---------------------------------------------------------------------------
# Behavior tokens: discrete on-page action reported with the context
# ---------------------------------------------------------------------------

BEHAVIOR_TOKENS: dict[str, dict] = {
    "fast_scroll": {
        "intent": Intent.COMPARE, "weight": 0.2,
        "description": "Fast scrolling suggests comparison behavior",
    },
    "click_price": {
        "intent": Intent.BUDGET, "weight": 0.3,
        "description": "Clicked on price element",
    },
    "click_cta": {
        "intent": Intent.BUY_NOW, "weight": 0.3,
        "description": "Clicked primary CTA within 5 seconds",
    },
    "hover_specs": {
        "intent": Intent.COMPARE, "weight": 0.2,
        "description": "Hovered over specification details",
    },
    "click_category": {
        "intent": Intent.USE_CASE, "weight": 0.25,
        "description": "Clicked a use-case category",
    },
}

# ---------------------------------------------------------------------------
# Ambient buckets
# ---------------------------------------------------------------------------

MOBILE_MAX_WIDTH = 768
TABLET_MAX_WIDTH = 1024

DEVICE_BUCKETS: dict[str, tuple[Intent, float]] = {
    "mobile": (Intent.BUY_NOW, 0.15),
    "tablet": (Intent.USE_CASE, 0.1),
    "desktop": (Intent.COMPARE, 0.1),
}

# (first_hour, last_hour inclusive, bucket name)
HOUR_RANGES: tuple[tuple[int, int, str], ...] = (
    (0, 5, "late_night"),
    (6, 8, "morning"),
    (9, 17, "work_hours"),
    (18, 23, "evening"),
)

HOUR_BUCKETS: dict[str, tuple[Intent, float]] = {
    "late_night": (Intent.BUY_NOW, 0.05),
    "morning": (Intent.BUDGET, 0.05),
    "work_hours": (Intent.USE_CASE, 0.05),
    "evening": (Intent.COMPARE, 0.05),
}

# (min effective width inclusive, bucket name), checked highest first
RESOLUTION_THRESHOLDS: tuple[tuple[int, str], ...] = (
    (3840, "ultra"),
    (2560, "high"),
    (1366, "standard"),
    (0, "low"),
)

# "standard" carries no evidence either way
RESOLUTION_BUCKETS: dict[str, tuple[Intent, float] | None] = {
    "ultra": (Intent.COMPARE, 0.1),
    "high": (Intent.USE_CASE, 0.1),
    "standard": None,
    "low": (Intent.BUDGET, 0.1),
}


def get_signal_weight(source_type: str) -> float:
    """Return the fixed weight for a source type. Table-driven types return 0.0."""
    return SIGNAL_WEIGHTS.get(source_type, 0.0)


def device_bucket(is_touch: bool, screen_width: int) -> str:
    if is_touch and screen_width < MOBILE_MAX_WIDTH:
        return "mobile"
    if is_touch and screen_width < TABLET_MAX_WIDTH:
        return "tablet"
    return "desktop"


def hour_bucket(hour: int) -> str | None:
    for first, last, name in HOUR_RANGES:
        if first <= hour <= last:
            return name
    return None


def resolution_bucket(effective_width: float) -> str:
    for threshold, name in RESOLUTION_THRESHOLDS:
        if effective_width >= threshold:
            return name
    return "low"
