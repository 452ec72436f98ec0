"""
Ambient visitor context read by the signal extractors.

Everything here is optional. A field the host could not supply is simply
None (or empty) and the extractor that reads it returns a zero vector.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any
from urllib.parse import parse_qsl, urlsplit


def parse_query_string(raw: str | None) -> dict[str, str]:
    """
    Parse a query string or full URL into a flat dict.

    The last occurrence of a repeated key wins; keys without a value map to ''.

    Examples:
        '?utm_campaign=sale&q=4k'          -> {'utm_campaign': 'sale', 'q': '4k'}
        'https://shop.test/?intent=budget' -> {'intent': 'budget'}
    """
    if not raw:
        return {}
    text = raw.strip()
    if "://" in text:
        text = urlsplit(text).query
    text = text.lstrip("?")
    if not text:
        return {}
    return {k: v for k, v in parse_qsl(text, keep_blank_values=True)}


@dataclass(frozen=True)
class DeviceInfo:
    """Device facts reported by the host page."""

    is_touch: bool = False
    screen_width: int | None = None
    screen_height: int | None = None
    pixel_ratio: float = 1.0


@dataclass(frozen=True)
class VisitorContext:
    """
    Read-only snapshot of one visitor's arrival context.

    Attributes:
        query:          Flat query-string key/values (utm_*, q, intent, persona, behavior, ...).
        referrer:       document.referrer as reported by the host.
        device:         Touch / screen facts.
        local_hour:     Visitor wall-clock hour 0–23.
        persona:        data-intentflow-persona on the hero container.
        script_persona: data-intentflow-persona on the loader script tag.
        page_type:      homepage | product | category | landing.
    """

    query: dict[str, str] = field(default_factory=dict)
    referrer: str | None = None
    device: DeviceInfo | None = None
    local_hour: int | None = None
    persona: str | None = None
    script_persona: str | None = None
    page_type: str | None = None

    @classmethod
    def from_url(cls, url: str | None, **kwargs: Any) -> "VisitorContext":
        return cls(query=parse_query_string(url), **kwargs)

    def param(self, name: str) -> str:
        """Return a query param as a string, '' when absent."""
        value = (self.query or {}).get(name)
        return value if isinstance(value, str) else ""
