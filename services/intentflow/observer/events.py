"""
Typed interaction events consumed by the ContextObserver.

Hosts report raw interactions; the observer turns them into weighted
behavioral increments. HoverDwell is normally produced by the observer's
own dwell timer (HoverStart held for the dwell interval) but a host that
measures dwell itself may send it directly.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Union


@dataclass(frozen=True)
class ScrollSample:
    position_y: float
    timestamp_ms: float


@dataclass(frozen=True)
class ClickEvent:
    class_name: str = ""
    text: str = ""
    href: str = ""


@dataclass(frozen=True)
class HoverStart:
    target_id: str
    category: str = ""


@dataclass(frozen=True)
class HoverEnd:
    target_id: str


@dataclass(frozen=True)
class HoverDwell:
    target_id: str
    category: str = ""


@dataclass(frozen=True)
class VisibilityChange:
    element_id: str = ""
    class_name: str = ""
    ratio: float = 1.0
    title: str = ""


InteractionEvent = Union[ScrollSample, ClickEvent, HoverStart, HoverEnd, HoverDwell, VisibilityChange]
