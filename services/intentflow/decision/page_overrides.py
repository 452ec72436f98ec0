"""
Page-type copy overrides (multi-page support).

The same intent reads differently on a product page than on the homepage.
For non-homepage page types the catalog's pageOverrides table replaces the
headline, subheadline and CTA; template and image stay as decided.
Unknown page types and pages without an override entry behave as homepage.
"""

from __future__ import annotations

from dataclasses import replace

from services.intentflow.decision.catalog import Catalog
from services.intentflow.decision.engine import DecisionResult
from services.intentflow.intent.types import Intent

HOMEPAGE = "homepage"
PAGE_TYPES: tuple[str, ...] = (HOMEPAGE, "product", "category", "landing")


def normalize_page_type(page_type: str | None) -> str:
    value = (page_type or HOMEPAGE).strip().lower()
    return value if value in PAGE_TYPES else HOMEPAGE


def apply_page_overrides(
    decision: DecisionResult,
    catalog: Catalog,
    page_type: str | None,
) -> DecisionResult:
    page = normalize_page_type(page_type)
    table = catalog.assets.page_overrides.get(page)
    if page == HOMEPAGE or not table:
        return replace(decision, page_type=HOMEPAGE)

    copy = table.get(decision.intent.value) or table.get(Intent.DEFAULT.value)
    if copy is None:
        return replace(decision, page_type=HOMEPAGE)

    return replace(
        decision,
        headline=copy.headline,
        subheadline=copy.subheadline,
        cta_text=copy.cta_text,
        cta_link=copy.cta_link,
        page_type=page,
        explanation=f"{decision.explanation} [Multi-page: {page} page overrides applied]",
    )
