"""
Catalog — the static, read-only template and asset registry.

Two JSON documents feed it:
  templates.json  {templates: {id: {name, matchIntents[], cssClass}}, defaultTemplate}
  assets.json     {images, badges, content: {intent: {...}}, variants, pageOverrides}

Both are validated with pydantic. Older registry spellings (``intents``,
``cta_text``, ``image``, ``badges``) are accepted alongside the camelCase
ones. A document that is missing, unreadable or invalid is replaced by the
embedded fallback for that document only; loading never raises.

The catalog is loaded once at startup and never mutated afterwards.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, model_validator

logger = logging.getLogger(__name__)

DEFAULT_TEMPLATE_ID = "hero-impact"


class CatalogUnavailable(Exception):
    """Raised when a registry document cannot be read or parsed."""


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")


# ---------------------------------------------------------------------------
# Registry models
# ---------------------------------------------------------------------------

class TemplateSpec(_Frozen):
    id: str
    name: str
    match_intents: list[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("matchIntents", "match_intents", "intents"),
    )
    css_class: str = Field(default="", validation_alias=AliasChoices("cssClass", "css_class"))


class TemplateRegistry(_Frozen):
    templates: dict[str, TemplateSpec] = Field(default_factory=dict)
    default_template: str = Field(
        default=DEFAULT_TEMPLATE_ID,
        validation_alias=AliasChoices("defaultTemplate", "default_template"),
    )

    @model_validator(mode="before")
    @classmethod
    def _fill_template_ids(cls, data: Any) -> Any:
        """Template entries may omit ``id``; the registry key supplies it."""
        if isinstance(data, dict) and isinstance(data.get("templates"), dict):
            templates = {}
            for key, spec in data["templates"].items():
                if isinstance(spec, dict) and "id" not in spec:
                    spec = {**spec, "id": key}
                templates[key] = spec
            data = {**data, "templates": templates}
        return data


class ImageSpec(_Frozen):
    src: str
    alt: str = ""
    intents: list[str] = Field(default_factory=list)


class BadgeSpec(_Frozen):
    label: str
    icon: str = ""


class CopySpec(_Frozen):
    """Headline / subheadline / CTA copy — used for variants and page overrides."""

    headline: str
    subheadline: str = ""
    cta_text: str = Field(default="", validation_alias=AliasChoices("ctaText", "cta_text"))
    cta_link: str = Field(default="#", validation_alias=AliasChoices("ctaLink", "cta_link"))


class ContentSpec(CopySpec):
    image_key: str | None = Field(default=None, validation_alias=AliasChoices("imageKey", "image_key", "image"))
    badge_keys: list[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("badgeKeys", "badge_keys", "badges"),
    )


class AssetRegistry(_Frozen):
    images: dict[str, ImageSpec] = Field(default_factory=dict)
    badges: dict[str, BadgeSpec] = Field(default_factory=dict)
    content: dict[str, ContentSpec] = Field(default_factory=dict)
    variants: dict[str, CopySpec] = Field(default_factory=dict)
    page_overrides: dict[str, dict[str, CopySpec]] = Field(
        default_factory=dict,
        validation_alias=AliasChoices("pageOverrides", "page_overrides"),
    )


class Catalog(_Frozen):
    templates: TemplateRegistry
    assets: AssetRegistry
    source: str = "registry"

    @classmethod
    def fallback(cls) -> "Catalog":
        """Built-in minimal catalog used when no registry could be loaded."""
        return cls(
            templates=TemplateRegistry.model_validate(FALLBACK_TEMPLATES),
            assets=AssetRegistry.model_validate(FALLBACK_ASSETS),
            source="fallback",
        )

    @classmethod
    def from_documents(cls, templates: dict[str, Any], assets: dict[str, Any]) -> "Catalog":
        """Build a catalog from already-parsed documents (raises ValidationError)."""
        return cls(
            templates=TemplateRegistry.model_validate(templates),
            assets=AssetRegistry.model_validate(assets),
        )


# ---------------------------------------------------------------------------
# Embedded fallback documents
# ---------------------------------------------------------------------------

FALLBACK_TEMPLATES: dict[str, Any] = {
    "templates": {
        "hero-impact": {
            "name": "Impact Hero",
            "matchIntents": ["BUY_NOW", "USE_CASE"],
            "cssClass": "intentflow-hero--impact",
        },
        "hero-comparison": {
            "name": "Comparison Hero",
            "matchIntents": ["COMPARE"],
            "cssClass": "intentflow-hero--comparison",
        },
        "hero-value": {
            "name": "Value Hero",
            "matchIntents": ["BUDGET"],
            "cssClass": "intentflow-hero--value",
        },
    },
    "defaultTemplate": DEFAULT_TEMPLATE_ID,
}

FALLBACK_ASSETS: dict[str, Any] = {
    "images": {
        "hero-default": {"src": "assets/hero-default.png", "alt": "Premium monitor on elegant desk"},
    },
    "badges": {
        "free-shipping": {"icon": "🚚", "label": "Free Shipping"},
        "warranty": {"icon": "🛡️", "label": "3-Year Warranty"},
    },
    "content": {
        "DEFAULT": {
            "headline": "Monitors Reimagined",
            "subheadline": "Discover the next generation of displays.",
            "ctaText": "Explore Collection →",
            "ctaLink": "#collection",
            "imageKey": "hero-default",
            "badgeKeys": ["free-shipping", "warranty"],
        },
    },
}


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------

def _read_registry(path: str | Path) -> dict[str, Any]:
    try:
        raw = Path(path).read_text(encoding="utf-8")
        data = json.loads(raw)
    except (OSError, json.JSONDecodeError) as exc:
        raise CatalogUnavailable(f"Failed to load {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise CatalogUnavailable(f"Registry {path} is not a JSON object")
    return data


def _load_document(path: str | Path | None, model: type[BaseModel], fallback: dict[str, Any]) -> tuple[Any, bool]:
    """Return (validated document, loaded_from_disk)."""
    if path:
        try:
            return model.model_validate(_read_registry(path)), True
        except (CatalogUnavailable, ValidationError):
            logger.warning("Registry %s unavailable, using embedded fallback", path, exc_info=True)
    return model.model_validate(fallback), False


def load_catalog(
    templates_path: str | Path | None,
    assets_path: str | Path | None,
) -> Catalog:
    """
    Load both registry documents, substituting the embedded fallback per document.

    Never raises: catalog-unavailable is recovered locally.
    """
    templates, templates_ok = _load_document(templates_path, TemplateRegistry, FALLBACK_TEMPLATES)
    assets, assets_ok = _load_document(assets_path, AssetRegistry, FALLBACK_ASSETS)

    if templates_ok and assets_ok:
        source = "registry"
    elif templates_ok or assets_ok:
        source = "partial"
    else:
        source = "fallback"

    catalog = Catalog(templates=templates, assets=assets, source=source)
    logger.info(
        "Catalog loaded: source=%s templates=%d content=%d",
        source,
        len(templates.templates),
        len(assets.content),
    )
    return catalog
