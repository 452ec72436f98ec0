"""
Application configuration via pydantic-settings.
All config read from environment variables with sensible defaults for local dev.
"""

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings

_REGISTRY_DIR = Path(__file__).resolve().parent / "registry"


class Settings(BaseSettings):
    # App
    app_name: str = "intentflow-api"
    app_version: str = "1.0.0"
    environment: str = Field(default="development", pattern=r"^(development|staging|production)$")
    debug: bool = False

    # Redis: empty disables durable A/B storage (in-memory store is used)
    redis_url: str = ""

    # CORS
    cors_origins: list[str] = Field(
        default=["http://localhost:3000", "http://localhost:8080"]
    )

    # Sentry
    sentry_dsn: str = ""
    sentry_traces_sample_rate: float = Field(default=0.1, ge=0.0, le=1.0)

    # Registries
    templates_registry_path: str = str(_REGISTRY_DIR / "templates.json")
    assets_registry_path: str = str(_REGISTRY_DIR / "assets.json")

    # Intent scoring
    intent_score_floor: float = Field(default=0.1, ge=0.0)
    confidence_multiplier: float = Field(default=1.5, gt=0.0)

    # Context observer
    observer_min_confidence_shift: float = Field(default=0.3, ge=0.0)
    observer_cooldown_ms: int = Field(default=5000, ge=0)
    observer_settle_delay_ms: int = Field(default=2000, ge=0)
    observer_decay_factor: float = Field(default=0.4, ge=0.0, le=1.0)
    observer_scroll_velocity_threshold: float = 800.0  # px/s
    observer_scroll_gap_ms: int = 500
    observer_hover_dwell_ms: int = 1500
    observer_visibility_ratio: float = Field(default=0.5, ge=0.0, le=1.0)
    observer_queue_size: int = Field(default=256, ge=1)
    observer_action_log_size: int = Field(default=200, ge=1)

    # Session table
    session_idle_ttl_s: float = Field(default=1800.0, gt=0.0)
    session_max_count: int = Field(default=10000, ge=1)

    # A/B exploration
    ab_min_sample_size: int = Field(default=10, ge=1)
    ab_storage_key: str = "intentflow_ab"
    ab_enabled_key: str = "intentflow_ab_enabled"
    ab_enabled_by_default: bool = False

    # Analytics
    analytics_buffer_size: int = Field(default=1000, ge=1)

    model_config = {"env_prefix": "", "env_file": ".env", "extra": "ignore"}


settings = Settings()
