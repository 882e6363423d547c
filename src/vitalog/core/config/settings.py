"""Application settings loaded from environment variables."""

from __future__ import annotations

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings


def _default_aliases() -> dict[str, str]:
    return {
        "w": "weight",
        "bf": "body_fat",
        "c": "cardio",
        "s": "strength",
        "sl": "sleep_hours",
        "sq": "sleep_quality",
        "wa": "water",
        "p": "pain",
        "so": "soreness",
        "cal": "calories_in",
        "st": "screen_time",
    }


class Settings(BaseSettings):
    """vitalog server configuration."""

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    # Server
    # Default to loopback: the tracker has no auth layer.
    vitalog_host: str = "127.0.0.1"
    vitalog_port: int = 8001
    vitalog_log_level: str = "info"
    vitalog_allow_insecure_bind: bool = False

    # Storage (health data bank)
    db_path: str = "~/.vitalog/health.db"
    encryption_key: str = ""

    # Tracker preferences
    unit_system: Literal["metric", "imperial"] = "metric"
    metric_aliases: dict[str, str] = Field(default_factory=_default_aliases)
    height_cm: float | None = None

    # Alert thresholds
    pain_threshold: int = 5
    pain_consecutive_days: int = 3
    anomaly_baseline_days: int = 30
    anomaly_threshold: Literal["relaxed", "moderate", "strict"] = "moderate"

    def resolve_alias(self, name: str) -> str:
        """Resolve a metric alias (``w`` -> ``weight``); unknown names pass through."""
        return self.metric_aliases.get(name, name)


def get_settings() -> Settings:
    """Create and return a Settings instance."""
    return Settings()
