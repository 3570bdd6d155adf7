"""
Configuration management using pydantic-settings.
All settings loaded from environment variables prefixed with KAG_.
"""

from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class KagSettings(BaseSettings):
    """Engine and logging settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="KAG_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Logging
    log_level: str = Field(default="info", description="Log level")
    log_format: str = Field(default="json", description="Log format (json|console)")
    dev_mode: bool = Field(default=True, description="Development mode")

    # Signal state folding
    sentiment_alpha: float = Field(
        default=0.35, ge=0.05, le=0.9, description="EWMA smoothing factor for sentiment"
    )
    timestamp_retention_days: int = Field(
        default=35, ge=1, description="Rolling window for timestamp lists"
    )
    open_item_retention_days: int = Field(
        default=90, ge=1, description="Rolling window for open blockers and agreements"
    )
    activity_retention_days: int = Field(
        default=30, ge=14, description="Rolling window for daily activity counts"
    )
    timestamp_list_max_items: int = Field(
        default=400, ge=1, description="Hard cap on any timestamp list"
    )

    # Evidence caps
    event_evidence_limit: int = Field(default=15, ge=1, description="Evidence refs kept per event")
    signal_evidence_limit: int = Field(default=20, ge=1, description="Evidence refs kept per signal")
    score_evidence_limit: int = Field(default=60, ge=1, description="Evidence refs attached to scores")
    recommendation_evidence_limit: int = Field(
        default=25, ge=1, description="Evidence refs attached to a recommendation"
    )

    # Template defaults
    default_client_name: str = Field(default="team", description="Fallback client name in templates")
    default_project_name: str = Field(default="the project", description="Fallback project name")

    # Service
    event_batch_limit: int = Field(
        default=500, ge=1, le=5000, description="Max events pulled per refresh"
    )

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        """Only json and console renderers are supported."""
        value = v.strip().lower()
        if value not in ("json", "console"):
            raise ValueError("log_format must be 'json' or 'console'")
        return value


@lru_cache
def get_settings() -> KagSettings:
    """
    Get cached settings instance.
    Uses lru_cache to ensure singleton behavior.
    """
    return KagSettings()
