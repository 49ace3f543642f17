"""
Configuration management using pydantic-settings.
All settings loaded from environment variables (12-factor app).
"""

from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Engine settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Fulfilment SLA
    sla_target_hours: float = Field(
        default=72.0, gt=0, description="Order-to-shipment target in hours"
    )
    breach_list_limit: int = Field(
        default=5, ge=1, le=100, description="Number of worst SLA breaches reported"
    )

    # Trend window
    trend_days: int = Field(
        default=14, ge=2, le=366, description="Length of the daily GMV trend window"
    )

    # Listing classification
    paused_after_days: int = Field(
        default=45, ge=1, description="Days without orders before a listing is paused"
    )
    cancellation_error_ratio: float = Field(
        default=0.25,
        ge=0.0,
        le=1.0,
        description="Cancellation ratio above which a listing is in error",
    )

    # Logging
    log_level: str = Field(default="info", description="Log level")
    log_format: str = Field(default="json", description="Log format (json|console)")

    # Development
    dev_mode: bool = Field(default=True, description="Development mode")

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        """Restrict log format to the supported renderers."""
        v = v.strip().lower()
        if v not in {"json", "console"}:
            raise ValueError("Log format must be 'json' or 'console'")
        return v


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.
    Uses lru_cache to ensure singleton behavior.
    """
    return Settings()
