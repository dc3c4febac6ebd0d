"""
Configuration management for the Hydrus Auto-Tagger.
"""

from typing import Optional
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings with validation."""

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
        validate_assignment=True,
        protected_namespaces=(),
    )

    # Hydrus Client API
    hydrus_host: str = Field(default="http://127.0.0.1:45869")
    hydrus_access_key: str = Field(default="")

    # Model
    model_dir: str = Field(default="models")

    # Tagging
    threshold: float = Field(default=0.35, ge=0.0, le=1.0)
    tag_service: str = Field(default="my tags")
    dry_run: bool = Field(default=False)

    # Scheduling
    interval: int = Field(default=10, gt=0, description="Minutes between daemon searches")
    workers: Optional[int] = Field(default=None, gt=0, description="Item-level worker pool size (default: CPU count)")

    # HTTP behaviour
    max_retries: int = Field(default=3, ge=0)
    retry_delay: float = Field(default=1.0, gt=0.0)
    request_timeout: float = Field(default=60.0, gt=0.0)

    # Logging
    log_level: str = Field(default="INFO")

    # Health endpoint (0 disables it)
    health_port: int = Field(default=0, ge=0)

    @field_validator("hydrus_host")
    @classmethod
    def validate_hydrus_host(cls, v):
        """Ensure the Hydrus URL is properly formatted."""
        if not v.startswith(("http://", "https://")):
            raise ValueError("HYDRUS_HOST must start with http:// or https://")
        return v.rstrip("/")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v):
        """Ensure the log level is valid."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"LOG_LEVEL must be one of: {valid_levels}")
        return v.upper()

    @field_validator("tag_service")
    @classmethod
    def validate_tag_service(cls, v):
        if not v:
            raise ValueError("TAG_SERVICE must not be empty")
        return v


# Global settings instance
settings = Settings()
