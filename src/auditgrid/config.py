"""Configuration using pydantic-settings."""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from auditgrid.overlay import DEFAULT_PALETTE


class Settings(BaseSettings):
    """Settings loaded from ``AUDITGRID_*`` environment variables or ``.env``."""

    model_config = SettingsConfigDict(
        env_prefix="AUDITGRID_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Workbook service
    api_base_url: str = "http://localhost:8000/api/engagements/engagement/classification/excel"
    access_token: str = ""
    timeout: int = 60

    # Actor recorded in audit entries when the caller does not name one
    default_actor: str = "system"

    # Mapping colors, handed out in order
    palette: list[str] = Field(default_factory=lambda: list(DEFAULT_PALETTE))

    # Logging
    log_level: str = "INFO"
    json_logs: bool = False


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
