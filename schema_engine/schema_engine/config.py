"""Schema engine configuration loaded from environment variables."""

from __future__ import annotations

import logging
from pathlib import Path

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Engine settings loaded from environment variables with SCHEMA_ENGINE_ prefix."""

    model_config = SettingsConfigDict(
        env_prefix="SCHEMA_ENGINE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    debug: bool = False

    # Store
    state_dir: Path = Path(".schema_engine")

    # Environments
    default_environment: str = "development"
    protected_environments: list[str] = ["production"]
    allow_destructive: bool = False

    # Presentation
    display_hash_length: int = 8

    # Logging
    structured_logging: bool = False
    log_level: str = "INFO"

    @field_validator("log_level")
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        level = v.strip().upper()
        if level not in logging.getLevelNamesMapping():
            raise ValueError(f"Unknown log level: {v}")
        return level

    @field_validator("display_hash_length")
    @classmethod
    def check_display_length(cls, v: int) -> int:
        if not 4 <= v <= 64:
            raise ValueError("display_hash_length must be between 4 and 64")
        return v

    def is_protected(self, environment: str) -> bool:
        return environment in self.protected_environments

    def short_hash(self, value: str) -> str:
        """Truncate a hash for display.  Never use the result for lookups."""
        return value[: self.display_hash_length] if value else "<empty>"


def load_settings(**overrides: object) -> Settings:
    """Load settings from environment, with optional overrides for testing."""
    settings = Settings(**overrides)  # type: ignore[arg-type]

    if settings.debug:
        logger.info("Loaded settings with state dir: %s", settings.state_dir)

    return settings
