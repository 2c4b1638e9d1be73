"""
Tool Configuration

Uses pydantic-settings for environment variable loading with validation.
Paths for the credential file and token cache live here, along with the
regional API origins.
"""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict

Region = Literal["na", "eu", "asia"]

# RUCKUS One API origins, one per region
REGION_ORIGINS: dict[str, str] = {
    "na": "https://api.ruckus.cloud",
    "eu": "https://api.eu.ruckus.cloud",
    "asia": "https://api.asia.ruckus.cloud",
}

DEFAULT_REGION: Region = "na"


def origin_for_region(region: str | None) -> str:
    """
    Return the API origin for a region.

    A missing region falls back to North America. Unknown regions are
    rejected rather than guessed.

    Raises:
        ValueError: If the region is not one of na, eu, asia
    """
    key = region or DEFAULT_REGION
    try:
        return REGION_ORIGINS[key]
    except KeyError:
        raise ValueError(
            f"Unknown region '{region}'. Expected one of: {', '.join(REGION_ORIGINS)}"
        ) from None


class Settings(BaseSettings):
    """
    Settings loaded from environment variables.

    Environment variables can be set directly or via .env file.
    """

    model_config = SettingsConfigDict(
        env_prefix="SZ_R1_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ==========================================================================
    # Storage
    # ==========================================================================
    data_dir: Path = Field(
        default=Path.home() / ".sz-r1-migrate",
        description="Directory holding the credential file and token cache",
    )

    credentials_filename: str = Field(
        default="credentials.json", description="Credential store file name"
    )

    token_cache_filename: str = Field(
        default="tokens.json", description="Token cache file name"
    )

    # ==========================================================================
    # HTTP
    # ==========================================================================
    request_timeout: float = Field(
        default=30.0, gt=0, description="Timeout in seconds for API requests"
    )

    # ==========================================================================
    # Logging
    # ==========================================================================
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO", description="Level used for the optional log file"
    )

    @computed_field
    @property
    def credentials_file(self) -> Path:
        """Full path of the credential store."""
        return self.data_dir / self.credentials_filename

    @computed_field
    @property
    def token_cache_file(self) -> Path:
        """Full path of the token cache."""
        return self.data_dir / self.token_cache_filename


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once.
    """
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache (useful for testing)."""
    get_settings.cache_clear()
