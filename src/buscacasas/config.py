"""Configuration system for buscacasas.

Uses pydantic-settings to load configuration from environment variables
and .env files with sensible defaults for scraping Uruguayan listing sites.
"""

from pathlib import Path
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    All settings can be overridden via environment variables or .env file.
    Environment variables are prefixed with BUSCACASAS_ (e.g., BUSCACASAS_MAX_PAGES).
    """

    model_config = SettingsConfigDict(
        env_prefix="BUSCACASAS_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Storage
    database_path: Path = Field(
        default=Path("data/buscacasas.db"),
        description="SQLite database file for scraped listings",
    )

    # Browser settings
    headless: bool = Field(default=True, description="Run Chromium headless")
    user_agent: str = Field(
        default=(
            "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) "
            "AppleWebKit/537.36 (KHTML, like Gecko) "
            "Chrome/120.0.0.0 Safari/537.36"
        ),
        description="User-Agent presented by the browser",
    )
    viewport_width: int = Field(default=1366, ge=320)
    viewport_height: int = Field(default=768, ge=240)

    # Timeouts and politeness delays (seconds)
    navigation_timeout: float = Field(
        default=30.0,
        gt=0,
        description="Timeout for the initial navigation to a search URL",
    )
    selector_timeout: float = Field(
        default=10.0,
        gt=0,
        description="Timeout waiting for listing containers to render",
    )
    next_page_timeout: float = Field(
        default=15.0,
        gt=0,
        description="Timeout waiting for navigation after clicking 'next'",
    )
    page_delay: float = Field(
        default=3.0,
        ge=0,
        description="Politeness delay after every page transition",
    )
    settle_delay: float = Field(
        default=2.0,
        ge=0,
        description="Delay after the initial navigation before extracting",
    )

    # Run settings
    max_pages: int = Field(default=2, ge=1, description="Pages to visit per source")
    run_timeout: Optional[float] = Field(
        default=None,
        gt=0,
        description="Aggregate time budget for a multi-source run (unbounded if unset)",
    )
    default_department: str = Field(
        default="Montevideo",
        description="Department assumed when a listing's location is empty",
    )

    log_level: str = Field(default="INFO", description="Root log level for the CLI/API")


# Singleton instance for easy import
config = Settings()
