"""Configuration management."""

import logging
import sys
from typing import Optional

import structlog
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings pulled from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="TACTICAL_MAPGEN_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Logging
    log_level: str = Field(default="INFO", description="Log level")
    log_format: str = Field(
        default="json", description="Logging format (json or console)"
    )

    # Map bounds
    min_dimension: int = Field(default=10, description="Minimum map width/height")
    max_dimension: int = Field(default=200, description="Maximum map width/height")
    cell_size_ft: int = Field(default=5, description="Tile edge length in feet")

    # Feature mixing
    enable_feature_mixing: bool = Field(
        default=True, description="Resolve overlapping features with the mixer"
    )
    mixing_probability: float = Field(
        default=0.7, ge=0.0, le=1.0, description="Chance two compatible features blend"
    )
    max_mixing_depth: int = Field(
        default=3, ge=1, description="Maximum number of features mixed on one tile"
    )


settings = Settings()


def configure_logging(level: Optional[str] = None, fmt: Optional[str] = None) -> None:
    """
    Configure structlog for the process.

    Args:
        level: Log level name, defaults to settings.log_level
        fmt: "json" or "console", defaults to settings.log_format
    """
    level = (level or settings.log_level).upper()
    fmt = fmt or settings.log_format

    logging.basicConfig(format="%(message)s", stream=sys.stderr, level=level)

    renderer = (
        structlog.dev.ConsoleRenderer()
        if fmt == "console"
        else structlog.processors.JSONRenderer()
    )
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
