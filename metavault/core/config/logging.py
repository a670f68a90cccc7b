"""Logging configuration."""

from pydantic import Field
from pydantic_settings import SettingsConfigDict

from .base import BaseConfig


class LoggingConfig(BaseConfig):
    """Settings passed to ``metavault.core.logging.setup_logging``."""

    model_config = SettingsConfigDict(env_prefix="METAVAULT_LOG_")

    environment: str = Field(
        default="development",
        description="Renderer selection: production emits JSON",
        pattern=r"^(development|staging|production)$",
    )

    level: str = Field(
        default="INFO",
        description="Root log level",
        pattern=r"^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$",
    )

    file: str | None = Field(default=None, description="Optional rotating log file path")
