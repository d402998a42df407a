"""Configuration management."""

import logging
from functools import lru_cache
from typing import List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """NeuroShell settings, overridable through ``NEUROSHELL_*`` variables."""

    # Sessions
    default_system_prompt: str = "You are a helpful assistant."
    max_session_name_length: int = 64
    reserved_session_names: List[str] = Field(
        default_factory=lambda: [
            "new",
            "list",
            "active",
            "current",
            "default",
            "temp",
            "temporary",
        ]
    )
    max_version_attempts: int = 1000
    default_name_bases: List[str] = Field(
        default_factory=lambda: ["Session", "Chat", "Work", "Project"]
    )
    max_default_name_index: int = 999

    # Providers
    request_timeout: float = 60.0
    anthropic_default_max_tokens: int = 4096
    stream_queue_size: int = 64

    # Logging
    log_level: str = "WARNING"

    model_config = SettingsConfigDict(
        env_prefix="NEUROSHELL_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )


@lru_cache
def get_settings() -> Settings:
    return Settings()


def configure_logging(level=None) -> None:
    """Attach a stream handler to the ``neuroshell`` logger."""
    level = level or get_settings().log_level
    logger = logging.getLogger("neuroshell")
    logger.setLevel(level.upper() if isinstance(level, str) else level)
    if not any(type(h) is logging.StreamHandler for h in logger.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
        )
        logger.addHandler(handler)
