"""Application configuration."""

import logging
import os

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from fprint_enroll.services.users import DEFAULT_FETCH_CONCURRENCY

_ENVIRONMENT = os.getenv("ENVIRONMENT", "local")


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    fprint_service: str = "net.reactivated.Fprint"
    fprint_manager_path: str = "/net/reactivated/Fprint/Manager"
    accounts_service: str = "org.freedesktop.Accounts"
    accounts_path: str = "/org/freedesktop/Accounts"
    device_path: str | None = None
    user_fetch_concurrency: int = Field(default=DEFAULT_FETCH_CONCURRENCY, ge=1)
    log_level: str = "INFO"
    environment: str = _ENVIRONMENT

    model_config = SettingsConfigDict(
        env_prefix="FPRINT_ENROLL_",
        env_file=(f".env.{_ENVIRONMENT}", ".env"),
        extra="ignore",
    )


def parse_log_level(raw: str | None) -> int:
    """Parse a level name or number, defaulting to INFO."""
    if raw is None:
        return logging.INFO
    cleaned = raw.strip()
    if not cleaned:
        return logging.INFO
    if cleaned.isdigit():
        return int(cleaned)
    level = logging.getLevelName(cleaned.upper())
    if isinstance(level, int):
        return level
    return logging.INFO
