"""Environment-driven configuration for the Nest gear service.

Every knob the service reads lives on ``AppSettings``. Values come from the
process environment first and then from ``.env`` / ``.env.local`` so local
development works without exporting anything.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Any, Iterable

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class AppSettings(BaseSettings):
    """Environment-driven application configuration."""

    model_config = SettingsConfigDict(
        env_file=(".env", ".env.local"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    APP_NAME: str = "Nest by Eden Oasis"
    BASE_DIR: Path = Field(default_factory=lambda: Path(__file__).resolve().parent.parent)
    DATA_DIR: Path = Field(default_factory=lambda: Path(__file__).resolve().parent.parent.parent / "data")
    TEMPLATES_DIR: Path | None = None
    LOG_LEVEL: str = "INFO"

    JWT_SECRET: str = "change-me"
    JWT_ACCESS_TTL_MIN: int = 60
    JWT_REFRESH_TTL_DAYS: int = 7
    ALLOWED_ORIGINS: list[str] = Field(default_factory=list)

    DB_URL: str = Field(
        default="",
        validation_alias=AliasChoices("DB_URL", "DATABASE_URL"),
    )

    HOST: str = "0.0.0.0"
    PORT: int = 8089
    SITE_URL: str = ""

    # Outbound email goes through the Resend HTTP API.
    RESEND_API_KEY: str = ""
    RESEND_FROM: str = "Nest by Eden Oasis <onboarding@resend.dev>"
    RESEND_API_URL: str = "https://api.resend.com/emails"

    # Push queue worker trigger
    PUSH_WORKER_URL: str = ""
    CRON_SECRET: str = ""
    PUSH_TRIGGER_TIMEOUT_SEC: float = 2.5

    DEFAULT_REQUEST_DURATION: str = "1 week"
    RATE_LIMIT: str = "60/minute"

    @property
    def templates_dir(self) -> Path:
        return self.TEMPLATES_DIR if self.TEMPLATES_DIR is not None else self.BASE_DIR / "templates"

    @property
    def push_worker_endpoint(self) -> str | None:
        if self.PUSH_WORKER_URL:
            return self.PUSH_WORKER_URL
        if self.SITE_URL:
            return self.SITE_URL.rstrip("/") + "/api/push/worker"
        return None

    @field_validator("ALLOWED_ORIGINS", mode="before")
    @classmethod
    def parse_allowed_origins(cls, value: Any) -> list[str]:
        if value in (None, "", []):
            return []
        if isinstance(value, str):
            return [item.strip() for item in value.split(",") if item.strip()]
        if isinstance(value, Iterable):
            return [str(item).strip() for item in value if str(item).strip()]
        raise TypeError("ALLOWED_ORIGINS must be a comma separated string or list")


@lru_cache(maxsize=1)
def get_settings() -> AppSettings:
    settings = AppSettings()
    settings.DATA_DIR.mkdir(parents=True, exist_ok=True)
    if not settings.DB_URL:
        settings.DB_URL = f"sqlite:///{settings.DATA_DIR}/nest.db"
    if settings.TEMPLATES_DIR is None:
        settings.TEMPLATES_DIR = settings.BASE_DIR / "templates"
    return settings


settings = get_settings()
