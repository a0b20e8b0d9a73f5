from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from carlot.ingest.transcoder import ImageProfile


class Secrets(BaseSettings):
    """Secrets configuration, loaded from the environment or a secrets management service."""

    model_config = SettingsConfigDict(
        env_prefix="CARLOT_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    jwt_secret: str = Field(default="change-me", description="Signing secret for admin JWT validation.")

    @classmethod
    def from_settings(cls, settings: "Settings") -> "Secrets":
        return cls()


class Settings(BaseSettings):
    """Centralised runtime configuration for the carlot API."""

    model_config = SettingsConfigDict(
        env_prefix="CARLOT_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    app_name: str = "carlot API"
    environment: str = Field(default="development", description="Deployment environment label.")
    version: str = Field(default="0.1.0", description="API version for metadata and OpenAPI.")
    log_level: str = Field(default="info")
    log_format: Literal["json", "console"] = Field(default="json", description="structlog renderer.")

    database_url: str = Field(
        default="sqlite+aiosqlite:///./carlot.db",
        description="SQLAlchemy compatible DSN.",
    )
    create_schema_on_startup: bool = Field(default=False, description="Create missing tables at startup instead of via Alembic.")

    storage_backend: Literal["local"] = Field(default="local", description="Active asset store implementation.")
    upload_root: Path = Field(default_factory=lambda: Path("uploads"), description="Directory holding normalized images.")
    public_prefix: str = Field(default="/uploads", description="URL prefix under which stored images are served.")

    max_images_per_batch: int = Field(default=12, ge=1, description="Hard cap on images per create/edit request.")
    max_image_bytes: int = Field(default=25 * 1024 * 1024, ge=1, description="Per-file upload ceiling.")
    ingest_concurrency: int = Field(default=3, ge=1, description="Images transcoded and stored at once.")
    image_max_width: int = Field(default=1400, ge=1, description="Normalized images are never wider than this.")
    image_quality: int = Field(default=75, ge=1, le=100, description="WEBP quality factor for re-encoded images.")
    skip_max_bytes: int = Field(default=300_000, ge=0, description="WEBP inputs at or below this size may be stored verbatim.")
    skip_max_width: int = Field(default=1400, ge=1, description="WEBP inputs at or below this width may be stored verbatim.")
    image_max_pixels: int = Field(default=80_000_000, ge=1, description="Decoded images above this pixel count are rejected.")
    storage_name_attempts: int = Field(default=5, ge=1, description="Retries when a generated storage name already exists.")

    page_size: int = Field(default=10, ge=1, le=100, description="Default inventory page size.")

    jwt_algorithm: str = Field(default="HS256", description="Algorithm used for JWT tokens.")
    jwt_issuer: Optional[str] = None
    jwt_audience: Optional[str] = None

    secrets: Secrets = Field(default_factory=Secrets, description="Holds sensitive configuration.")

    @property
    def environment_lower(self) -> str:
        return self.environment.lower()

    @property
    def image_profile(self) -> ImageProfile:
        return ImageProfile(
            max_width=self.image_max_width,
            quality=self.image_quality,
            skip_max_bytes=self.skip_max_bytes,
            skip_max_width=self.skip_max_width,
            max_pixels=self.image_max_pixels,
        )


@lru_cache()
def get_settings() -> Settings:
    load_dotenv(".env", override=False)

    _ENV_ALIAS_MAP = {
        "CARLOT_ENV": "CARLOT_ENVIRONMENT",
        "CARLOT_DB_URL": "CARLOT_DATABASE_URL",
    }

    for source, target in _ENV_ALIAS_MAP.items():
        value = os.getenv(source)
        if value:
            os.environ[target] = value

    settings = Settings()

    secrets = Secrets.from_settings(settings)

    if settings.environment_lower == "production" and secrets.jwt_secret == "change-me":
        raise ValueError("Production environment must have a non-default JWT secret.")

    settings.secrets = secrets
    return settings


__all__ = ["Secrets", "Settings", "get_settings"]
