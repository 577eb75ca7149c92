"""Application configuration models."""

from __future__ import annotations

import re
from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import AliasChoices, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


DEVELOPMENT_SECRET_KEY = "development-secret-change-me"
MEGABYTE = 1024 * 1024

# Token lifetimes such as "3600", "90s", "15m", "1h" or "7d".
DURATION_RE = re.compile(r"^\s*(\d+)\s*([smhd]?)\s*$", re.IGNORECASE)
DURATION_UNITS = {"": 1, "s": 1, "m": 60, "h": 3_600, "d": 86_400}


class Settings(BaseSettings):
    """Settings loaded from environment variables or a .env file."""

    app_name: str = Field(default="Creatives Hub", alias="APP_NAME")
    server_host: str = Field(default="0.0.0.0", alias="HOST")
    server_port: int = Field(default=3000, alias="PORT")

    environment: Literal["development", "production"] = Field(
        default="development", alias="ENVIRONMENT"
    )

    secret_key: str = Field(default=DEVELOPMENT_SECRET_KEY, alias="SECRET_KEY")
    jwt_expires_seconds: int = Field(
        default=3_600, alias="JWT_EXPIRES_IN", ge=60, le=2_592_000
    )
    cors_origin: str = Field(default="*", alias="CORS_ORIGIN")
    api_base_url: str = Field(
        default="http://localhost:3000", alias="API_BASE_URL"
    )
    cache_duration_ms: int = Field(
        default=3_600_000, alias="CACHE_DURATION", ge=0
    )
    fallback_video_path: str = Field(
        default="/assets/video/fallback.mp4", alias="FALLBACK_VIDEO_PATH"
    )

    root_dir: Path = Field(default=Path("."), alias="ROOT_DIR")
    movies_file_path: str = Field(
        default="assets/data/movies.json", alias="MOVIES_FILE_PATH"
    )
    users_file_path: str = Field(
        default="assets/data/users.json", alias="USERS_FILE_PATH"
    )
    movies_dir: str = Field(default="hub/MOVIES", alias="MOVIES_DIR")
    series_dir: str = Field(default="hub/SERIES", alias="SERIES_DIR")
    music_dir: str = Field(default="hub/MUSIC", alias="MUSIC_DIR")
    animations_dir: str = Field(default="hub/ANIMATION", alias="ANIMATIONS_DIR")
    posters_dir: str = Field(default="hub/POSTERS", alias="POSTERS_DIR")
    backup_dir: str = Field(default="assets/backups", alias="BACKUP_DIR")
    backup_retention: int = Field(
        default=10, alias="BACKUP_RETENTION", ge=1, le=1_000
    )

    upload_file_size_limit: int = Field(
        default=500 * MEGABYTE,
        alias="UPLOAD_FILE_SIZE_LIMIT",
        validation_alias=AliasChoices(
            "UPLOAD_FILE_SIZE_LIMIT", "MULTER_FILE_SIZE_LIMIT"
        ),
        ge=1,
    )
    upload_poster_size_limit: int = Field(
        default=10 * MEGABYTE,
        alias="UPLOAD_POSTER_SIZE_LIMIT",
        ge=1,
    )
    upload_fields_limit: int = Field(
        default=20,
        alias="UPLOAD_FIELDS_LIMIT",
        validation_alias=AliasChoices("UPLOAD_FIELDS_LIMIT", "MULTER_FIELDS_LIMIT"),
        ge=1,
    )
    upload_files_limit: int = Field(
        default=2,
        alias="UPLOAD_FILES_LIMIT",
        validation_alias=AliasChoices("UPLOAD_FILES_LIMIT", "MULTER_FILES_LIMIT"),
        ge=1,
    )
    upload_parts_limit: int = Field(
        default=22,
        alias="UPLOAD_PARTS_LIMIT",
        validation_alias=AliasChoices("UPLOAD_PARTS_LIMIT", "MULTER_PARTS_LIMIT"),
        ge=1,
    )
    upload_cleanup_on_reject: bool = Field(
        default=True, alias="UPLOAD_CLEANUP_ON_REJECT"
    )

    database_url: str = Field(
        default="sqlite+aiosqlite:///./users.db", alias="DATABASE_URL"
    )
    admin_username: str = Field(default="admin", alias="ADMIN_USERNAME")
    admin_email: str | None = Field(
        default="admin@creatives.com", alias="ADMIN_EMAIL"
    )
    admin_password: str = Field(default="admin123", alias="ADMIN_PASSWORD")

    @field_validator("jwt_expires_seconds", mode="before")
    @classmethod
    def _parse_token_lifetime(cls, value: object) -> object:
        if not isinstance(value, str):
            return value
        match = DURATION_RE.match(value)
        if match is None:
            raise ValueError(
                "JWT_EXPIRES_IN must be a number of seconds or use an s, m, h or d suffix"
            )
        amount, unit = match.groups()
        return int(amount) * DURATION_UNITS[unit.lower()]

    @model_validator(mode="after")
    def _require_production_secrets(self) -> "Settings":
        """Refuse to run in production with development defaults."""

        if self.environment != "production":
            return self
        if self.secret_key == DEVELOPMENT_SECRET_KEY:
            raise ValueError("SECRET_KEY must be configured in production")
        if self.cors_origin.strip() in {"", "*"}:
            raise ValueError("CORS_ORIGIN must name an explicit origin in production")
        return self

    def resolve_path(self, relative: str | Path) -> Path:
        """Return ``relative`` anchored at the configured site root."""

        path = Path(relative)
        if path.is_absolute():
            return path
        return (self.root_dir / path).resolve()

    @property
    def catalog_file(self) -> Path:
        return self.resolve_path(self.movies_file_path)

    @property
    def users_file(self) -> Path:
        return self.resolve_path(self.users_file_path)

    @property
    def backup_directory(self) -> Path:
        return self.resolve_path(self.backup_dir)

    @property
    def allowed_origins(self) -> list[str]:
        """Return CORS origins; development always allows any origin."""

        if self.environment != "production":
            return ["*"]
        return [
            origin.strip() for origin in self.cors_origin.split(",") if origin.strip()
        ]

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")


@lru_cache
def get_settings() -> Settings:
    """Return a cached settings instance."""

    return Settings()  # type: ignore[call-arg]


settings = get_settings()
