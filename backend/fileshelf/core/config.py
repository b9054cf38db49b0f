from __future__ import annotations

from functools import cached_property, lru_cache
from pathlib import Path
from typing import List

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    project_name: str = "FileShelf"
    api_prefix: str = "/api"
    log_level: str = Field(default="INFO")

    database_url: str = Field(
        default="postgresql+asyncpg://fileshelf:fileshelf@db:5432/fileshelf",
        description="SQLAlchemy async database URL",
    )
    redis_url: str = Field(default="redis://redis:6379/0", description="Redis connection URL")

    upload_root: Path = Field(
        default=Path(__file__).resolve().parents[3] / "uploads",
        description="Base directory for uploaded payloads, one subdirectory per owner",
    )
    max_upload_size: int = Field(default=10 * 1024 * 1024, ge=1)
    max_batch_files: int = Field(default=10, ge=1)
    allowed_mime_types: List[str] = Field(
        default_factory=lambda: [
            "text/plain",
            "application/pdf",
            "image/jpeg",
            "image/png",
            "image/gif",
            "application/msword",
            "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
        ]
    )

    retention_days: int = Field(default=30, ge=0)
    sweep_interval_hours: int = Field(default=24, ge=1)

    jwt_secret: str = Field(default="change-me-please", min_length=10)
    jwt_algorithm: str = Field(default="HS256")
    access_token_expire_minutes: int = Field(default=60 * 24 * 7)
    reset_token_expire_minutes: int = Field(default=60, ge=1)
    expose_reset_token: bool = Field(
        default=False,
        description="Return the raw password reset token in the API response (no mailer configured)",
    )

    admin_email: str = Field(default="admin@example.com")
    admin_password: str | None = Field(default=None)
    admin_password_hash: str = Field(
        default="$2b$12$dl8Ne6PFc.CD1gVYLRNvJeXp9jR8GStlMsJGcZ4opecQcsao4s46y",
        description="bcrypt hash for default admin password 'changeme'",
    )

    demo_email: str = Field(default="demo@example.com")
    demo_password: str = Field(default="Demo@123")

    celery_broker_url: str | None = None
    celery_result_backend: str | None = None

    cors_allowed_origins: List[str] = Field(default_factory=lambda: ["http://localhost:3000"])

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", case_sensitive=False)

    @field_validator("upload_root", mode="before")
    @classmethod
    def _build_upload_root(cls, value: Path | str) -> Path:
        return Path(value)

    @property
    def celery_broker(self) -> str:
        return self.celery_broker_url or self.redis_url

    @property
    def celery_backend(self) -> str:
        return self.celery_result_backend or self.redis_url

    @cached_property
    def effective_admin_password_hash(self) -> str:
        if self.admin_password:
            from fileshelf.utils.security import get_password_hash

            return get_password_hash(self.admin_password)
        return self.admin_password_hash


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
