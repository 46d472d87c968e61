"""
Configuration and settings for the tattoo data service.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

STATIC_DIR = Path(__file__).resolve().parent / "static"

# Shared with the browser through /api/upload-limits.
DEFAULT_MAX_IMAGE_BYTES = 5 * 1024 * 1024


class Settings(BaseSettings):
    """Environment-backed settings for the FastAPI service."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    api_prefix: str = Field(default="/api")
    environment: str = Field(default="development")
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=10000, ge=1, le=65535)
    log_level: str = Field(default="INFO")

    # Database (any SQLAlchemy URL; Postgres expected in production)
    database_url: Optional[str] = Field(default=None)
    db_connect_max_retries: int = Field(default=5, ge=0)
    db_connect_base_delay: float = Field(default=1.0, ge=0)
    db_connect_max_delay: float = Field(default=30.0, ge=0)

    # Blob storage
    storage_backend: Literal["local", "s3"] = Field(default="local")
    uploads_dir: str = Field(default="uploads")
    uploads_url_prefix: str = Field(default="/uploads")

    # S3-compatible hosted storage
    s3_bucket: Optional[str] = Field(default=None)
    aws_access_key_id: Optional[str] = Field(default=None)
    aws_secret_access_key: Optional[str] = Field(default=None)
    s3_region: str = Field(default="us-east-1")
    s3_endpoint: Optional[str] = Field(default=None)
    s3_public_base_url: Optional[str] = Field(default=None)
    s3_folder: str = Field(default="tattoo-images")

    # Submissions
    max_image_bytes: int = Field(default=DEFAULT_MAX_IMAGE_BYTES, ge=1)
    duration_unit: Literal["hours", "minutes"] = Field(default="hours")
    delete_blob_with_record: bool = Field(default=False)

    public_dir: str = Field(default=str(STATIC_DIR))

    @property
    def duration_field(self) -> str:
        """Legacy form field name for the configured duration unit."""
        return "timeInHours" if self.duration_unit == "hours" else "timeInMinutes"

    @property
    def s3_credentials_complete(self) -> bool:
        return bool(
            self.s3_bucket and self.aws_access_key_id and self.aws_secret_access_key
        )

    def configuration_warnings(self) -> list[str]:
        """
        Describe absent configuration. The service still starts; callers log these.
        """
        warnings: list[str] = []
        if not self.database_url:
            warnings.append(
                "DATABASE_URL is not set; records are kept in memory and lost on restart"
            )
        if self.storage_backend == "s3":
            missing = [
                name
                for name, value in (
                    ("S3_BUCKET", self.s3_bucket),
                    ("AWS_ACCESS_KEY_ID", self.aws_access_key_id),
                    ("AWS_SECRET_ACCESS_KEY", self.aws_secret_access_key),
                )
                if not value
            ]
            if missing:
                warnings.append(
                    "STORAGE_BACKEND=s3 but %s missing; falling back to local uploads"
                    % ", ".join(missing)
                )
        return warnings


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
