"""
Configuration and settings for the gallery backend.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Annotated, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

DEFAULT_CATEGORIES = ("josh", "family", "friends")


class Settings(BaseSettings):
    """Environment-backed settings for the FastAPI service."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    api_prefix: str = Field(default="/api")

    # Metadata index (single JSON document)
    data_path: str = Field(default="data/images.json", alias="GALLERY_DATA_PATH")

    # Fixed label set, in classifier priority order
    categories: Annotated[tuple[str, ...], NoDecode] = Field(
        default=DEFAULT_CATEGORIES, alias="GALLERY_CATEGORIES"
    )
    storage_root_folder: str = Field(
        default="josh-farewell", alias="GALLERY_STORAGE_ROOT"
    )

    # S3-compatible storage (Tencent COS)
    cos_endpoint: Optional[str] = Field(default=None, alias="COS_ENDPOINT")
    cos_region: Optional[str] = Field(default=None, alias="COS_REGION")
    cos_bucket: Optional[str] = Field(default=None, alias="COS_BUCKET")
    aws_access_key_id: Optional[str] = Field(
        default=None, alias="AWS_ACCESS_KEY_ID"
    )
    aws_secret_access_key: Optional[str] = Field(
        default=None, alias="AWS_SECRET_ACCESS_KEY"
    )
    storage_public_base_url: Optional[str] = Field(
        default=None, alias="STORAGE_PUBLIC_BASE_URL"
    )
    storage_timeout_seconds: float = Field(
        default=30.0, alias="STORAGE_TIMEOUT_SECONDS"
    )
    storage_max_attempts: int = Field(default=3, alias="STORAGE_MAX_ATTEMPTS")

    # Reconciliation
    sync_max_results: int = Field(default=500, alias="GALLERY_SYNC_MAX_RESULTS")
    sync_max_workers: int = Field(default=3, alias="GALLERY_SYNC_MAX_WORKERS")

    # Uploads
    max_upload_bytes: int = Field(
        default=100 * 1024 * 1024, alias="GALLERY_MAX_UPLOAD_BYTES"
    )

    # Development toggles
    use_in_memory_backends: bool = Field(
        default=False, alias="GALLERY_USE_IN_MEMORY_BACKENDS"
    )

    @field_validator("categories", mode="before")
    @classmethod
    def _split_categories(cls, value):
        if isinstance(value, str):
            value = [part.strip() for part in value.split(",")]
        labels = tuple(label for label in value if label)
        if not labels:
            raise ValueError("at least one category is required")
        if len(set(labels)) != len(labels):
            raise ValueError(f"duplicate category in {labels}")
        return labels

    def missing_storage_settings(self) -> list[str]:
        """Return the environment variable names of unset COS credentials."""
        required = {
            "COS_ENDPOINT": self.cos_endpoint,
            "COS_REGION": self.cos_region,
            "COS_BUCKET": self.cos_bucket,
            "AWS_ACCESS_KEY_ID": self.aws_access_key_id,
            "AWS_SECRET_ACCESS_KEY": self.aws_secret_access_key,
        }
        return [name for name, value in required.items() if not (value or "").strip()]


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
