# photodrop/config.py
import os
from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # === General app settings ===
    app_env: str = "local"  # local | development | production
    public_base_url: str = "http://localhost:8000"

    # === Database ===
    database_url: str = "sqlite:///./photodrop.db"

    # === Object storage ===
    storage_backend: str = "local"  # local | s3
    local_storage_path: str = "data/guest_uploads"
    AWS_REGION: str = Field("eu-west-1", description="AWS region for S3")
    S3_BUCKET: Optional[str] = Field(None, description="S3 bucket holding all guest photos")
    S3_ENDPOINT_URL: Optional[str] = None

    # === Bucket policy defaults / hard limits ===
    default_max_images_per_guest: int = 30
    default_max_file_size_mb: int = 10
    max_images_per_guest_limit: int = 100
    max_file_size_limit_mb: int = 50

    # === Ingestion ===
    upload_store_timeout_seconds: float = 30.0
    upload_store_attempts: int = 3
    upload_workers: int = 4
    metadata_write_attempts: int = 3

    # === Archive export ===
    archive_compress_level: int = 6
    archive_fetch_attempts: int = 2

    # === Logging ===
    log_level: str = "INFO"

    # === Metrics ===
    metrics_enabled: bool = True

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    @property
    def max_file_size_limit_bytes(self) -> int:
        return self.max_file_size_limit_mb * 1024 * 1024

    @property
    def default_max_file_size_bytes(self) -> int:
        return self.default_max_file_size_mb * 1024 * 1024


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Singleton Settings instance with simple per-environment overrides."""
    s = Settings()

    env = os.getenv("ENVIRONMENT", s.app_env).lower()
    if env == "production":
        s.log_level = "WARNING"
    elif env == "development":
        s.log_level = "DEBUG"

    return s


# Module-level export so `from photodrop.config import settings` works.
settings = get_settings()
