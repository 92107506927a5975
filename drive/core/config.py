# drive/core/config.py
from functools import lru_cache
from typing import Literal, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Database (sqlite, mysql+pymysql://..., postgresql+psycopg2://...)
    database_url: str = "sqlite:///./drive.db"

    # Sessions
    session_secret: str = "change-me"
    session_cookie_name: str = "drive_session"
    session_ttl_hours: int = 24
    secure_cookie: bool = False

    bcrypt_rounds: int = 10

    # Blob storage
    storage_backend: Literal["local", "s3"] = "local"
    upload_dir: str = "uploads"
    aws_access_key_id: Optional[str] = None
    aws_secret_access_key: Optional[str] = None
    aws_region: Optional[str] = None
    aws_s3_bucket_name: Optional[str] = None

    # Maintenance job, 0 disables it
    maintenance_interval_minutes: int = 60
    orphan_grace_seconds: int = 300

    host: str = "0.0.0.0"
    port: int = 3000
    log_level: str = "INFO"

    # Tell pydantic-settings to load from .env at project root
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",  # ignore any extra stuff in .env
    )


@lru_cache
def get_settings() -> Settings:
    return Settings()
