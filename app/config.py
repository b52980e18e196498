# app/config.py
from functools import lru_cache
from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8",
        env_prefix="VIDEOTUBE_", case_sensitive=False, extra="ignore",
    )

    app_name: str = "VideoTube"
    api_prefix: str = "/api/v1"
    log_level: str = "INFO"
    log_json: bool = True

    database_url: str = "sqlite+aiosqlite:///./videotube.db"
    database_echo: bool = False

    # JWT
    access_token_secret: str = "change-me-access"
    access_token_expire_minutes: int = 15
    refresh_token_secret: str = "change-me-refresh"
    refresh_token_expire_days: int = 10
    jwt_algorithm: str = "HS256"

    cors_origins: List[str] = ["http://localhost:3000"]
    cookie_secure: bool = True

    # Cache / Celery
    redis_url: str = ""
    celery_broker_url: str = "redis://localhost:6379/0"
    celery_result_backend: str = "redis://localhost:6379/0"

    # Media storage
    s3_bucket: str = "videotube-media"
    s3_region: str = "us-west-1"
    s3_public_base_url: str = ""
    upload_tmp_dir: str = "./public/temp"
    ffprobe_path: str = "ffprobe"

    max_page_limit: int = 100

    rate_limit_enabled: bool = True
    login_rate_limit: str = "5/minute"

    sentry_dsn: str = ""

    @property
    def media_base_url(self) -> str:
        if self.s3_public_base_url:
            return self.s3_public_base_url.rstrip("/")
        return f"https://{self.s3_bucket}.s3.{self.s3_region}.amazonaws.com"


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
