"""
Application configuration via environment variables (12-factor).
Pydantic BaseSettings validates and coerces all values at startup.

The Settings object is built once at process start (see services/container.py)
and handed to every component constructor. Nothing in the package reads
configuration from the environment on its own, so tests build a Settings
instance with exactly the credentials they want to simulate.
"""

from __future__ import annotations

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Database
    # ------------------------------------------------------------------
    database_url: str = "sqlite+aiosqlite:///./vault.db"   # or postgresql+asyncpg://…
    db_echo_sql: bool = False   # set True in local dev to log queries

    # ------------------------------------------------------------------
    # Reasoning service (OpenAI via LangChain)
    # ------------------------------------------------------------------
    openai_api_key:  str = ""    # empty = classification disabled → needs_api_key
    llm_model:       str = "gpt-4o-mini"
    llm_temperature: float = 0.2
    llm_max_tokens:  int = 1024

    # ------------------------------------------------------------------
    # Video metadata (YouTube Data API v3)
    # ------------------------------------------------------------------
    youtube_api_key:      str = ""
    youtube_api_base_url: str = "https://www.googleapis.com/youtube/v3"
    youtube_page_size:    int = 50
    http_timeout_seconds: float = 10.0

    # ------------------------------------------------------------------
    # AWS: S3 remote object store
    # ------------------------------------------------------------------
    aws_region: str = "us-east-1"

    # Both keys + bucket must be present for the remote backend to be selected
    aws_access_key_id:     str = ""
    aws_secret_access_key: str = ""

    s3_bucket: str = ""
    s3_prefix: str = "insight-vault"
    s3_owner_canonical_id: str = ""   # principal granted FULL_CONTROL after upload

    # ------------------------------------------------------------------
    # Local storage + ingestion limits
    # ------------------------------------------------------------------
    upload_dir: str = "./uploads"
    max_upload_bytes: int = 20 * 1024 * 1024   # 20 MB
    max_extracted_chars: int = 4000            # bounds prompt size downstream

    # ------------------------------------------------------------------
    # Batch processing
    # ------------------------------------------------------------------
    batch_backend: str = "inprocess"   # "inprocess" | "celery"
    celery_broker_url: str = "redis://localhost:6379/0"
    celery_result_backend: str = "redis://localhost:6379/1"

    # ------------------------------------------------------------------
    # Application
    # ------------------------------------------------------------------
    app_name:    str = "Insight Vault"
    app_version: str = "2.4.0"
    app_env: str = "development"   # development | staging | production
    debug: bool = False
    cors_origins: list[str] = ["*"]

    @property
    def is_production(self) -> bool:
        return self.app_env == "production"

    @property
    def reasoning_configured(self) -> bool:
        return bool(self.openai_api_key.strip())

    @property
    def video_source_configured(self) -> bool:
        return bool(self.youtube_api_key.strip())

    @property
    def remote_storage_configured(self) -> bool:
        return all(
            value.strip()
            for value in (self.s3_bucket, self.aws_access_key_id, self.aws_secret_access_key)
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
