"""
Lectern Core Settings.

Read once at process start from the environment (``LECTERN_*``) or ``.env``.
Optional integrations (search service, clone API) are checked per request,
so an unset value only disables the endpoints that need it.
"""
from __future__ import annotations

from functools import lru_cache
from typing import List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8",
        env_prefix="LECTERN_", case_sensitive=False,
    )

    # ── App ──────────────────────────────────────────────────────────────
    app_name: str = "Lectern"
    app_version: str = "1.0.0"
    environment: str = "development"
    log_level: str = "INFO"
    api_prefix: str = "/api"
    cors_origins: List[str] = ["http://localhost:3000"]

    # Public site, used for feed links
    site_url: str = "http://localhost:3000"
    site_title: str = "Lectern"
    site_description: str = "Preaching video archive"

    # ── Store ────────────────────────────────────────────────────────────
    # "sql" talks to the database, "fixture" serves in-memory rows
    store: str = "sql"
    fixture_path: Optional[str] = None

    db_host: str = "localhost"
    db_port: int = 5432
    db_user: str = "lectern"
    db_password: str = ""
    db_name: str = "lectern"
    db_url: Optional[str] = None
    db_pool_size: int = 10
    db_pool_timeout: float = 1.0
    query_timeout_seconds: float = 5.0

    @property
    def database_url(self) -> str:
        if self.db_url:
            return self.db_url
        return (
            f"postgresql+asyncpg://{self.db_user}:{self.db_password}"
            f"@{self.db_host}:{self.db_port}/{self.db_name}"
        )

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"

    # ── Media origin ─────────────────────────────────────────────────────
    # "caddy" (static origin) or "minio" / "s3" (object storage)
    video_source: str = "caddy"
    caddy_base_url: str = "http://localhost:8080"
    minio_endpoint: str = ""
    minio_bucket: str = "lectern-videos"
    minio_secure: bool = True

    media_connect_timeout: float = 5.0
    media_read_timeout: float = 30.0

    # ── Search service ───────────────────────────────────────────────────
    search_service_url: Optional[str] = None
    search_timeout_seconds: float = 10.0

    # ── Mirror export ────────────────────────────────────────────────────
    clone_api_key: Optional[str] = None


@lru_cache()
def get_settings() -> Settings:
    return Settings()
