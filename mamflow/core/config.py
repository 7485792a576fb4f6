from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ProxyRendition(BaseModel):
    """A single proxy output the transcoder produces for every asset."""

    name: str
    width: int = Field(..., gt=0)
    height: int = Field(..., gt=0)
    bitrate: str = Field(..., description="ffmpeg bitrate string, e.g. 800k.")
    codec: str = Field(default="libx264")


def _default_renditions() -> list[ProxyRendition]:
    return [
        ProxyRendition(name="low", width=640, height=360, bitrate="800k", codec="libx264"),
        ProxyRendition(name="high", width=1280, height=720, bitrate="2500k", codec="libx264"),
    ]


class Secrets(BaseSettings):
    """Secrets configuration, loaded from the environment or a secrets management service."""

    model_config = SettingsConfigDict(
        env_prefix="MAMFLOW_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    jwt_secret: str = Field(default="change-me", description="Signing secret for stub JWT validation.")
    registry_token: Optional[str] = Field(default=None, description="Opaque bearer credential for the registry API.")

    @classmethod
    def from_settings(cls, settings: "Settings") -> "Secrets":
        return cls()


class Settings(BaseSettings):
    """Centralised runtime configuration for the mamflow ingest service."""

    model_config = SettingsConfigDict(
        env_prefix="MAMFLOW_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    app_name: str = "mamflow"
    environment: str = Field(default="development", description="Deployment environment label.")
    version: str = Field(default="0.1.0", description="API version for metadata and OpenAPI.")
    log_level: str = Field(default="info")

    database_url: str = Field(
        default="sqlite+aiosqlite:///./mamflow.db",
        description="SQLAlchemy compatible DSN.",
    )
    redis_url: str = Field(
        default="redis://localhost:6379/0",
        description="Redis URL for the asset read cache and the RQ pipeline backend.",
    )
    cache_enabled: bool = Field(default=True, description="Disable to run without a Redis read cache.")
    cache_ttl_seconds: int = Field(default=300, ge=1)

    pipeline_backend: Literal["inprocess", "inline", "rq"] = Field(
        default="inprocess",
        description="Where pipeline runs execute (inprocess tasks or an RQ worker).",
    )
    pipeline_deadline_s: float = Field(default=3600.0, gt=0, description="Overall deadline for one pipeline run.")
    pipeline_drain_timeout_s: float = Field(default=30.0, ge=0, description="Grace period for in-flight runs on shutdown.")

    work_root: Path = Field(default_factory=lambda: Path("work"), description="Parent of per-run working directories.")
    derived_root: Path = Field(default_factory=lambda: Path("derived"), description="Root for published thumbnails and proxies.")

    ffmpeg_path: str = Field(default="ffmpeg")
    ffprobe_path: str = Field(default="ffprobe")
    transcode_timeout_s: float = Field(default=1800.0, gt=0, description="Sub-deadline for a single tool invocation.")
    thumbnail_width: int = Field(default=640, gt=0)
    thumbnail_height: int = Field(default=360, gt=0)
    proxy_renditions: list[ProxyRendition] = Field(default_factory=_default_renditions)
    segment_duration_s: int = Field(default=10, gt=0, description="Fixed segment window length in seconds.")

    registry_base_url: str = Field(default="http://localhost:4010", description="Base URL of the flow/source registry.")
    registry_timeout_s: float = Field(default=30.0, gt=0)
    storage_backend: Literal["http", "local"] = Field(default="http", description="Segment upload implementation.")
    local_storage_base_path: Path | None = Field(
        default=None,
        description="Restrict local uploads to this directory (defaults to derived_root).",
    )
    upload_timeout_s: float = Field(default=300.0, gt=0)

    external_max_retries: int = Field(default=3, ge=0, description="Retries after the first attempt for transient faults.")
    retry_backoff_base: float = Field(default=2.0, ge=1.0, description="Backoff multiplier between retries.")
    retry_initial_delay_s: float = Field(default=1.0, ge=0, description="Initial delay before the first retry.")

    jwt_algorithm: str = Field(default="HS256", description="Algorithm used for JWT tokens.")
    jwt_issuer: Optional[str] = None
    jwt_audience: Optional[str] = None

    secrets: Secrets = Field(default_factory=Secrets, description="Holds sensitive configuration.")

    metrics_enabled: bool = Field(default=True, description="Expose Prometheus metrics over HTTP.")
    metrics_path: str = Field(default="/metrics", description="Path the Prometheus scrape endpoint is served on.")

    @property
    def environment_lower(self) -> str:
        return self.environment.lower()

    @property
    def normalized_pipeline_backend(self) -> str:
        if self.pipeline_backend == "inline":
            return "inprocess"
        return self.pipeline_backend

    @property
    def allowed_source_uri_schemes(self) -> tuple[str, ...]:
        override = os.getenv("MAMFLOW_ALLOWED_SOURCE_URI_SCHEMES")
        if override:
            values = [item.strip() for item in override.split(",") if item.strip()]
            if values:
                return tuple(values)
        return ("", "file")


@lru_cache()
def get_settings() -> Settings:
    load_dotenv(".env", override=False)

    _ENV_ALIAS_MAP = {
        "MAMFLOW_ENV": "MAMFLOW_ENVIRONMENT",
        "MAMFLOW_DB_URL": "MAMFLOW_DATABASE_URL",
        "MAMFLOW_BACKEND": "MAMFLOW_PIPELINE_BACKEND",
        "MAMFLOW_TAMS_URL": "MAMFLOW_REGISTRY_BASE_URL",
    }

    for source, target in _ENV_ALIAS_MAP.items():
        value = os.getenv(source)
        if value:
            os.environ[target] = value

    settings = Settings()

    secrets = Secrets.from_settings(settings)

    if settings.environment == "production" and secrets.jwt_secret == "change-me":
        raise ValueError("Production environment must have a non-default JWT secret.")

    settings.secrets = secrets
    return settings


__all__ = ["ProxyRendition", "Secrets", "Settings", "get_settings"]
