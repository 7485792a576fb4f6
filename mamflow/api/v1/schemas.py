from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    status: str = Field(default="ok", description="ok | degraded")
    database: bool = Field(description="Asset store answered a ping.")
    cache: Optional[bool] = Field(default=None, description="Cache answered a ping; null when caching is disabled.")
    time: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class EnvCheckResponse(BaseModel):
    ffmpeg: bool
    ffprobe: bool


class AssetIngestRequest(BaseModel):
    title: str = Field(..., json_schema_extra={"example": "Evening news"})
    description: Optional[str] = None
    type: str = Field(default="video", json_schema_extra={"example": "video"})
    metadata: Dict[str, Any] = Field(default_factory=dict)
    source_path: str = Field(..., json_schema_extra={"example": "/media/incoming/news.mxf"})


class AssetResponse(BaseModel):
    asset_id: str
    title: str
    description: Optional[str]
    type: str
    status: str = Field(description="new | ingesting | processing | ready | failed")
    metadata: Dict[str, Any]
    technical_metadata: Optional[Dict[str, Any]]
    created_by: Optional[str]
    source_id: Optional[str]
    flow_id: Optional[str]
    error_info: Optional[Dict[str, Any]]
    created_at: Optional[datetime]
    updated_at: Optional[datetime]


class ErrorResponse(BaseModel):
    error: str
    detail: Optional[Any] = None


__all__ = [
    "HealthResponse",
    "EnvCheckResponse",
    "AssetIngestRequest",
    "AssetResponse",
    "ErrorResponse",
]
