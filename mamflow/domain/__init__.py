"""Request and handoff records exchanged between the API, the orchestrator and workers."""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class IngestRequest(BaseModel):
    """Caller-supplied ingest parameters. Consumed once, never persisted as-is."""

    model_config = ConfigDict(frozen=True)

    title: str
    description: Optional[str] = None
    type: str = Field(default="video", description="video | audio | data")
    user_id: Optional[str] = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    source_path: str


class PipelineHandoff(BaseModel):
    """Everything a detached pipeline run needs, copied out of the request."""

    model_config = ConfigDict(frozen=True)

    asset_id: str
    title: str
    description: Optional[str] = None
    media_type: str
    source_path: str


__all__ = ["IngestRequest", "PipelineHandoff"]
