from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import JSON, DateTime, Enum, Index, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from mamflow.core.db import Base


class AssetStatus(str, enum.Enum):
    new = "new"
    ingesting = "ingesting"
    processing = "processing"
    ready = "ready"
    failed = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


class MediaType(str, enum.Enum):
    video = "video"
    audio = "audio"
    data = "data"


TERMINAL_STATUSES = frozenset({AssetStatus.ready, AssetStatus.failed})

ALLOWED_TRANSITIONS: dict[AssetStatus, frozenset[AssetStatus]] = {
    AssetStatus.new: frozenset({AssetStatus.ingesting, AssetStatus.failed}),
    AssetStatus.ingesting: frozenset({AssetStatus.processing, AssetStatus.failed}),
    AssetStatus.processing: frozenset({AssetStatus.ready, AssetStatus.failed}),
    AssetStatus.ready: frozenset(),
    AssetStatus.failed: frozenset(),
}


class Asset(Base):
    __tablename__ = "assets"
    __table_args__ = (Index("ix_assets_status", "status"),)

    asset_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    title: Mapped[str] = mapped_column(String(512), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    media_type: Mapped[str] = mapped_column(String(32), nullable=False)
    metadata_jsonb: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    technical_metadata: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    created_by: Mapped[str | None] = mapped_column(String(128), nullable=True)
    source_uri: Mapped[str] = mapped_column(String(1024), nullable=False)
    status: Mapped[AssetStatus] = mapped_column(Enum(AssetStatus), default=AssetStatus.new, nullable=False)
    source_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    flow_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    error_info: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)


__all__ = [
    "Asset",
    "AssetStatus",
    "MediaType",
    "TERMINAL_STATUSES",
    "ALLOWED_TRANSITIONS",
]
