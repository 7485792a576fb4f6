from __future__ import annotations

from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from mamflow.core.cache import AssetCache
from mamflow.core.errors import AssetNotFound, InvalidStatusTransition, PersistenceFailure
from mamflow.core.logging import get_logger
from mamflow.core.metrics import MamflowMetrics
from mamflow.db.models import ALLOWED_TRANSITIONS, Asset, AssetStatus


class AssetStore:
    """Durable owner of asset records.

    Every operation runs in its own session and commits on return, so callers
    get per-row atomicity and nothing spans a whole pipeline run.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory
        self.logger = get_logger(component="asset_store")

    async def create_asset(
        self,
        *,
        title: str,
        description: str | None,
        media_type: str,
        metadata: dict[str, Any] | None,
        created_by: str | None,
        source_uri: str,
    ) -> Asset:
        asset = Asset(
            asset_id=uuid4().hex,
            title=title,
            description=description,
            media_type=media_type,
            metadata_jsonb=metadata,
            created_by=created_by,
            source_uri=source_uri,
            status=AssetStatus.new,
        )
        try:
            async with self.session_factory() as session:
                session.add(asset)
                await session.commit()
                await session.refresh(asset)
        except SQLAlchemyError as exc:
            raise PersistenceFailure(f"failed to create asset: {exc}") from exc
        return asset

    async def get_asset(self, asset_id: str) -> Asset | None:
        try:
            async with self.session_factory() as session:
                return await session.get(Asset, asset_id)
        except SQLAlchemyError as exc:
            raise PersistenceFailure(f"failed to load asset {asset_id}: {exc}") from exc

    async def update_status(self, asset_id: str, status: AssetStatus) -> Asset:
        async def apply(asset: Asset) -> None:
            if status not in ALLOWED_TRANSITIONS[asset.status]:
                raise InvalidStatusTransition(asset_id, asset.status.value, status.value)
            asset.status = status
            if status == AssetStatus.ready:
                asset.error_info = None

        return await self._mutate(asset_id, apply, action="update_status")

    async def update_external_ids(
        self,
        asset_id: str,
        *,
        source_id: str | None = None,
        flow_id: str | None = None,
    ) -> Asset:
        async def apply(asset: Asset) -> None:
            if source_id is not None:
                _assign_once(asset, "source_id", source_id)
            if flow_id is not None:
                _assign_once(asset, "flow_id", flow_id)

        return await self._mutate(asset_id, apply, action="update_external_ids")

    async def update_error_info(self, asset_id: str, diagnostic: dict[str, Any] | None) -> Asset:
        async def apply(asset: Asset) -> None:
            asset.error_info = diagnostic

        return await self._mutate(asset_id, apply, action="update_error_info")

    async def mark_failed(self, asset_id: str, diagnostic: dict[str, Any]) -> Asset:
        """Record the diagnostic and move to ``failed`` in one row write."""

        async def apply(asset: Asset) -> None:
            if AssetStatus.failed not in ALLOWED_TRANSITIONS[asset.status]:
                raise InvalidStatusTransition(asset_id, asset.status.value, AssetStatus.failed.value)
            asset.status = AssetStatus.failed
            asset.error_info = diagnostic

        return await self._mutate(asset_id, apply, action="mark_failed")

    async def update_technical_metadata(self, asset_id: str, technical: dict[str, Any]) -> Asset:
        async def apply(asset: Asset) -> None:
            merged = dict(asset.technical_metadata or {})
            merged.update(technical)
            merged["updated_at"] = datetime.now(timezone.utc).isoformat()
            asset.technical_metadata = merged

        return await self._mutate(asset_id, apply, action="update_technical_metadata")

    async def _mutate(self, asset_id: str, apply, *, action: str) -> Asset:
        try:
            async with self.session_factory() as session:
                asset = await session.get(Asset, asset_id, with_for_update=True)
                if asset is None:
                    raise AssetNotFound(asset_id)
                await apply(asset)
                await session.commit()
                await session.refresh(asset)
                return asset
        except SQLAlchemyError as exc:
            self.logger.error("asset_store_write_failed", asset_id=asset_id, action=action, error=str(exc))
            raise PersistenceFailure(f"{action} failed for asset {asset_id}: {exc}") from exc


def _assign_once(asset: Asset, attribute: str, value: str) -> None:
    current = getattr(asset, attribute)
    if current is not None and current != value:
        raise PersistenceFailure(f"{attribute} already set for asset {asset.asset_id}")
    setattr(asset, attribute, value)


def asset_snapshot(asset: Asset) -> dict[str, Any]:
    """Serialisable read-view of an asset, also what the read cache stores."""
    return {
        "asset_id": asset.asset_id,
        "title": asset.title,
        "description": asset.description,
        "type": asset.media_type,
        "status": asset.status.value,
        "metadata": asset.metadata_jsonb or {},
        "technical_metadata": asset.technical_metadata,
        "created_by": asset.created_by,
        "source_id": asset.source_id,
        "flow_id": asset.flow_id,
        "error_info": asset.error_info,
        "created_at": asset.created_at.isoformat() if asset.created_at else None,
        "updated_at": asset.updated_at.isoformat() if asset.updated_at else None,
    }


async def cached_asset_view(
    store: AssetStore,
    cache: AssetCache,
    asset_id: str,
    *,
    metrics: MamflowMetrics | None = None,
) -> dict[str, Any] | None:
    """Read-through view of an asset.

    Only terminal snapshots are written back to the cache. Assets still in
    flight are always read from the store.
    """
    cached = await cache.get_json(asset_id)
    if metrics is not None:
        metrics.record_cache_lookup(hit=cached is not None)
    if cached is not None:
        return cached
    asset = await store.get_asset(asset_id)
    if asset is None:
        return None
    snapshot = asset_snapshot(asset)
    if asset.status.is_terminal:
        await cache.set_json(asset_id, snapshot)
    return snapshot


__all__ = ["AssetStore", "asset_snapshot", "cached_asset_view"]
