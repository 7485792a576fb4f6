from __future__ import annotations

import json
from abc import ABC, abstractmethod
from typing import Any

from redis import RedisError
from redis.asyncio import Redis

from .config import Settings
from .errors import CacheInvalidationError


def asset_cache_key(asset_id: str) -> str:
    return f"asset:{asset_id}"


class AssetCache(ABC):
    """Cached read-views of assets, keyed by ``asset:<id>``."""

    @abstractmethod
    async def invalidate(self, asset_id: str) -> None: ...

    @abstractmethod
    async def get_json(self, asset_id: str) -> dict[str, Any] | None: ...

    @abstractmethod
    async def set_json(self, asset_id: str, payload: dict[str, Any]) -> None: ...

    async def ping(self) -> bool | None:
        """Reachability of the backing store; ``None`` when there is none."""
        return None

    async def aclose(self) -> None:
        return None


class RedisAssetCache(AssetCache):
    def __init__(self, client: Redis, *, ttl_seconds: int = 300, owns_client: bool = False):
        self.client = client
        self.ttl_seconds = ttl_seconds
        self.owns_client = owns_client

    async def invalidate(self, asset_id: str) -> None:
        try:
            await self.client.delete(asset_cache_key(asset_id))
        except RedisError as exc:
            raise CacheInvalidationError(f"failed to evict {asset_cache_key(asset_id)}: {exc}") from exc

    async def get_json(self, asset_id: str) -> dict[str, Any] | None:
        try:
            raw = await self.client.get(asset_cache_key(asset_id))
        except RedisError:
            return None
        if raw is None:
            return None
        return json.loads(raw)

    async def set_json(self, asset_id: str, payload: dict[str, Any]) -> None:
        try:
            await self.client.set(asset_cache_key(asset_id), json.dumps(payload, default=str), ex=self.ttl_seconds)
        except RedisError:
            return None

    async def ping(self) -> bool | None:
        try:
            return bool(await self.client.ping())
        except (RedisError, OSError):
            return False

    async def aclose(self) -> None:
        if self.owns_client:
            await self.client.aclose()


class NullAssetCache(AssetCache):
    async def invalidate(self, asset_id: str) -> None:
        return None

    async def get_json(self, asset_id: str) -> dict[str, Any] | None:
        return None

    async def set_json(self, asset_id: str, payload: dict[str, Any]) -> None:
        return None


def get_asset_cache(settings: Settings) -> AssetCache:
    if not settings.cache_enabled:
        return NullAssetCache()
    client = Redis.from_url(settings.redis_url)
    return RedisAssetCache(client, ttl_seconds=settings.cache_ttl_seconds, owns_client=True)


__all__ = ["AssetCache", "RedisAssetCache", "NullAssetCache", "asset_cache_key", "get_asset_cache"]
