from __future__ import annotations

from typing import Annotated

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncEngine

from mamflow.core.auth import AuthContext, get_auth_context
from mamflow.core.cache import AssetCache
from mamflow.core.metrics import MamflowMetrics
from mamflow.services.asset_store import AssetStore
from mamflow.services.ingest_service import IngestService


def get_ingest_service(request: Request) -> IngestService:
    return request.app.state.ingest_service


def get_asset_store(request: Request) -> AssetStore:
    return request.app.state.components.store


def get_asset_cache(request: Request) -> AssetCache:
    return request.app.state.components.cache


def get_engine(request: Request) -> AsyncEngine:
    return request.app.state.engine


def get_metrics(request: Request) -> MamflowMetrics:
    return request.app.state.metrics


IngestServiceDependency = Annotated[IngestService, Depends(get_ingest_service)]
AssetStoreDependency = Annotated[AssetStore, Depends(get_asset_store)]
AssetCacheDependency = Annotated[AssetCache, Depends(get_asset_cache)]
EngineDependency = Annotated[AsyncEngine, Depends(get_engine)]
MetricsDependency = Annotated[MamflowMetrics, Depends(get_metrics)]
AuthDependency = Annotated[AuthContext, Depends(get_auth_context)]


__all__ = [
    "get_ingest_service",
    "get_asset_store",
    "get_asset_cache",
    "get_engine",
    "get_metrics",
    "IngestServiceDependency",
    "AssetStoreDependency",
    "AssetCacheDependency",
    "EngineDependency",
    "MetricsDependency",
    "AuthDependency",
]
