from __future__ import annotations

from fastapi import APIRouter, Response

from mamflow.api import deps
from mamflow.core.db import ping_database
from mamflow.core.logging import get_logger
from mamflow.core.metrics import METRICS_CONTENT_TYPE

from .schemas import HealthResponse


router = APIRouter(tags=["system"])
logger = get_logger(component="routes_system")


@router.get("/health", response_model=HealthResponse, summary="Service health with store reachability")
async def health(engine: deps.EngineDependency, cache: deps.AssetCacheDependency) -> HealthResponse:
    database_ok = await ping_database(engine)
    cache_ok = await cache.ping()
    if not database_ok:
        logger.error("database_health_check_failed")
    if cache_ok is False:
        logger.error("cache_health_check_failed")
    degraded = not database_ok or cache_ok is False
    return HealthResponse(status="degraded" if degraded else "ok", database=database_ok, cache=cache_ok)


async def metrics(collectors: deps.MetricsDependency) -> Response:
    return Response(content=collectors.render(), media_type=METRICS_CONTENT_TYPE)


def get_metrics_router(path: str) -> APIRouter:
    metrics_router = APIRouter(tags=["system"])
    metrics_router.add_api_route(path, metrics, methods=["GET"], include_in_schema=False)
    return metrics_router


__all__ = ["router", "get_metrics_router"]
