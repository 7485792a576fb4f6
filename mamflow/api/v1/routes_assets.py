from __future__ import annotations

from fastapi import APIRouter, HTTPException, status

from mamflow.api import deps
from mamflow.core.errors import HandoffFailed, InvalidRequest, PersistenceFailure
from mamflow.core.logging import get_logger
from mamflow.domain import IngestRequest
from mamflow.services.asset_store import asset_snapshot, cached_asset_view

from . import schemas


router = APIRouter(prefix="/assets", tags=["assets"])
logger = get_logger(component="routes_assets")


@router.post("", response_model=schemas.AssetResponse, status_code=status.HTTP_202_ACCEPTED)
async def ingest_asset(
    payload: schemas.AssetIngestRequest,
    service: deps.IngestServiceDependency,
    context: deps.AuthDependency,
) -> schemas.AssetResponse:
    request = IngestRequest(
        title=payload.title,
        description=payload.description,
        type=payload.type,
        user_id=context.user_id,
        metadata=payload.metadata,
        source_path=payload.source_path,
    )
    try:
        asset = await service.ingest_asset(request)
    except InvalidRequest as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except HandoffFailed as exc:
        logger.error("asset_handoff_failed", asset_id=exc.asset_id, error=str(exc))
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="pipeline_unavailable") from exc
    except PersistenceFailure as exc:
        logger.error("asset_create_failed", error=str(exc))
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="asset_store_unavailable") from exc
    return schemas.AssetResponse(**asset_snapshot(asset))


@router.get("/{asset_id}", response_model=schemas.AssetResponse)
async def get_asset(
    asset_id: str,
    store: deps.AssetStoreDependency,
    cache: deps.AssetCacheDependency,
    metrics: deps.MetricsDependency,
    context: deps.AuthDependency,
) -> schemas.AssetResponse:
    snapshot = await cached_asset_view(store, cache, asset_id, metrics=metrics)
    if snapshot is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="asset_not_found")
    return schemas.AssetResponse(**snapshot)


__all__ = ["router"]
