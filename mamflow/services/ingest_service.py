from __future__ import annotations

from pathlib import Path
from urllib.parse import unquote, urlparse

from mamflow.core.config import Settings
from mamflow.core.errors import HandoffFailed, InvalidRequest, PersistenceFailure
from mamflow.core.jobs import BasePipelineBackend
from mamflow.core.logging import get_logger
from mamflow.db.models import Asset
from mamflow.domain import IngestRequest, PipelineHandoff
from mamflow.services.asset_store import AssetStore
from mamflow.services.pipeline import build_diagnostic


class IngestService:
    """Synchronous half of an ingest: validate, persist as ``new``, hand off."""

    def __init__(self, settings: Settings, store: AssetStore, backend: BasePipelineBackend):
        self.settings = settings
        self.store = store
        self.backend = backend
        self.logger = get_logger(component="ingest_service")

    async def ingest_asset(self, request: IngestRequest) -> Asset:
        title = request.title.strip()
        if not title:
            raise InvalidRequest("title_required")
        source_path = self.resolve_source(request.source_path)

        asset = await self.store.create_asset(
            title=title,
            description=request.description,
            media_type=request.type,
            metadata=dict(request.metadata),
            created_by=request.user_id,
            source_uri=request.source_path,
        )
        handoff = PipelineHandoff(
            asset_id=asset.asset_id,
            title=asset.title,
            description=asset.description,
            media_type=asset.media_type,
            source_path=str(source_path),
        )
        try:
            await self.backend.submit(handoff)
        except Exception as exc:
            await self._record_handoff_failure(asset.asset_id, exc)
            raise HandoffFailed(asset.asset_id, str(exc) or type(exc).__name__) from exc
        self.logger.info("asset_ingest_accepted", asset_id=asset.asset_id, media_type=asset.media_type)
        return asset

    async def _record_handoff_failure(self, asset_id: str, exc: Exception) -> None:
        diagnostic = build_diagnostic("handoff", "failed to start pipeline run", exc)
        self.logger.error("asset_handoff_failed", asset_id=asset_id, **diagnostic)
        try:
            await self.store.mark_failed(asset_id, diagnostic)
        except PersistenceFailure as persist_exc:
            self.logger.error("failure_not_persisted", asset_id=asset_id, error=str(persist_exc), stage="handoff")

    def resolve_source(self, source: str) -> Path:
        if not source or not source.strip():
            raise InvalidRequest("source_required")
        parsed = urlparse(source)
        # single-letter schemes are Windows drive letters, not URIs
        scheme = parsed.scheme if len(parsed.scheme) > 1 else ""
        if scheme not in self.settings.allowed_source_uri_schemes:
            raise InvalidRequest(f"unsupported_uri_scheme:{scheme or 'path'}")
        if scheme == "file":
            path = Path(unquote(parsed.path))
        elif scheme == "":
            path = Path(source)
        else:
            raise InvalidRequest(f"unresolvable_source:{source}")
        path = path.expanduser()
        if not path.is_file():
            raise InvalidRequest(f"source_not_found:{source}")
        return path.resolve()


__all__ = ["IngestService"]
