from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Awaitable, Optional, TypeVar

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from mamflow.core.cache import AssetCache, get_asset_cache
from mamflow.core.config import Settings
from mamflow.core.errors import (
    CacheInvalidationError,
    DeadlineExceeded,
    PersistenceFailure,
    PipelineCancelled,
    PipelineStageError,
)
from mamflow.core.logging import get_logger
from mamflow.core.observability import LoggingPipelineObserver, PipelineObserver
from mamflow.core.storage import ObjectStorage, get_object_storage
from mamflow.db.models import AssetStatus
from mamflow.domain import PipelineHandoff
from mamflow.ingest import format_urn_for
from mamflow.ingest.transcoder import Transcoder
from mamflow.services.asset_store import AssetStore
from mamflow.services.media_processor import MediaProcessor, ProcessRequest
from mamflow.services.registry_client import RegistryClient

T = TypeVar("T")


@dataclass(slots=True)
class _RunState:
    stage: str = "status"

    def enter(self, stage: str) -> None:
        self.stage = stage


class IngestPipeline:
    """Drives one asset from ``new`` to ``ready`` or ``failed``.

    Status writes are always followed by a cache eviction once the write has
    committed. Any failure, deadline expiry or cancellation ends the run in
    ``failed`` with a diagnostic naming the stage that was active, and removes
    whatever derived artefacts the run had already published.
    """

    def __init__(
        self,
        *,
        store: AssetStore,
        cache: AssetCache,
        registry: RegistryClient,
        processor: MediaProcessor,
        observer: PipelineObserver,
        deadline_s: float,
    ):
        self.store = store
        self.cache = cache
        self.registry = registry
        self.processor = processor
        self.observer = observer
        self.deadline_s = deadline_s

    async def run(self, handoff: PipelineHandoff) -> AssetStatus:
        asset_id = handoff.asset_id
        logger = get_logger(component="ingest_pipeline", asset_id=asset_id)
        state = _RunState()
        started = time.monotonic()
        final = AssetStatus.failed
        self.observer.run_started(asset_id)
        try:
            await asyncio.wait_for(self._drive(handoff, state), timeout=self.deadline_s)
            final = AssetStatus.ready
        except PipelineStageError as exc:
            await self._fail(asset_id, exc.stage, exc.message, exc.cause, segment_index=exc.segment_index)
        except asyncio.TimeoutError:
            cause = DeadlineExceeded(f"pipeline exceeded its {self.deadline_s}s deadline")
            await self._fail(asset_id, state.stage, "deadline exceeded", cause)
        except asyncio.CancelledError:
            await self._fail(asset_id, state.stage, "cancelled", PipelineCancelled("pipeline run was cancelled"))
            raise
        except Exception as exc:
            logger.exception("pipeline_unexpected_error", stage=state.stage)
            await self._fail(asset_id, state.stage, "unexpected pipeline error", exc)
        finally:
            self.observer.run_finished(asset_id, final.value, time.monotonic() - started)
        return final

    async def _drive(self, handoff: PipelineHandoff, state: _RunState) -> None:
        asset_id = handoff.asset_id
        format_urn = format_urn_for(handoff.media_type)

        await self._transition(asset_id, AssetStatus.ingesting, state)

        state.enter("registry.create_source")
        source_id = await _stage(
            "registry.create_source",
            "failed to create TAMS source",
            self.registry.create_source(label=handoff.title, format=format_urn, description=handoff.description),
        )
        state.enter("store.external_ids")
        await _stage(
            "store.external_ids",
            "failed to update asset TAMS info",
            self.store.update_external_ids(asset_id, source_id=source_id),
        )

        state.enter("registry.create_flow")
        flow_id = await _stage(
            "registry.create_flow",
            "failed to create TAMS flow",
            self.registry.create_flow(
                source_id=source_id, label=handoff.title, format=format_urn, description=handoff.description
            ),
        )
        state.enter("store.external_ids")
        await _stage(
            "store.external_ids",
            "failed to update asset TAMS info",
            self.store.update_external_ids(asset_id, flow_id=flow_id),
        )
        await self._invalidate(asset_id)

        await self._transition(asset_id, AssetStatus.processing, state)

        result = await self.processor.process(
            ProcessRequest(asset_id=asset_id, source_path=handoff.source_path, flow_id=flow_id),
            on_stage=state.enter,
        )

        state.enter("store.technical_metadata")
        await _stage(
            "store.technical_metadata",
            "failed to store technical metadata",
            self.store.update_technical_metadata(asset_id, result.technical_payload()),
        )

        await self._transition(asset_id, AssetStatus.ready, state)

    async def _transition(self, asset_id: str, status: AssetStatus, state: _RunState) -> None:
        state.enter("status")
        await _stage("status", "failed to update asset status", self.store.update_status(asset_id, status))
        self.observer.status_changed(asset_id, status.value)
        await self._invalidate(asset_id)

    async def _invalidate(self, asset_id: str) -> None:
        try:
            await self.cache.invalidate(asset_id)
        except CacheInvalidationError as exc:
            self.observer.cache_invalidation_failed(asset_id, str(exc))

    async def _fail(
        self,
        asset_id: str,
        stage: str,
        message: str,
        cause: BaseException,
        *,
        segment_index: Optional[int] = None,
    ) -> None:
        diagnostic = build_diagnostic(stage, message, cause, segment_index=segment_index)
        logger = get_logger(component="ingest_pipeline", asset_id=asset_id)
        logger.error("pipeline_stage_failed", **diagnostic)
        try:
            await self.store.mark_failed(asset_id, diagnostic)
        except PersistenceFailure as exc:
            logger.error("failure_not_persisted", error=str(exc), stage=stage)
            return
        self.observer.status_changed(asset_id, AssetStatus.failed.value)
        await self._invalidate(asset_id)
        await self.processor.discard_artifacts(asset_id)


def build_diagnostic(
    stage: str,
    message: str,
    cause: BaseException,
    *,
    segment_index: Optional[int] = None,
) -> dict[str, Any]:
    diagnostic: dict[str, Any] = {
        "message": message,
        "cause": str(cause) or type(cause).__name__,
        "cause_type": type(cause).__name__,
        "stage": stage,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
    if segment_index is not None:
        diagnostic["segment_index"] = segment_index
    return diagnostic


async def _stage(stage: str, message: str, operation: Awaitable[T]) -> T:
    try:
        return await operation
    except Exception as exc:
        raise PipelineStageError(stage, message, exc) from exc


@dataclass(slots=True)
class PipelineComponents:
    """Long-lived collaborators wired once per process."""

    store: AssetStore
    cache: AssetCache
    registry: RegistryClient
    storage: ObjectStorage
    pipeline: IngestPipeline

    async def aclose(self) -> None:
        await self.registry.aclose()
        await self.storage.aclose()
        await self.cache.aclose()


def build_pipeline(
    settings: Settings,
    session_factory: async_sessionmaker[AsyncSession],
    *,
    observer: PipelineObserver | None = None,
) -> PipelineComponents:
    observer = observer or LoggingPipelineObserver()
    store = AssetStore(session_factory)
    cache = get_asset_cache(settings)
    registry = RegistryClient.from_settings(settings)
    storage = get_object_storage(settings)
    processor = MediaProcessor.from_settings(
        settings,
        transcoder=Transcoder.from_settings(settings),
        registry=registry,
        storage=storage,
        observer=observer,
    )
    pipeline = IngestPipeline(
        store=store,
        cache=cache,
        registry=registry,
        processor=processor,
        observer=observer,
        deadline_s=settings.pipeline_deadline_s,
    )
    return PipelineComponents(store=store, cache=cache, registry=registry, storage=storage, pipeline=pipeline)


__all__ = ["IngestPipeline", "PipelineComponents", "build_diagnostic", "build_pipeline"]
