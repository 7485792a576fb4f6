from __future__ import annotations

import asyncio
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional, TypeVar

from mamflow.core.config import ProxyRendition, Settings
from mamflow.core.errors import PipelineStageError, TranscodeFailure
from mamflow.core.logging import get_logger
from mamflow.core.observability import PipelineObserver
from mamflow.core.storage import DerivedArtifactStore, ObjectStorage
from mamflow.ingest.ffprobe_parser import MediaTechnicalMetadata
from mamflow.ingest.segments import SegmentChunk, build_chunks
from mamflow.ingest.thumbnails import ThumbnailInfo
from mamflow.ingest.transcoder import Transcoder
from mamflow.services.registry_client import RegistryClient

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class ProcessRequest:
    asset_id: str
    source_path: str
    flow_id: str


@dataclass(slots=True)
class RegisteredSegment:
    index: int
    object_id: str
    timerange: str


@dataclass(slots=True)
class ProcessResult:
    metadata: MediaTechnicalMetadata
    thumbnail_key: Optional[str]
    proxy_keys: dict[str, str] = field(default_factory=dict)
    segments: list[RegisteredSegment] = field(default_factory=list)

    def technical_payload(self) -> dict[str, Any]:
        return {
            "media": self.metadata.to_dict(),
            "artifacts": {
                "thumbnail": self.thumbnail_key,
                "proxies": dict(self.proxy_keys),
            },
            "segments": {
                "count": len(self.segments),
                "first": self.segments[0].timerange if self.segments else None,
                "last": self.segments[-1].timerange if self.segments else None,
            },
        }


class MediaProcessor:
    """Transcoding and segmentation stage of a pipeline run.

    Steps run strictly in order: metadata extraction, thumbnail, proxies, segmentation, then
    allocate/upload/register for every segment in ascending time order. The
    run's working directory is exclusive and removed on every exit path.

    Sources without a video stream skip the thumbnail and proxy steps and
    publish no derived artefacts. When the reported duration is known, the
    segment files must cover it exactly
    (``expected_segment_count`` files, last window ending at the duration).
    """

    def __init__(
        self,
        *,
        transcoder: Transcoder,
        registry: RegistryClient,
        storage: ObjectStorage,
        artifacts: DerivedArtifactStore,
        work_root: Path,
        renditions: list[ProxyRendition],
        segment_duration_s: int,
        observer: PipelineObserver,
    ):
        self.transcoder = transcoder
        self.registry = registry
        self.storage = storage
        self.artifacts = artifacts
        self.work_root = work_root
        self.renditions = renditions
        self.segment_duration_s = segment_duration_s
        self.observer = observer

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        *,
        transcoder: Transcoder,
        registry: RegistryClient,
        storage: ObjectStorage,
        observer: PipelineObserver,
    ) -> "MediaProcessor":
        return cls(
            transcoder=transcoder,
            registry=registry,
            storage=storage,
            artifacts=DerivedArtifactStore(Path(settings.derived_root)),
            work_root=Path(settings.work_root),
            renditions=list(settings.proxy_renditions),
            segment_duration_s=settings.segment_duration_s,
            observer=observer,
        )

    async def process(self, request: ProcessRequest, *, on_stage: Callable[[str], None] | None = None) -> ProcessResult:
        logger = get_logger(component="media_processor", asset_id=request.asset_id, flow_id=request.flow_id)
        mark = on_stage or (lambda _stage: None)

        mark("workspace")
        try:
            self.work_root.mkdir(parents=True, exist_ok=True)
            workspace = tempfile.TemporaryDirectory(prefix=f"{request.asset_id}-", dir=self.work_root)
        except OSError as exc:
            raise PipelineStageError("workspace", "failed to create work directory", exc) from exc

        with workspace as workdir_name:
            workdir = Path(workdir_name)
            logger.info("media_processing_started", workdir=str(workdir))

            mark("transcode.metadata")
            metadata = await _stage(
                "transcode.metadata", "metadata extraction failed", self.transcoder.inspect_media(request.source_path)
            )

            thumbnail: ThumbnailInfo | None = None
            proxies: dict[str, Path] = {}
            if metadata.video is not None:
                mark("transcode.thumbnail")
                thumbnail = await _stage(
                    "transcode.thumbnail",
                    "thumbnail generation failed",
                    self.transcoder.thumbnail(request.source_path, workdir / "thumbnail.jpg"),
                )

                mark("transcode.proxy")
                for rendition in self.renditions:
                    output = workdir / f"proxy_{rendition.name}.mp4"
                    proxies[rendition.name] = await _stage(
                        "transcode.proxy",
                        "proxy generation failed",
                        self.transcoder.proxy(request.source_path, output, rendition),
                    )
            else:
                logger.info("video_outputs_skipped", reason="no_video_stream")

            mark("transcode.segment")
            chunks = await _stage(
                "transcode.segment",
                "segmentation failed",
                self._segment(request.source_path, workdir / "segments", metadata.duration_s),
            )

            registered = await self._publish_segments(request, chunks, mark)

            mark("artifacts.publish")
            try:
                thumbnail_key, proxy_keys = await asyncio.to_thread(
                    self._publish_artifacts, request.asset_id, thumbnail, proxies
                )
            except OSError as exc:
                raise PipelineStageError("artifacts.publish", "failed to publish derived artefacts", exc) from exc

            logger.info("media_processing_finished", segments=len(registered), proxies=sorted(proxy_keys))
            return ProcessResult(
                metadata=metadata,
                thumbnail_key=thumbnail_key,
                proxy_keys=proxy_keys,
                segments=registered,
            )

    async def discard_artifacts(self, asset_id: str) -> None:
        await asyncio.to_thread(self.artifacts.remove_prefix, asset_id)

    async def _segment(self, source: str, out_dir: Path, duration_s: float) -> list[SegmentChunk]:
        files = await self.transcoder.segment(source, out_dir, self.segment_duration_s)
        try:
            return build_chunks(files, duration_s, self.segment_duration_s)
        except ValueError as exc:
            raise TranscodeFailure(f"segment files do not match the source duration: {exc}") from exc

    async def _publish_segments(
        self,
        request: ProcessRequest,
        chunks: list[SegmentChunk],
        mark: Callable[[str], None],
    ) -> list[RegisteredSegment]:
        registered: list[RegisteredSegment] = []
        for chunk in chunks:
            mark("segment.allocate")
            allocation = await _stage(
                "segment.allocate",
                "failed to allocate segment storage",
                self.registry.allocate_segment_storage(request.flow_id),
                segment_index=chunk.index,
            )
            mark("segment.upload")
            await _stage(
                "segment.upload",
                "failed to upload segment",
                self.storage.upload(chunk.path, allocation.destination),
                segment_index=chunk.index,
            )
            mark("segment.register")
            await _stage(
                "segment.register",
                "failed to register segment",
                self.registry.register_segment(
                    request.flow_id, object_id=allocation.object_id, time_range=chunk.time_range
                ),
                segment_index=chunk.index,
            )
            timerange = chunk.time_range.to_timerange()
            registered.append(RegisteredSegment(index=chunk.index, object_id=allocation.object_id, timerange=timerange))
            self.observer.segment_registered(request.asset_id, chunk.index, timerange)
        return registered

    def _publish_artifacts(
        self,
        asset_id: str,
        thumbnail: ThumbnailInfo | None,
        proxies: dict[str, Path],
    ) -> tuple[Optional[str], dict[str, str]]:
        try:
            thumbnail_key = None
            if thumbnail is not None:
                thumbnail_key = self.artifacts.put_file(f"{asset_id}/thumbnail.jpg", thumbnail.path)
            proxy_keys = {
                name: self.artifacts.put_file(f"{asset_id}/proxies/{path.name}", path) for name, path in proxies.items()
            }
        except OSError:
            self.artifacts.remove_prefix(asset_id)
            raise
        return thumbnail_key, proxy_keys


async def _stage(stage: str, message: str, operation: Awaitable[T], *, segment_index: int | None = None) -> T:
    try:
        return await operation
    except PipelineStageError:
        raise
    except Exception as exc:
        raise PipelineStageError(stage, message, exc, segment_index=segment_index) from exc


__all__ = ["MediaProcessor", "ProcessRequest", "ProcessResult", "RegisteredSegment"]
