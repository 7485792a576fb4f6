from __future__ import annotations

from typing import Protocol

from .logging import get_logger
from .metrics import MamflowMetrics


class PipelineObserver(Protocol):
    """Observability port for pipeline runs. Injected, never global."""

    def run_started(self, asset_id: str) -> None: ...

    def status_changed(self, asset_id: str, status: str) -> None: ...

    def segment_registered(self, asset_id: str, index: int, timerange: str) -> None: ...

    def run_finished(self, asset_id: str, status: str, duration_s: float) -> None: ...

    def cache_invalidation_failed(self, asset_id: str, error: str) -> None: ...


class LoggingPipelineObserver:
    """Default observer: emits structured log events."""

    def __init__(self) -> None:
        self.logger = get_logger(component="pipeline_observer")

    def run_started(self, asset_id: str) -> None:
        self.logger.info("pipeline_run_started", asset_id=asset_id)

    def status_changed(self, asset_id: str, status: str) -> None:
        self.logger.info("asset_status_changed", asset_id=asset_id, status=status)

    def segment_registered(self, asset_id: str, index: int, timerange: str) -> None:
        self.logger.debug("segment_registered", asset_id=asset_id, index=index, timerange=timerange)

    def run_finished(self, asset_id: str, status: str, duration_s: float) -> None:
        self.logger.info("pipeline_run_finished", asset_id=asset_id, status=status, duration_s=round(duration_s, 3))

    def cache_invalidation_failed(self, asset_id: str, error: str) -> None:
        self.logger.warning("cache_invalidation_failed", asset_id=asset_id, error=error)


class PrometheusPipelineObserver(LoggingPipelineObserver):
    """Logs like the default observer and records pipeline metrics."""

    def __init__(self, metrics: MamflowMetrics) -> None:
        super().__init__()
        self.metrics = metrics

    def run_started(self, asset_id: str) -> None:
        super().run_started(asset_id)
        self.metrics.runs_started.inc()

    def status_changed(self, asset_id: str, status: str) -> None:
        super().status_changed(asset_id, status)
        self.metrics.status_changes.labels(status=status).inc()

    def segment_registered(self, asset_id: str, index: int, timerange: str) -> None:
        super().segment_registered(asset_id, index, timerange)
        self.metrics.segments_registered.inc()

    def run_finished(self, asset_id: str, status: str, duration_s: float) -> None:
        super().run_finished(asset_id, status, duration_s)
        self.metrics.runs_finished.labels(status=status).inc()
        self.metrics.run_duration.observe(duration_s)

    def cache_invalidation_failed(self, asset_id: str, error: str) -> None:
        super().cache_invalidation_failed(asset_id, error)
        self.metrics.cache_invalidation_failures.inc()


__all__ = ["PipelineObserver", "LoggingPipelineObserver", "PrometheusPipelineObserver"]
