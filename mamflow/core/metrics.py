from __future__ import annotations

from prometheus_client import CONTENT_TYPE_LATEST, CollectorRegistry, Counter, Gauge, Histogram, generate_latest

METRICS_CONTENT_TYPE = CONTENT_TYPE_LATEST


class MamflowMetrics:
    """Prometheus collectors for one application instance.

    Each instance owns its registry, so several apps (or test clients) in one
    process never share counters.
    """

    def __init__(self, registry: CollectorRegistry | None = None):
        self.registry = registry or CollectorRegistry()
        self.request_duration = Histogram(
            "http_request_duration_seconds",
            "Duration of HTTP requests.",
            ["handler", "method", "status"],
            registry=self.registry,
        )
        self.active_requests = Gauge("http_requests_active", "Number of active HTTP requests.", registry=self.registry)
        self.cache_hits = Counter("cache_hits_total", "Asset read-view cache hits.", registry=self.registry)
        self.cache_misses = Counter("cache_misses_total", "Asset read-view cache misses.", registry=self.registry)
        self.runs_started = Counter("pipeline_runs_started_total", "Pipeline runs started.", registry=self.registry)
        self.runs_finished = Counter(
            "pipeline_runs_finished_total", "Pipeline runs finished, by final status.", ["status"], registry=self.registry
        )
        self.run_duration = Histogram(
            "pipeline_run_duration_seconds",
            "Wall-clock duration of pipeline runs.",
            buckets=(1, 5, 15, 30, 60, 120, 300, 600, 1800, 3600),
            registry=self.registry,
        )
        self.status_changes = Counter(
            "asset_status_changes_total", "Asset status transitions written by the pipeline.", ["status"], registry=self.registry
        )
        self.segments_registered = Counter(
            "segments_registered_total", "Segments registered with the flow registry.", registry=self.registry
        )
        self.cache_invalidation_failures = Counter(
            "cache_invalidation_failures_total", "Failed cache evictions.", registry=self.registry
        )

    def record_cache_lookup(self, hit: bool) -> None:
        (self.cache_hits if hit else self.cache_misses).inc()

    def render(self) -> bytes:
        return generate_latest(self.registry)


__all__ = ["METRICS_CONTENT_TYPE", "MamflowMetrics"]
