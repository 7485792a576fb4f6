from __future__ import annotations

import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request

from mamflow.api.v1 import get_api_router
from mamflow.api.v1.routes_system import get_metrics_router
from mamflow.core.config import get_settings
from mamflow.core.db import create_engine, create_session_factory
from mamflow.core.jobs import PipelineRunRegistry, get_pipeline_backend
from mamflow.core.logging import configure_logging, get_logger, level_from_name
from mamflow.core.metrics import MamflowMetrics
from mamflow.core.observability import PipelineObserver, PrometheusPipelineObserver
from mamflow.services.ingest_service import IngestService
from mamflow.services.pipeline import build_pipeline


def create_app(*, observer: PipelineObserver | None = None, metrics: MamflowMetrics | None = None) -> FastAPI:
    settings = get_settings()
    configure_logging(level=level_from_name(settings.log_level))
    logger = get_logger(component="app")
    engine = create_engine(settings)
    session_factory = create_session_factory(engine)
    metrics = metrics or MamflowMetrics()
    observer = observer or PrometheusPipelineObserver(metrics)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        components = build_pipeline(settings, session_factory, observer=observer)
        run_registry = PipelineRunRegistry()
        backend = get_pipeline_backend(settings, components.pipeline, run_registry)

        app.state.settings = settings
        app.state.engine = engine
        app.state.session_factory = session_factory
        app.state.components = components
        app.state.run_registry = run_registry
        app.state.ingest_service = IngestService(settings, components.store, backend)
        logger.info("app_started", environment=settings.environment, backend=settings.normalized_pipeline_backend)
        try:
            yield
        finally:
            await run_registry.drain(settings.pipeline_drain_timeout_s)
            await components.aclose()
            await engine.dispose()
            logger.info("app_stopped")

    app = FastAPI(
        title=settings.app_name,
        version=settings.version,
        lifespan=lifespan,
        openapi_url="/openapi.json",
        docs_url="/docs",
    )
    app.state.metrics = metrics

    @app.middleware("http")
    async def record_request_metrics(request: Request, call_next):
        metrics.active_requests.inc()
        started = time.perf_counter()
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
            return response
        finally:
            metrics.active_requests.dec()
            route = request.scope.get("route")
            metrics.request_duration.labels(
                handler=getattr(route, "path", "unmatched"),
                method=request.method,
                status=str(status_code),
            ).observe(time.perf_counter() - started)

    app.include_router(get_api_router())
    if settings.metrics_enabled:
        app.include_router(get_metrics_router(settings.metrics_path))
    return app


app = create_app()


__all__ = ["app", "create_app"]
