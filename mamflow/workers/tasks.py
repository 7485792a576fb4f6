from __future__ import annotations

import asyncio
from typing import Any

from mamflow.core.config import get_settings
from mamflow.core.db import create_engine, create_session_factory
from mamflow.core.logging import configure_logging, level_from_name
from mamflow.domain import PipelineHandoff
from mamflow.services.pipeline import build_pipeline


def run_pipeline_job(payload: dict[str, Any]) -> str:
    """Entry-point executed by the RQ worker for one pipeline run."""

    settings = get_settings()
    configure_logging(level=level_from_name(settings.log_level))
    handoff = PipelineHandoff.model_validate(payload)

    async def _runner() -> str:
        engine = create_engine(settings)
        components = build_pipeline(settings, create_session_factory(engine))
        try:
            status = await components.pipeline.run(handoff)
            return status.value
        finally:
            await components.aclose()
            await engine.dispose()

    return asyncio.run(_runner())


__all__ = ["run_pipeline_job"]
