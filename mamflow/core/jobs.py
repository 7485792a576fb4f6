from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from typing import Coroutine, Any

from redis import Redis
from rq import Queue

from mamflow.domain import PipelineHandoff

from .config import Settings
from .logging import get_logger


class PipelineAlreadyRunning(RuntimeError):
    def __init__(self, asset_id: str):
        super().__init__(f"pipeline_already_running:{asset_id}")
        self.asset_id = asset_id


class PipelineRunRegistry:
    """Process-wide handles for in-flight pipeline runs, keyed by asset id."""

    def __init__(self) -> None:
        self._runs: dict[str, asyncio.Task[Any]] = {}
        self.logger = get_logger(component="pipeline_registry")

    def start(self, asset_id: str, run: Coroutine[Any, Any, Any]) -> asyncio.Task[Any]:
        existing = self._runs.get(asset_id)
        if existing is not None and not existing.done():
            run.close()
            raise PipelineAlreadyRunning(asset_id)
        # A fresh task: the submitting request's cancellation never reaches it.
        task = asyncio.get_running_loop().create_task(run, name=f"pipeline:{asset_id}")
        self._runs[asset_id] = task
        task.add_done_callback(lambda finished, key=asset_id: self._on_done(key, finished))
        return task

    def get(self, asset_id: str) -> asyncio.Task[Any] | None:
        return self._runs.get(asset_id)

    def active(self) -> list[str]:
        return [asset_id for asset_id, task in self._runs.items() if not task.done()]

    def cancel(self, asset_id: str) -> bool:
        task = self._runs.get(asset_id)
        if task is None or task.done():
            return False
        return task.cancel()

    async def drain(self, timeout: float) -> None:
        """Wait for in-flight runs; cancel whatever is still running after ``timeout``."""
        pending = [task for task in self._runs.values() if not task.done()]
        if not pending:
            return
        self.logger.info("pipeline_drain_started", runs=len(pending), timeout_s=timeout)
        _, still_running = await asyncio.wait(pending, timeout=timeout)
        for task in still_running:
            task.cancel()
        if still_running:
            await asyncio.gather(*still_running, return_exceptions=True)
            self.logger.warning("pipeline_drain_cancelled", runs=len(still_running))

    def _on_done(self, asset_id: str, task: asyncio.Task[Any]) -> None:
        if self._runs.get(asset_id) is task:
            del self._runs[asset_id]
        if task.cancelled():
            self.logger.info("pipeline_task_cancelled", asset_id=asset_id)
            return
        exc = task.exception()
        if exc is not None:
            self.logger.error("pipeline_task_crashed", asset_id=asset_id, error=str(exc))


class BasePipelineBackend(ABC):
    @abstractmethod
    async def submit(self, handoff: PipelineHandoff) -> None: ...


class InProcessPipelineBackend(BasePipelineBackend):
    def __init__(self, pipeline, registry: PipelineRunRegistry):
        self.pipeline = pipeline
        self.registry = registry

    async def submit(self, handoff: PipelineHandoff) -> None:
        self.registry.start(handoff.asset_id, self.pipeline.run(handoff))


class RQPipelineBackend(BasePipelineBackend):
    def __init__(self, queue: Queue, *, job_timeout_s: float):
        self.queue = queue
        self.job_timeout_s = job_timeout_s

    async def submit(self, handoff: PipelineHandoff) -> None:  # pragma: no cover - exercised via worker
        from mamflow.workers.tasks import run_pipeline_job

        await asyncio.to_thread(
            self.queue.enqueue,
            run_pipeline_job,
            handoff.model_dump(mode="json"),
            job_id=f"pipeline-{handoff.asset_id}",
            job_timeout=int(self.job_timeout_s) + 60,
        )


def get_pipeline_backend(settings: Settings, pipeline, registry: PipelineRunRegistry) -> BasePipelineBackend:
    backend = settings.normalized_pipeline_backend
    if backend == "inprocess":
        return InProcessPipelineBackend(pipeline, registry)
    if backend == "rq":  # pragma: no cover - requires redis
        connection = Redis.from_url(settings.redis_url)
        return RQPipelineBackend(Queue("mamflow-pipeline", connection=connection), job_timeout_s=settings.pipeline_deadline_s)
    raise ValueError(f"Unsupported pipeline backend: {settings.pipeline_backend}")


__all__ = [
    "BasePipelineBackend",
    "InProcessPipelineBackend",
    "PipelineAlreadyRunning",
    "PipelineRunRegistry",
    "RQPipelineBackend",
    "get_pipeline_backend",
]
