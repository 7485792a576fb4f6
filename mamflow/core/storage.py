from __future__ import annotations

import asyncio
import shutil
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from urllib.parse import urlparse, unquote

import httpx

from .config import Settings
from .errors import StorageFailure
from .logging import get_logger
from .retry import RetryPolicy


@dataclass(slots=True)
class PresignedURL:
    url: str
    method: str = "PUT"
    headers: dict[str, str] | None = None

    @property
    def content_type(self) -> str:
        headers = self.headers or {}
        for key, value in headers.items():
            if key.lower() == "content-type":
                return value
        return "application/octet-stream"


class ObjectStorage(ABC):
    """Uploads a local file to a destination allocated by the registry."""

    @abstractmethod
    async def upload(self, path: Path, destination: PresignedURL) -> None: ...

    async def aclose(self) -> None:
        return None


class HttpObjectStorage(ObjectStorage):
    """Single PUT per attempt against a pre-signed URL."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        retry_policy: RetryPolicy,
        owns_client: bool = False,
    ):
        self.client = client
        self.retry_policy = retry_policy
        self.owns_client = owns_client
        self.logger = get_logger(component="object_storage", backend="http")

    async def upload(self, path: Path, destination: PresignedURL) -> None:
        if not path.is_file():
            raise StorageFailure(f"segment file missing: {path}")
        retrying = self.retry_policy.retrying(
            lambda exc: isinstance(exc, StorageFailure) and exc.retryable, label="storage.upload"
        )
        async for attempt in retrying:
            with attempt:
                await self._put_once(path, destination)
        self.logger.debug("segment_uploaded", path=str(path))

    async def _put_once(self, path: Path, destination: PresignedURL) -> None:
        payload = await asyncio.to_thread(path.read_bytes)
        headers = dict(destination.headers or {})
        headers.setdefault("Content-Type", destination.content_type)
        try:
            response = await self.client.request(destination.method, destination.url, content=payload, headers=headers)
        except httpx.TimeoutException as exc:
            raise StorageFailure(f"upload timed out: {exc}", retryable=True) from exc
        except httpx.TransportError as exc:
            raise StorageFailure(f"upload transport error: {exc}", retryable=True) from exc
        if response.status_code >= 500 or response.status_code == 429:
            raise StorageFailure(f"upload failed with status {response.status_code}", retryable=True)
        if response.status_code >= 400:
            raise StorageFailure(f"upload rejected with status {response.status_code}")

    async def aclose(self) -> None:
        if self.owns_client:
            await self.client.aclose()


class LocalObjectStorage(ObjectStorage):
    """Filesystem-backed uploads for ``file://`` destinations, suitable for development."""

    def __init__(self, base_path: Path):
        self.base_path = base_path.resolve()
        self.base_path.mkdir(parents=True, exist_ok=True)

    def _resolve(self, url: str) -> Path:
        parsed = urlparse(url)
        if parsed.scheme != "file":
            raise StorageFailure(f"Unsupported URI scheme for local storage: {url}")
        target = Path(unquote(parsed.path)).resolve()
        if not target.is_relative_to(self.base_path):
            raise StorageFailure(f"destination outside storage root: {url}")
        return target

    async def upload(self, path: Path, destination: PresignedURL) -> None:
        target = self._resolve(destination.url)
        try:
            await asyncio.to_thread(self._copy, path, target)
        except OSError as exc:
            raise StorageFailure(f"local upload failed: {exc}") from exc

    @staticmethod
    def _copy(source: Path, target: Path) -> None:
        target.parent.mkdir(parents=True, exist_ok=True)
        shutil.copyfile(source, target)


class DerivedArtifactStore:
    """Keeps published thumbnails and proxies under ``derived_root``."""

    def __init__(self, base_path: Path):
        self.base_path = base_path
        self.base_path.mkdir(parents=True, exist_ok=True)

    def put_file(self, key: str, source: Path) -> str:
        target = (self.base_path / key).resolve()
        target.parent.mkdir(parents=True, exist_ok=True)
        shutil.copyfile(source, target)
        return key

    def exists(self, key: str) -> bool:
        return (self.base_path / key).exists()

    def remove_prefix(self, prefix: str) -> None:
        shutil.rmtree(self.base_path / prefix, ignore_errors=True)


def get_object_storage(settings: Settings) -> ObjectStorage:
    if settings.storage_backend == "local":
        base_path = settings.local_storage_base_path or settings.derived_root
        return LocalObjectStorage(base_path=Path(base_path))
    if settings.storage_backend == "http":
        client = httpx.AsyncClient(timeout=settings.upload_timeout_s)
        return HttpObjectStorage(client, retry_policy=RetryPolicy.from_settings(settings), owns_client=True)
    raise ValueError(f"Unsupported storage backend: {settings.storage_backend}")


__all__ = [
    "PresignedURL",
    "ObjectStorage",
    "HttpObjectStorage",
    "LocalObjectStorage",
    "DerivedArtifactStore",
    "get_object_storage",
]
