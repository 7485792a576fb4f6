from __future__ import annotations

import asyncio

import httpx
import pytest

from mamflow.core.config import get_settings
from mamflow.core.errors import StorageFailure
from mamflow.core.retry import RetryPolicy
from mamflow.core.storage import (
    DerivedArtifactStore,
    HttpObjectStorage,
    LocalObjectStorage,
    PresignedURL,
    get_object_storage,
)


def _http_storage(handler) -> HttpObjectStorage:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return HttpObjectStorage(client, retry_policy=RetryPolicy(max_retries=2, initial_delay_s=0.0), owns_client=True)


async def _upload(storage, path, destination):
    try:
        await storage.upload(path, destination)
    finally:
        await storage.aclose()


@pytest.fixture()
def segment(tmp_path):
    path = tmp_path / "segment_0000.ts"
    path.write_bytes(b"transport-stream")
    return path


def test_http_upload_puts_file_with_content_type(segment):
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200)

    destination = PresignedURL(url="https://bucket.test/object-1?sig=abc", headers={"Content-Type": "video/mp2t"})
    asyncio.run(_upload(_http_storage(handler), segment, destination))

    assert len(seen) == 1
    assert seen[0].method == "PUT"
    assert seen[0].content == b"transport-stream"
    assert seen[0].headers["content-type"] == "video/mp2t"


def test_http_upload_retries_transient_failures(segment):
    statuses = iter([500, 429, 200])
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(next(statuses))

    asyncio.run(_upload(_http_storage(handler), segment, PresignedURL(url="https://bucket.test/o")))

    assert len(calls) == 3


def test_http_upload_rejection_is_not_retried(segment):
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(403)

    with pytest.raises(StorageFailure) as excinfo:
        asyncio.run(_upload(_http_storage(handler), segment, PresignedURL(url="https://bucket.test/o")))

    assert not excinfo.value.retryable
    assert len(calls) == 1


def test_http_upload_of_missing_file_fails(tmp_path):
    with pytest.raises(StorageFailure, match="missing"):
        asyncio.run(
            _upload(_http_storage(lambda request: httpx.Response(200)), tmp_path / "gone.ts", PresignedURL(url="https://b/o"))
        )


def test_local_storage_copies_inside_root(tmp_path, segment):
    root = tmp_path / "objects"
    storage = LocalObjectStorage(root)
    target = root / "flow-1" / "object-1.ts"

    asyncio.run(storage.upload(segment, PresignedURL(url=target.resolve().as_uri())))

    assert target.read_bytes() == b"transport-stream"


@pytest.mark.parametrize("url", ["https://bucket.test/object-1", "file:///etc/object-1"])
def test_local_storage_rejects_foreign_destinations(tmp_path, segment, url):
    storage = LocalObjectStorage(tmp_path / "objects")

    with pytest.raises(StorageFailure):
        asyncio.run(storage.upload(segment, PresignedURL(url=url)))


def test_derived_artifact_store_publishes_and_removes(tmp_path, segment):
    store = DerivedArtifactStore(tmp_path / "derived")

    key = store.put_file("asset-1/proxies/proxy_low.mp4", segment)

    assert store.exists(key)
    store.remove_prefix("asset-1")
    assert not store.exists(key)


def test_get_object_storage_uses_configured_backend(monkeypatch):
    assert isinstance(get_object_storage(get_settings()), LocalObjectStorage)

    monkeypatch.setenv("MAMFLOW_STORAGE_BACKEND", "http")
    get_settings.cache_clear()
    storage = get_object_storage(get_settings())
    try:
        assert isinstance(storage, HttpObjectStorage)
    finally:
        asyncio.run(storage.aclose())
