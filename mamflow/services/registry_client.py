from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import httpx

from mamflow.core.config import Settings
from mamflow.core.errors import RegistryError, RegistryRejected, RegistryUnavailable
from mamflow.core.logging import get_logger
from mamflow.core.retry import RetryPolicy
from mamflow.core.storage import PresignedURL
from mamflow.ingest.segments import TimeRange

_SUCCESS = {200, 201, 204}


@dataclass(slots=True)
class SegmentAllocation:
    object_id: str
    destination: PresignedURL


class RegistryClient:
    """HTTP client for the time-addressable flow/source registry."""

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
        self.logger = get_logger(component="registry_client")

    @classmethod
    def from_settings(cls, settings: Settings) -> "RegistryClient":
        headers = {"Accept": "application/json"}
        token = settings.secrets.registry_token
        if token:
            headers["Authorization"] = f"Bearer {token}"
        client = httpx.AsyncClient(
            base_url=settings.registry_base_url,
            timeout=settings.registry_timeout_s,
            headers=headers,
        )
        return cls(client, retry_policy=RetryPolicy.from_settings(settings), owns_client=True)

    async def create_source(self, *, label: str, format: str, description: str | None) -> str:
        body = await self._call(
            "POST",
            "/sources",
            {"label": label, "format": format, "description": description or ""},
            label="create_source",
        )
        return _require_id(body, "source")

    async def create_flow(self, *, source_id: str, label: str, format: str, description: str | None) -> str:
        body = await self._call(
            "POST",
            "/flows",
            {"source_id": source_id, "label": label, "format": format, "description": description or ""},
            label="create_flow",
        )
        return _require_id(body, "flow")

    async def allocate_segment_storage(self, flow_id: str) -> SegmentAllocation:
        body = await self._call("POST", f"/flows/{flow_id}/storage", {"limit": 1}, label="allocate_storage")
        objects = body.get("media_objects") if isinstance(body, dict) else None
        if not objects:
            raise RegistryRejected("storage allocation returned no media objects")
        entry = objects[0]
        put_url = entry.get("put_url") or {}
        object_id = entry.get("object_id")
        url = put_url.get("url")
        if not object_id or not url:
            raise RegistryRejected("storage allocation is missing object_id or put_url")
        headers = {"Content-Type": put_url["content-type"]} if put_url.get("content-type") else None
        return SegmentAllocation(object_id=str(object_id), destination=PresignedURL(url=url, method="PUT", headers=headers))

    async def register_segment(self, flow_id: str, *, object_id: str, time_range: TimeRange) -> None:
        await self._call(
            "POST",
            f"/flows/{flow_id}/segments",
            {"object_id": object_id, "timerange": time_range.to_timerange()},
            label="register_segment",
        )

    async def aclose(self) -> None:
        if self.owns_client:
            await self.client.aclose()

    async def _call(self, method: str, path: str, payload: dict[str, Any], *, label: str) -> Any:
        retrying = self.retry_policy.retrying(
            lambda exc: isinstance(exc, RegistryUnavailable), label=f"registry.{label}"
        )
        async for attempt in retrying:
            with attempt:
                return await self._request_once(method, path, payload)

    async def _request_once(self, method: str, path: str, payload: dict[str, Any]) -> Any:
        try:
            response = await self.client.request(method, path, json=payload)
        except httpx.TimeoutException as exc:
            raise RegistryUnavailable(f"{method} {path} timed out") from exc
        except httpx.TransportError as exc:
            raise RegistryUnavailable(f"{method} {path} failed: {exc}") from exc

        status = response.status_code
        if status >= 500 or status == 429:
            raise RegistryUnavailable(f"{method} {path} returned {status}", status_code=status)
        if status not in _SUCCESS:
            raise RegistryRejected(f"{method} {path} returned {status}: {_error_detail(response)}", status_code=status)
        self.logger.debug("registry_call_ok", method=method, path=path, status=status)
        if status == 204 or not response.content:
            return {}
        try:
            return response.json()
        except ValueError as exc:
            raise RegistryRejected(f"{method} {path} returned a non-JSON body", status_code=status) from exc


def _require_id(body: Any, entity: str) -> str:
    if isinstance(body, dict) and body.get("id"):
        return str(body["id"])
    raise RegistryRejected(f"{entity} creation response is missing an id")


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(body, dict):
        return str(body.get("detail") or body.get("error") or body)
    return str(body)


__all__ = ["RegistryClient", "RegistryError", "SegmentAllocation"]
