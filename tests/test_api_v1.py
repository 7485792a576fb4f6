from __future__ import annotations

import time

import jwt
from sqlalchemy.ext.asyncio import create_async_engine

from mamflow.api.deps import get_asset_cache, get_engine, get_ingest_service
from mamflow.core.config import get_settings
from mamflow.core.errors import InvalidRequest
from mamflow.core.jobs import BasePipelineBackend
from mamflow.services.ingest_service import IngestService
from tests.conftest import TEST_AUDIENCE, TEST_ISSUER, TEST_SECRET
from tests.fakes import RecordingCache


def _wait_for_status(client, asset_id: str, headers: dict[str, str], wanted: set[str], timeout_s: float = 10.0) -> dict:
    deadline = time.monotonic() + timeout_s
    while True:
        payload = client.get(f"/v1/assets/{asset_id}", headers=headers).json()
        if payload["status"] in wanted or time.monotonic() > deadline:
            return payload
        time.sleep(0.05)


def test_assets_require_authorization(client):
    resp = client.get("/v1/assets/abc")
    assert resp.status_code == 401

    resp = client.get("/v1/assets/abc", headers={"Authorization": "Bearer not-a-token"})
    assert resp.status_code == 401


def test_unknown_asset_is_404(client, user_headers):
    resp = client.get("/v1/assets/does-not-exist", headers=user_headers)
    assert resp.status_code == 404
    assert resp.json()["detail"] == "asset_not_found"


def test_ingest_returns_new_asset_then_records_failure(client, user_headers, source_file):
    resp = client.post(
        "/v1/assets",
        json={
            "title": "Evening news",
            "description": "Main bulletin",
            "type": "video",
            "metadata": {"desk": "national"},
            "source_path": str(source_file),
        },
        headers=user_headers,
    )
    assert resp.status_code == 202, resp.text
    accepted = resp.json()
    assert accepted["status"] == "new"
    assert accepted["created_by"] == "user-1"
    assert accepted["metadata"] == {"desk": "national"}

    # the registry endpoint in tests refuses connections
    final = _wait_for_status(client, accepted["asset_id"], user_headers, {"failed", "ready"})
    assert final["status"] == "failed"
    assert final["error_info"]["stage"] == "registry.create_source"
    assert final["error_info"]["message"] == "failed to create TAMS source"
    assert final["source_id"] is None


def test_ingest_rejects_missing_source(client, user_headers, tmp_path):
    resp = client.post(
        "/v1/assets",
        json={"title": "clip", "source_path": str(tmp_path / "missing.mp4")},
        headers=user_headers,
    )
    assert resp.status_code == 400
    assert resp.json()["detail"].startswith("source_not_found")


def test_ingest_maps_invalid_request_to_400(client, user_headers):
    class RejectingService:
        async def ingest_asset(self, request):
            raise InvalidRequest("title_required")

    client.app.dependency_overrides[get_ingest_service] = lambda: RejectingService()
    try:
        resp = client.post("/v1/assets", json={"title": "", "source_path": "/x"}, headers=user_headers)
    finally:
        client.app.dependency_overrides.clear()

    assert resp.status_code == 400
    assert resp.json()["detail"] == "title_required"


def test_admin_env_check_requires_scope(client, user_headers):
    resp = client.get("/v1/admin/env-check", headers=user_headers)
    assert resp.status_code == 403
    assert resp.json()["detail"] == "admin_scope_required"


def test_admin_env_check_reports_tools(client, admin_headers, monkeypatch):
    monkeypatch.setattr("mamflow.api.v1.routes_admin.binary_available", lambda binary: binary == "ffprobe")

    resp = client.get("/v1/admin/env-check", headers=admin_headers)

    assert resp.status_code == 200
    assert resp.json() == {"ffmpeg": False, "ffprobe": True}


def test_dev_token_is_accepted_by_the_api(client):
    resp = client.post("/v1/admin/dev-token", json={"user_id": "editor-7", "scopes": ["admin"]})
    assert resp.status_code == 200
    token = resp.json()["token"]

    claims = jwt.decode(token, TEST_SECRET, algorithms=["HS256"], audience=TEST_AUDIENCE, issuer=TEST_ISSUER)
    assert claims["sub"] == "editor-7"
    assert claims["scopes"] == ["admin"]

    resp = client.get("/v1/assets/none", headers={"Authorization": f"Bearer {token}"})
    assert resp.status_code == 404


def test_ingest_handoff_failure_is_503(client, user_headers, source_file):
    class UnreachableBackend(BasePipelineBackend):
        async def submit(self, handoff):
            raise ConnectionError("queue unreachable")

    state = client.app.state
    service = IngestService(state.settings, state.ingest_service.store, UnreachableBackend())
    client.app.dependency_overrides[get_ingest_service] = lambda: service
    try:
        resp = client.post("/v1/assets", json={"title": "clip", "source_path": str(source_file)}, headers=user_headers)
    finally:
        client.app.dependency_overrides.clear()

    assert resp.status_code == 503
    assert resp.json()["detail"] == "pipeline_unavailable"


def test_health_reports_store_reachability(client):
    payload = client.get("/v1/health").json()

    assert payload["status"] == "ok"
    assert payload["database"] is True
    assert payload["cache"] is None


def test_health_is_degraded_when_stores_are_unreachable(client, tmp_path):
    class UnreachableCache(RecordingCache):
        async def ping(self):
            return False

    missing_db = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'missing' / 'nowhere.db'}")
    client.app.dependency_overrides[get_engine] = lambda: missing_db
    client.app.dependency_overrides[get_asset_cache] = lambda: UnreachableCache()
    try:
        payload = client.get("/v1/health").json()
    finally:
        client.app.dependency_overrides.clear()

    assert payload["status"] == "degraded"
    assert payload["database"] is False
    assert payload["cache"] is False


def test_metrics_expose_requests_cache_lookups_and_runs(client, user_headers, source_file):
    client.get("/v1/health")
    client.get("/v1/assets/does-not-exist", headers=user_headers)
    accepted = client.post(
        "/v1/assets", json={"title": "clip", "source_path": str(source_file)}, headers=user_headers
    ).json()
    _wait_for_status(client, accepted["asset_id"], user_headers, {"failed", "ready"})

    # the run records its outcome just after the failed status is committed
    deadline = time.monotonic() + 5.0
    resp = client.get("/metrics")
    while "pipeline_runs_finished_total{" not in resp.text and time.monotonic() < deadline:
        time.sleep(0.05)
        resp = client.get("/metrics")

    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith("text/plain")
    body = resp.text
    assert 'http_request_duration_seconds_count{handler="/v1/health",method="GET",status="200"} 1.0' in body
    assert 'handler="/v1/assets/{asset_id}",method="GET",status="404"' in body
    assert "cache_misses_total" in body
    assert "pipeline_runs_started_total 1.0" in body
    assert 'pipeline_runs_finished_total{status="failed"} 1.0' in body
    assert 'asset_status_changes_total{status="ingesting"} 1.0' in body


def test_dev_token_is_refused_outside_development(client):
    staging = get_settings().model_copy(update={"environment": "Staging"})
    client.app.dependency_overrides[get_settings] = lambda: staging
    try:
        resp = client.post("/v1/admin/dev-token", json={"user_id": "editor-7"})
    finally:
        client.app.dependency_overrides.clear()

    assert resp.status_code == 403
    assert resp.json()["detail"] == "dev_token_disabled"
