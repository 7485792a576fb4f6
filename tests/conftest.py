import asyncio

import jwt
import pytest
from fastapi.testclient import TestClient

from mamflow.core.config import get_settings
from mamflow.core.db import Base, create_engine
from mamflow.main import create_app

TEST_SECRET = "test-secret"
TEST_ISSUER = "mamflow-test"
TEST_AUDIENCE = "mamflow"


@pytest.fixture(autouse=True)
def configure_environment(monkeypatch, tmp_path):
    db_path = tmp_path / "mamflow_test.db"

    monkeypatch.setenv("MAMFLOW_ENV", "test")
    monkeypatch.setenv("MAMFLOW_LOG_LEVEL", "debug")
    monkeypatch.setenv("MAMFLOW_DB_URL", f"sqlite+aiosqlite:///{db_path}")
    monkeypatch.setenv("MAMFLOW_WORK_ROOT", str(tmp_path / "work"))
    monkeypatch.setenv("MAMFLOW_DERIVED_ROOT", str(tmp_path / "derived"))
    monkeypatch.setenv("MAMFLOW_STORAGE_BACKEND", "local")
    monkeypatch.setenv("MAMFLOW_BACKEND", "inprocess")
    monkeypatch.setenv("MAMFLOW_CACHE_ENABLED", "false")
    monkeypatch.setenv("MAMFLOW_TAMS_URL", "http://127.0.0.1:9")
    monkeypatch.setenv("MAMFLOW_REGISTRY_TIMEOUT_S", "2")
    monkeypatch.setenv("MAMFLOW_EXTERNAL_MAX_RETRIES", "0")
    monkeypatch.setenv("MAMFLOW_RETRY_INITIAL_DELAY_S", "0")
    monkeypatch.setenv("MAMFLOW_PIPELINE_DRAIN_TIMEOUT_S", "5")
    monkeypatch.setenv("MAMFLOW_JWT_SECRET", TEST_SECRET)
    monkeypatch.setenv("MAMFLOW_JWT_ISSUER", TEST_ISSUER)
    monkeypatch.setenv("MAMFLOW_JWT_AUDIENCE", TEST_AUDIENCE)

    get_settings.cache_clear()
    settings = get_settings()
    engine = create_engine(settings)

    async def _setup() -> None:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        await engine.dispose()

    asyncio.run(_setup())

    yield settings

    async def _teardown() -> None:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)
        await engine.dispose()

    asyncio.run(_teardown())
    get_settings.cache_clear()


@pytest.fixture()
def client(configure_environment):
    app = create_app()
    with TestClient(app) as client:
        yield client


def build_token(*, scopes: list[str] | None = None, user_id: str | None = "user-1") -> str:
    payload: dict[str, object] = {"iss": TEST_ISSUER, "aud": TEST_AUDIENCE}
    if scopes:
        payload["scopes"] = scopes
    if user_id:
        payload["sub"] = user_id
    return jwt.encode(payload, TEST_SECRET, algorithm="HS256")


@pytest.fixture()
def user_headers() -> dict[str, str]:
    return {"Authorization": f"Bearer {build_token()}"}


@pytest.fixture()
def admin_headers() -> dict[str, str]:
    return {"Authorization": f"Bearer {build_token(scopes=['admin'])}"}


@pytest.fixture()
def source_file(tmp_path):
    path = tmp_path / "incoming" / "news.mp4"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(b"\x00\x00\x00\x18ftypmp42" + b"\x00" * 64)
    return path
