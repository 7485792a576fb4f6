from __future__ import annotations

import os
from pathlib import Path
from unittest import mock

import pytest

from mamflow.core.config import get_settings
from mamflow.core.retry import RetryPolicy


@pytest.fixture()
def clean_environ(monkeypatch):
    with mock.patch.dict(os.environ):
        for key in list(os.environ):
            if key.startswith("MAMFLOW_"):
                del os.environ[key]
        get_settings.cache_clear()
        yield
        get_settings.cache_clear()


def test_defaults(clean_environ, tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    settings = get_settings()

    assert settings.environment == "development"
    assert settings.normalized_pipeline_backend == "inprocess"
    assert settings.segment_duration_s == 10
    assert [rendition.name for rendition in settings.proxy_renditions] == ["low", "high"]
    assert settings.allowed_source_uri_schemes == ("", "file")
    assert settings.secrets.jwt_secret == "change-me"


def test_env_file_and_aliases_are_applied(clean_environ, tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    (tmp_path / ".env").write_text(
        "\n".join(
            [
                "MAMFLOW_ENV=staging",
                "MAMFLOW_TAMS_URL=http://registry.internal:8080",
                "MAMFLOW_BACKEND=inline",
                "MAMFLOW_SEGMENT_DURATION_S=60",
                "MAMFLOW_REGISTRY_TOKEN=registry-secret",
            ]
        )
    )

    settings = get_settings()

    assert settings.environment == "staging"
    assert settings.registry_base_url == "http://registry.internal:8080"
    assert settings.normalized_pipeline_backend == "inprocess"
    assert settings.segment_duration_s == 60
    assert settings.secrets.registry_token == "registry-secret"


def test_production_refuses_default_jwt_secret(clean_environ, tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    os.environ["MAMFLOW_ENVIRONMENT"] = "production"

    with pytest.raises(ValueError, match="JWT secret"):
        get_settings()


def test_source_scheme_override(clean_environ, tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    os.environ["MAMFLOW_ALLOWED_SOURCE_URI_SCHEMES"] = "file"

    assert get_settings().allowed_source_uri_schemes == ("file",)


def test_retry_policy_from_settings(clean_environ, tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    os.environ["MAMFLOW_EXTERNAL_MAX_RETRIES"] = "5"
    os.environ["MAMFLOW_RETRY_INITIAL_DELAY_S"] = "0.5"
    os.environ["MAMFLOW_RETRY_BACKOFF_BASE"] = "3"

    policy = RetryPolicy.from_settings(get_settings())

    assert policy == RetryPolicy(max_retries=5, initial_delay_s=0.5, backoff_base=3.0)
    assert Path(get_settings().work_root) == Path("work")
