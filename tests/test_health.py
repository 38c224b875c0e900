from __future__ import annotations

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

import core.config as config_module
import routers.health as health_module


@pytest.fixture(autouse=True)
def reset_settings_cache(tmp_path, monkeypatch):
    # point paths at tmp so real music/outputs stay untouched
    (tmp_path / "music").mkdir()
    (tmp_path / "music" / "a.json").write_text("{}", encoding="utf-8")
    monkeypatch.setenv("MUSIC_DIR", str(tmp_path / "music"))
    monkeypatch.setenv("OUTPUT_DIR", str(tmp_path / "outputs"))
    monkeypatch.setenv("APP_ENV", "test")

    config_module.get_settings.cache_clear()
    yield
    config_module.get_settings.cache_clear()


@pytest.fixture
def client():
    app = FastAPI()
    app.include_router(health_module.router)
    return TestClient(app)


def test_health_ok(client):
    r = client.get("/api/v1/health")
    assert r.status_code == 200
    body = r.json()

    assert body["ok"] is True
    assert body["env"] == "test"
    assert "paths" in body and "checks" in body
    assert body["checks"]["music_dir_exists"] is True
    assert body["checks"]["output_dir_exists"] is True
    assert body["checks"]["music_files"] == 1


def test_health_missing_music_dir(client, tmp_path, monkeypatch):
    monkeypatch.setenv("MUSIC_DIR", str(tmp_path / "nowhere"))
    config_module.get_settings.cache_clear()

    body = client.get("/api/v1/health").json()
    assert body["ok"] is True
    assert body["checks"]["music_dir_exists"] is False
    assert body["checks"]["music_files"] == 0
