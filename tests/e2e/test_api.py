from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from app.deps import get_app_state
from app import create_app


@pytest.fixture()
def client(tmp_path, monkeypatch):
    monkeypatch.setenv("TIMELENS_STATE_DIR", str(tmp_path))
    monkeypatch.delenv("REDIS_URL", raising=False)
    get_app_state.cache_clear()
    yield TestClient(create_app())
    get_app_state.cache_clear()


def test_healthz(client):
    assert client.get("/healthz").json() == {"status": "ok"}


def test_convert_abbreviated_time(client):
    response = client.post("/convert", json={"text": "standup at 3pm PST", "origin": "https://example.com/x"})
    assert response.status_code == 200
    body = response.json()
    assert body["found"] is True
    assert body["result"]["parsed"]["source_zone"] == "America/Los_Angeles"
    assert body["result"]["parsed"]["source_zone_explicit"] is True
    assert body["result"]["primary"]["zone"] == "UTC"
    assert len(body["result"]["targets"]) == 3


def test_convert_without_time(client):
    body = client.post("/convert", json={"text": "hello there"}).json()
    assert body == {"found": False, "result": None, "matched_text": None}


def test_convert_all(client):
    body = client.post("/convert/all", json={"text": "standup 9am; review 4pm"}).json()
    assert len(body["results"]) == 2


def test_settings_patch_is_idempotent(client):
    payload = {"changes": {"primary_target_zone": "Asia/Tokyo"}, "idempotency_key": "k-1"}
    first = client.patch("/settings", json=payload).json()
    assert first["accepted"] is True
    assert first["settings"]["primary_target_zone"] == "Asia/Tokyo"
    second = client.patch(
        "/settings", json={"changes": {"primary_target_zone": "UTC"}, "idempotency_key": "k-1"}
    ).json()
    assert second["accepted"] is False
    assert client.get("/settings").json()["primary_target_zone"] == "Asia/Tokyo"


def test_site_policy_affects_conversion(client):
    body = client.post(
        "/settings/sites", json={"origin": "https://Example.com/page", "source_zone": "Asia/Tokyo"}
    ).json()
    assert body["origin"] == "https://example.com"
    converted = client.post("/convert", json={"text": "meeting at 10am", "origin": "https://example.com/a"}).json()
    assert converted["result"]["parsed"]["source_zone"] == "Asia/Tokyo"
    assert converted["result"]["parsed"]["source_zone_explicit"] is False


def test_site_policy_rejects_unknown_zone(client):
    response = client.post("/settings/sites", json={"origin": "https://example.com", "source_zone": "Mars/Base"})
    assert response.status_code == 422


def test_settings_write_failure_is_503(client, tmp_path):
    blocker = tmp_path / "blocker"
    blocker.write_text("", encoding="utf-8")
    get_app_state().settings_store.persist_path = blocker / "settings.json"
    response = client.patch("/settings", json={"changes": {"enabled": False}})
    assert response.status_code == 503


def test_timezones(client):
    zones = client.get("/timezones").json()
    assert {"zone": "UTC", "label": "UTC"} in zones
    assert zones[0] == {"zone": "local", "label": "Local"}
