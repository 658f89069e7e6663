"""Health, metrics, request id and configuration plumbing."""

import logging

import pytest
from fastapi import FastAPI, Request
from fastapi.testclient import TestClient

from movin_earn.core.config import Settings, EngineConfig, validate_config
from movin_earn.core.middleware.request_id import RequestIdMiddleware


def test_healthz(client):
    resp = client.get("/healthz")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}
    assert resp.headers.get("x-request-id")


def test_readyz_without_database(client, monkeypatch):
    from movin_earn.core.config import settings

    monkeypatch.setattr(settings, "DATABASE_URL", None)
    body = client.get("/readyz").json()
    assert body["status"] == "ok"
    assert body["persistent"] is False


def test_metrics_export_counts_operations(client):
    client.post("/v1/earn/activity", headers={"X-User-Id": "alice"}, json={"steps": 1000})
    text = client.get("/metrics").text

    assert 'earn_operations_total{operation="record_activity"} 1.0' in text
    assert 'http_requests_total{method="POST",path="/v1/earn/activity",status="200"} 1.0' in text


def test_request_id_echoed_and_logged(client, caplog):
    with caplog.at_level(logging.INFO, logger="movin_earn"):
        resp = client.get("/healthz", headers={"X-Request-Id": "rid-42"})
    assert resp.headers.get("x-request-id") == "rid-42"
    assert any(getattr(r, "request_id", None) == "rid-42" for r in caplog.records)


def test_request_id_generated_when_missing():
    app = FastAPI()
    app.add_middleware(RequestIdMiddleware)

    @app.get("/")
    async def root(request: Request):
        return {"request_id": getattr(request.state, "request_id", None)}

    resp = TestClient(app).get("/")
    assert resp.headers.get("x-request-id") == resp.json()["request_id"]


def test_engine_config_from_settings():
    cfg = EngineConfig.from_settings(Settings(ADMIN_ACCOUNTS="ops, owner ,", MOVIN_RATE_DECAY_BPS=50))
    assert cfg.admin_accounts == frozenset({"ops", "owner"})
    assert cfg.rate_decay_bps == 50
    assert cfg.premium_monthly_duration == 30 * 24 * 3600


def test_validate_config_strict_mode():
    bad = Settings(MOVIN_RATE_DECAY_BPS=10_000)
    with pytest.raises(RuntimeError):
        validate_config(strict=True, settings_obj=bad)
    assert validate_config(strict=False, settings_obj=bad)
