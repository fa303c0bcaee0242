"""Tests for /health, /metrics and the request logging middleware."""

from __future__ import annotations

import threading
from unittest.mock import AsyncMock, MagicMock, patch

from aoiviewer.api.dependencies import get_db
from aoiviewer.api.main import app, lifespan


def _healthy_session():
    return AsyncMock()


def _broken_session():
    session = AsyncMock()
    session.execute.side_effect = ConnectionRefusedError("db down")
    return session


async def test_health_ok(client):
    app.dependency_overrides[get_db] = _healthy_session
    app.state.feature_cache.put("k", {"features": []})
    resp = await client.get("/health")

    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "ok"
    assert body["database"] == "connected"
    assert body["cache"]["size"] == 1
    assert body["cache"]["max_size"] == 1000
    assert body["cache"]["ttl_seconds"] == 300


async def test_health_degraded_when_db_unreachable(client):
    app.dependency_overrides[get_db] = _broken_session
    resp = await client.get("/health")

    assert resp.status_code == 503
    body = resp.json()
    assert body["status"] == "degraded"
    assert body["database"] == "unreachable"
    assert body["detail"] == "Database connection failed"
    assert "db down" not in resp.text


async def test_lifespan_runs_migrations_off_the_event_loop():
    threads = []
    engine = MagicMock()
    engine.dispose = AsyncMock()
    with patch("aoiviewer.api.main._run_migrations", side_effect=lambda: threads.append(threading.get_ident())), \
         patch("aoiviewer.api.main.setup_logging"), \
         patch("aoiviewer.api.main.engine", engine), \
         patch("aoiviewer.api.main.settings.run_migrations", True), \
         patch("aoiviewer.api.main.settings.seed_samples", False):
        async with lifespan(app):
            pass

    assert len(threads) == 1
    assert threads[0] != threading.get_ident()
    engine.dispose.assert_awaited_once()


async def test_metrics_endpoint_structure(client):
    resp = await client.get("/metrics")
    assert resp.status_code == 200
    data = resp.json()
    assert "total_requests" in data
    assert data["cache"]["max_size"] == 1000
    assert "evictions" in data["cache"]
    assert "wms" in data
    assert "aoi" in data
    assert "p50" in data["latency_ms"]


async def test_request_id_generated(client):
    resp = await client.get("/metrics")
    rid = resp.headers.get("x-request-id")
    assert rid is not None
    assert len(rid) == 32


async def test_request_id_echoed(client):
    resp = await client.get("/metrics", headers={"X-Request-ID": "trace-123"})
    assert resp.headers["x-request-id"] == "trace-123"


async def test_response_time_header_on_404(client):
    resp = await client.get("/nonexistent")
    assert resp.status_code == 404
    float(resp.headers["X-Response-Time-Ms"])


async def test_requests_are_counted(client):
    await client.get("/metrics")
    resp = await client.get("/metrics")
    assert resp.json()["total_requests"] >= 1
