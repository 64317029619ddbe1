"""Tests for the health endpoint with stubbed backends."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from sigp_storage.api.routes import system
from sigp_storage.db import get_session
from sigp_storage.errors import StoreUnavailable


@pytest.fixture
def object_store(monkeypatch) -> MagicMock:
    store = MagicMock()
    store.ping = AsyncMock(return_value=True)
    monkeypatch.setattr(system, "get_object_store", lambda: store)
    return store


@pytest.fixture
def client(monkeypatch, object_store) -> TestClient:
    redis = MagicMock()
    redis.ping = AsyncMock(return_value=True)
    redis.aclose = AsyncMock()
    monkeypatch.setattr(system, "get_async_redis", lambda: redis)

    async def session_override():
        session = MagicMock()
        session.execute = AsyncMock(return_value=MagicMock())
        yield session

    app = FastAPI()
    app.include_router(system.router, prefix="/api")
    app.dependency_overrides[get_session] = session_override
    return TestClient(app)


def test_health_all_ok(client, object_store) -> None:
    resp = client.get("/api/system/health")

    assert resp.status_code == 200
    assert resp.json() == {
        "status": "healthy",
        "checks": {"postgres": "ok", "redis": "ok", "minio": "ok"},
    }
    object_store.ping.assert_awaited_once()


def test_health_degraded_when_bucket_missing(client, object_store) -> None:
    object_store.ping.return_value = False

    body = client.get("/api/system/health").json()

    assert body["status"] == "degraded"
    assert body["checks"]["minio"] == "error: bucket missing"


def test_health_degraded_when_store_unreachable(client, object_store) -> None:
    object_store.ping.side_effect = StoreUnavailable("Object store unreachable")

    body = client.get("/api/system/health").json()

    assert body["status"] == "degraded"
    assert body["checks"]["minio"].startswith("error:")
    assert body["checks"]["postgres"] == "ok"
