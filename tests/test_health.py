"""Tests for the root and health endpoints."""

from tidegate import __version__
from tidegate.core import catalog


def test_root(client):
    resp = client.get("/")
    assert resp.status_code == 200
    assert resp.json()["version"] == __version__


def test_health(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "healthy"
    assert data["db"] == "ok"
    assert data["permission_count"] == len(catalog.PERMISSIONS)
    assert "uptime_seconds" in data


def test_request_id_is_propagated(client):
    resp = client.get("/health", headers={"X-Request-ID": "req-123"})
    assert resp.headers["X-Request-ID"] == "req-123"
    assert resp.headers["X-Response-Time"].endswith("ms")
