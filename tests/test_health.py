"""
tests/test_health.py -- Integration tests for GET /health and GET /.

Covers:
  - 200 response with status, version, and components fields
  - components.database reports 'ok', or 'error' with status 'degraded'
  - No authentication required
  - Unknown paths use the {"message": ...} error shape
"""

from __future__ import annotations

from unittest.mock import MagicMock

from sqlalchemy.exc import OperationalError

from api.main import API_VERSION


def test_health_returns_200_with_components(harness):
    """Health endpoint returns 200 with status, version, and components."""
    resp = harness.client.get("/health")
    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "healthy"
    assert data["version"] == API_VERSION
    assert data["components"] == {"app": "ok", "database": "ok"}


def test_health_reports_degraded_database(harness):
    """An unreachable database degrades the status instead of failing the probe."""
    directory = MagicMock()
    directory.ping.side_effect = OperationalError("SELECT 1", {}, Exception("unable to open database file"))
    harness.client.app.state.user_directory = directory

    resp = harness.client.get("/health")

    assert resp.status_code == 200
    assert resp.json()["status"] == "degraded"
    assert resp.json()["components"]["database"] == "error"


def test_health_no_auth_required(harness):
    """Health endpoint is accessible without any authentication headers."""
    resp = harness.client.get("/health", headers={})
    assert resp.status_code == 200


def test_root_liveness_text(harness):
    resp = harness.client.get("/")
    assert resp.status_code == 200
    assert resp.text == "API is working."


def test_unknown_path_uses_message_shape(harness):
    resp = harness.client.get("/no-such-route")
    assert resp.status_code == 404
    assert resp.json() == {"message": "Not Found"}
