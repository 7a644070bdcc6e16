"""
tests/test_health.py -- Integration tests for GET /api/v1/health.

Covers:
  - 200 response with status and version fields
  - No authentication required
"""

from __future__ import annotations


def test_health_returns_200_with_version(api):
    resp = api.client.get("/api/v1/health")
    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "ok"
    assert "version" in data


def test_health_no_auth_required(api):
    """Health endpoint is accessible without any credential."""
    resp = api.client.get("/api/v1/health", headers={})
    assert resp.status_code == 200
