"""
API Integration Tests — Endpoint Verification

Tests every public API endpoint using FastAPI's TestClient.
The verifier is pinned to "null" (see conftest), so scans run in
strict-fallback mode with no model download.

These tests catch:
  - Schema mismatches (response model vs actual data)
  - Route registration issues
  - Control-protocol regressions (scan / pause / results)
"""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient


PAGE = (
    "<div><p>Hurry! Only 2 left in stock.</p>"
    "<p>Free shipping on all orders.</p>"
    "<footer>All rights reserved. Act now!</footer></div>"
)


# --- Fixtures ---

@pytest.fixture(scope="module")
def client():
    """Create a test client for the DarkScan API."""
    from api.main import app
    with TestClient(app) as c:
        yield c


def _load_and_scan(client, html=PAGE) -> dict:
    assert client.post("/document", json={"html": html}).status_code == 200
    assert client.post("/scan?wait=true").status_code == 200
    return client.get("/results").json()


# ============================================================
# HEALTH & META
# ============================================================

class TestHealth:

    def test_health_returns_200(self, client):
        r = client.get("/health")
        assert r.status_code == 200

    def test_health_fields(self, client):
        data = client.get("/health").json()
        assert data["status"] == "operational"
        assert data["verifier"]["name"] == "null"
        assert data["categories"] == 10
        assert data["is_paused"] is False

    def test_version_header(self, client):
        from darkscan import __version__
        r = client.get("/health")
        assert r.headers["X-DarkScan-Version"] == __version__

    def test_categories(self, client):
        data = client.get("/categories").json()
        names = [c["name"] for c in data["categories"]]
        assert names[0] == "Urgency"
        assert "Forced Action" in names
        assert all(c["broad_fragments"] > 0 for c in data["categories"])
        assert data["source"].endswith("categories.txt")


# ============================================================
# DOCUMENT & SCAN
# ============================================================

class TestScan:

    def test_load_document(self, client):
        r = client.post("/document", json={"html": PAGE})
        assert r.status_code == 200
        assert r.json()["text_nodes"] == 3

    def test_empty_document_rejected(self, client):
        r = client.post("/document", json={"html": ""})
        assert r.status_code == 422

    def test_scan_acknowledges(self, client):
        client.post("/document", json={"html": PAGE})
        r = client.post("/scan")
        assert r.status_code == 200
        assert r.json() == {"isScanning": True}

    def test_scan_results(self, client):
        data = _load_and_scan(client)
        assert data["hasScanned"] is True
        assert data["isScanning"] is False
        assert data["mode"] == "Fallback Regex"
        assert data["count"] == 1
        result = data["results"][0]
        assert result["category"] == "Urgency"
        assert result["tier"] == "StrictFallback"
        assert result["text"] == "Hurry! Only 2 left in stock."
        assert result["score"] is None

    def test_append_then_rescan(self, client):
        _load_and_scan(client)
        r = client.post("/document/append", json={"html": "<p>Almost sold out!</p><p>ok then</p>"})
        assert r.json()["appended"] == 2
        client.post("/scan?wait=true")
        data = client.get("/results").json()
        assert [x["category"] for x in data["results"]] == ["Urgency", "Scarcity"]

    def test_events_recorded(self, client):
        _load_and_scan(client)
        data = client.get("/events", params={"action": "resultsReady"}).json()
        assert data["events"]
        assert data["events"][-1]["action"] == "resultsReady"
        assert data["total"] >= len(data["events"])

    def test_events_rejects_unknown_action(self, client):
        r = client.get("/events", params={"action": "explode"})
        assert r.status_code == 422


# ============================================================
# PAUSE & CONTROL
# ============================================================

class TestControl:

    def test_pause_rejects_scan(self, client):
        client.post("/document", json={"html": PAGE})
        assert client.post("/pause").json() == {"isPaused": True}
        try:
            data = client.post("/scan").json()
            assert data["isScanning"] is False
            assert data["isPaused"] is True
            assert client.get("/health").json()["is_paused"] is True
        finally:
            assert client.post("/pause").json() == {"isPaused": False}

    def test_pause_explicit_state(self, client):
        try:
            assert client.post("/pause", params={"paused": "true"}).json() == {"isPaused": True}
            assert client.post("/pause", params={"paused": "true"}).json() == {"isPaused": True}
            assert client.get("/health").json()["is_paused"] is True
        finally:
            assert client.post("/pause", params={"paused": "false"}).json() == {"isPaused": False}
        assert client.post("/pause", params={"paused": "false"}).json() == {"isPaused": False}

    def test_control_toggle_pause_explicit(self, client):
        try:
            data = client.post("/control", json={"action": "togglePause", "isPaused": True}).json()
            assert data == {"isPaused": True}
            data = client.post("/control", json={"action": "togglePause", "isPaused": True}).json()
            assert data == {"isPaused": True}
        finally:
            client.post("/pause", params={"paused": "false"})

    def test_control_get_results(self, client):
        _load_and_scan(client)
        data = client.post("/control", json={"action": "getResults"}).json()
        assert data["count"] == 1

    def test_control_ping(self, client):
        assert client.post("/control", json={"action": "ping"}).json() == {"pong": False}

    def test_control_unknown_action(self, client):
        data = client.post("/control", json={"action": "nope"}).json()
        assert data == {"error": "Unknown action: nope"}

    def test_control_invalid_json(self, client):
        r = client.post("/control", content=b"not json", headers={"Content-Type": "application/json"})
        assert r.status_code == 400
