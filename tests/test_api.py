"""Tests for the HTTP API."""

import time
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

import api
from app import app
from core.opsmanifest.exceptions import ManifestPersistenceError
from core.opsmanifest.settings import AppSettings

SAMPLE_SITES = Path(__file__).parent.parent / "sites.yaml"


@pytest.fixture
def client():
    """Fresh in-memory services over the sample sites file."""
    api.init_services(
        AppSettings(
            sites_file=str(SAMPLE_SITES),
            database_url="sqlite://",
            scheduled_compile_enabled=False,
        )
    )
    with TestClient(app) as test_client:
        yield test_client


class TestHealthAndSites:
    def test_health(self, client):
        response = client.get("/api/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"
        assert response.json()["ha_connected"] is False

    def test_sites(self, client):
        sites = client.get("/api/sites").json()["sites"]
        assert sites[0]["id"] == "store-001"
        assert sites[0]["has_coordinates"] is True


class TestCompileEndpoint:
    def test_compile_date(self, client):
        response = client.post("/api/manifests/store-001/compile", params={"date": "2026-03-12"})

        assert response.status_code == 200
        manifest = response.json()["manifest"]
        assert manifest["date"] == "2026-03-12"
        assert manifest["store_hours"]["open"] == "06:00"
        assert manifest["store_hours"]["rule_name"] == "Inventory Week"
        assert manifest["phase"] == "unoccupied"
        assert {e["equipment_id"] for e in manifest["equipment"]} == {
            "sales-floor-lights",
            "back-office-lights",
            "sign",
            "parking-lot",
        }

    def test_compile_at_instant(self, client):
        # 15:00 UTC is 10:00 in Chicago
        response = client.post(
            "/api/manifests/store-001/compile",
            params={"date": "2026-03-12"},
            json={"at": "2026-03-12T15:00:00Z"},
        )
        manifest = response.json()["manifest"]
        assert manifest["phase"] == "occupied"
        assert response.json()["evaluated_at"] == "10:00"
        assert "evaluated_at" not in manifest

        sales = next(t for t in manifest["thermostats"] if t["device_id"] == "tstat-sales")
        assert sales["directive"] == "In range, no action"

    def test_closed_day(self, client):
        manifest = client.post("/api/manifests/store-001/compile", params={"date": "2026-12-25"}).json()["manifest"]
        assert manifest["store_hours"]["is_closed"] is True
        assert manifest["equipment"] == []

    def test_unknown_site(self, client):
        response = client.post("/api/manifests/store-999/compile")
        assert response.status_code == 404

    def test_timeout(self, client, monkeypatch):
        monkeypatch.setattr(api.compiler, "compile_and_store", lambda *args: time.sleep(0.5))
        monkeypatch.setattr(api.settings, "compile_timeout_seconds", 0.05)
        response = client.post("/api/manifests/store-001/compile")
        assert response.status_code == 504

    def test_persistence_failure(self, client, monkeypatch):
        def fail(*args):
            raise ManifestPersistenceError("database is locked")

        monkeypatch.setattr(api.compiler, "compile_and_store", fail)
        response = client.post("/api/manifests/store-001/compile")
        assert response.status_code == 500
        assert "locked" in response.json()["detail"]


class TestStoredManifests:
    def test_get_after_compile(self, client):
        client.post("/api/manifests/store-001/compile", params={"date": "2026-03-12"})
        client.post("/api/manifests/store-001/compile", params={"date": "2026-03-12"})

        response = client.get("/api/manifests/store-001", params={"date": "2026-03-12"})

        assert response.status_code == 200
        body = response.json()
        assert body["manifest"]["store_hours"]["close"] == "23:00"
        assert "manifest_json" not in body
        assert api.manifest_store.count("store-001") == 1

    def test_missing_manifest(self, client):
        response = client.get("/api/manifests/store-001", params={"date": "2026-01-01"})
        assert response.status_code == 404

    def test_unknown_site(self, client):
        assert client.get("/api/manifests/store-999").status_code == 404

    def test_directive(self, client):
        client.post("/api/manifests/store-001/compile", params={"date": "2026-03-12"})
        response = client.get("/api/sites/store-001/thermostats/tstat-sales/directive")
        assert response.status_code == 200
        assert response.json()["directive"] == "In range, no action"

    def test_directive_missing(self, client):
        assert client.get("/api/sites/store-001/thermostats/tstat-none/directive").status_code == 404
