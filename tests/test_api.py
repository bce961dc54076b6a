"""Tests for the HTTP API."""

import pytest
from unittest.mock import AsyncMock, MagicMock
from fastapi.testclient import TestClient

from gatesync.api.dependencies import (
    get_connectivity,
    get_record_store,
    get_scheduler,
    get_sync_service,
)
from gatesync.database.database import get_db
from gatesync.main import app
from gatesync.services.connectivity import ConnectivityMonitor
from gatesync.services.record_store import RecordKind
from gatesync.services.scheduler import JobScheduler
from gatesync.services.sync_service import SyncService


@pytest.fixture
def gateway():
    gateway = AsyncMock()
    gateway.__aenter__ = AsyncMock(return_value=gateway)
    gateway.__aexit__ = AsyncMock(return_value=None)
    gateway.create_diagnostic = AsyncMock(return_value={"id": "x", "message": "ok"})
    gateway.create_access_record = AsyncMock(return_value={"id": "x", "message": "ok"})
    return gateway


@pytest.fixture
def connectivity():
    return ConnectivityMonitor(online=True)


@pytest.fixture
def scheduler():
    scheduler = JobScheduler()
    yield scheduler
    scheduler.remove_all()


@pytest.fixture
def client(record_store, session_factory, connectivity, scheduler, gateway):
    """Test client with every dependency bound to in-memory test doubles."""
    service = SyncService(
        record_store=record_store,
        connectivity=connectivity,
        gateway_factory=MagicMock(return_value=gateway),
        session_factory=session_factory,
    )

    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_record_store] = lambda: record_store
    app.dependency_overrides[get_connectivity] = lambda: connectivity
    app.dependency_overrides[get_scheduler] = lambda: scheduler
    app.dependency_overrides[get_sync_service] = lambda: service
    yield TestClient(app)
    app.dependency_overrides.clear()


class TestAccessRecordsAPI:
    """Tests for /api/access-records."""

    def test_create_and_get(self, client):
        response = client.post("/api/access-records", json={
            "id": "acc-1",
            "status": "Entering",
            "vehicle_plate": "1AB-2345",
            "door_id": "door-1",
            "attached_files": [{"category": "plate", "content": "aGVsbG8="}],
        })

        assert response.status_code == 201
        body = response.json()
        assert body["synced"] is False
        assert body["attached_files"] == [{"category": "plate", "content": "aGVsbG8="}]

        response = client.get("/api/access-records/acc-1")
        assert response.status_code == 200
        assert response.json()["vehicle_plate"] == "1AB-2345"

    def test_create_generates_id(self, client):
        response = client.post("/api/access-records", json={"door_id": "door-1"})

        assert response.status_code == 201
        assert response.json()["id"].startswith("acc-")
        assert response.json()["status"] == "Pending"

    def test_create_duplicate_conflicts(self, client):
        client.post("/api/access-records", json={"id": "acc-1"})

        response = client.post("/api/access-records", json={"id": "acc-1"})

        assert response.status_code == 409

    def test_create_invalid_status_rejected(self, client):
        response = client.post("/api/access-records", json={"status": "IN"})

        assert response.status_code == 422

    def test_list_filters(self, client, record_store):
        client.post("/api/access-records", json={"id": "acc-1", "status": "Entering"})
        client.post("/api/access-records", json={"id": "acc-2", "status": "Exiting"})
        record_store.mark_as_synced(RecordKind.ACCESS, "acc-1")

        by_status = client.get("/api/access-records", params={"status": "Exiting"}).json()
        unsynced = client.get("/api/access-records", params={"unsynced": True}).json()

        assert [r["id"] for r in by_status] == ["acc-2"]
        assert [r["id"] for r in unsynced] == ["acc-2"]

    def test_update_status(self, client):
        client.post("/api/access-records", json={"id": "acc-1", "status": "Entering"})

        response = client.patch("/api/access-records/acc-1", json={"status": "Exiting"})

        assert response.status_code == 200
        assert response.json()["status"] == "Exiting"

    def test_update_without_changes(self, client):
        client.post("/api/access-records", json={"id": "acc-1"})

        assert client.patch("/api/access-records/acc-1", json={}).status_code == 400

    def test_update_missing(self, client):
        response = client.patch("/api/access-records/nope", json={"status": "Exiting"})

        assert response.status_code == 404

    def test_delete(self, client):
        client.post("/api/access-records", json={"id": "acc-1"})

        assert client.delete("/api/access-records/acc-1").status_code == 204
        assert client.delete("/api/access-records/acc-1").status_code == 404
        assert client.get("/api/access-records/acc-1").status_code == 404


class TestDiagnosticsAPI:
    """Tests for /api/diagnostics."""

    def test_create_defaults(self, client):
        response = client.post("/api/diagnostics", json={
            "message": "Camera disconnected",
            "service_name": "CameraService",
            "door_id": "door-1",
        })

        assert response.status_code == 201
        body = response.json()
        assert body["id"].startswith("log-")
        assert body["timestamp"] is not None
        assert body["synced"] is False

    def test_list_by_door(self, client):
        client.post("/api/diagnostics", json={"id": "log-1", "message": "a", "service_name": "s", "door_id": "d1"})
        client.post("/api/diagnostics", json={"id": "log-2", "message": "b", "service_name": "s", "door_id": "d2"})

        response = client.get("/api/diagnostics", params={"door_id": "d2"})

        assert [r["id"] for r in response.json()] == ["log-2"]

    def test_get_missing(self, client):
        assert client.get("/api/diagnostics/nope").status_code == 404


class TestSyncAPI:
    """Tests for /api/sync."""

    def test_run_sync_relays_diagnostics(self, client, record_store):
        client.post("/api/diagnostics", json={"id": "log-1", "message": "a", "service_name": "s"})

        response = client.post("/api/sync/run")

        assert response.status_code == 200
        body = response.json()
        assert body["kind"] == "diagnostic"
        assert body["synced"] == 1
        assert record_store.get(RecordKind.DIAGNOSTIC, "log-1") is None

        history = client.get("/api/sync/history").json()
        assert history[0]["id"] == body["sync_run_id"]
        assert history[0]["status"] == "success"
        assert client.get(f"/api/sync/history/{body['sync_run_id']}").status_code == 200

    def test_run_access_sync_offline(self, client, connectivity, gateway):
        connectivity.set_online(False)

        response = client.post("/api/sync/run/access")

        assert response.status_code == 200
        assert response.json()["skipped_offline"] is True
        gateway.create_access_record.assert_not_called()

    def test_run_sync_store_failure(self, client, record_store, monkeypatch):
        monkeypatch.setattr(record_store, "list_unsynced", MagicMock(side_effect=RuntimeError("disk I/O error")))

        response = client.post("/api/sync/run")

        assert response.status_code == 500
        assert "disk I/O error" in response.json()["detail"]

    def test_history_missing(self, client):
        assert client.get("/api/sync/history/999").status_code == 404

    def test_status(self, client, scheduler):
        scheduler.add_interval_job("sync-diagnostics", 30_000, AsyncMock(), auto_start=False)
        client.post("/api/access-records", json={"id": "acc-1"})

        body = client.get("/api/sync/status").json()

        assert body["online"] is True
        assert body["unsynced_access_records"] == 1
        assert body["unsynced_diagnostics"] == 0
        assert body["running_jobs"] == 0
        assert body["jobs"][0]["name"] == "sync-diagnostics"

    def test_job_control(self, client, scheduler):
        scheduler.add_daily_job("nightly", 2, 0, AsyncMock(), auto_start=False)

        started = client.post("/api/sync/jobs/nightly/start")
        stopped = client.post("/api/sync/jobs/nightly/stop")

        assert started.status_code == 200
        assert stopped.json()["is_running"] is False
        assert client.post("/api/sync/jobs/unknown/start").status_code == 404

    def test_connectivity_update(self, client, connectivity):
        response = client.post("/api/sync/connectivity", json={"online": False})

        assert response.json() == {"online": False, "status": "disconnected"}
        assert connectivity.is_offline() is True


class TestMainEndpoints:
    """Tests for the root, health and stats endpoints."""

    def test_root(self, client):
        assert client.get("/").json()["message"] == "GateSync API"

    def test_health(self, client):
        body = client.get("/api/health").json()

        assert body["status"] == "healthy"
        assert body["database"] == "connected"
        assert body["network"] == "connected"

    def test_stats(self, client):
        client.post("/api/access-records", json={"id": "acc-1"})
        client.post("/api/diagnostics", json={"id": "log-1", "message": "a", "service_name": "s"})

        body = client.get("/api/stats").json()

        assert body["access_records_count"] == 1
        assert body["unsynced_diagnostics_count"] == 1
        assert body["sync_runs_count"] == 0
        assert body["last_sync_status"] is None
