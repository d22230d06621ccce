"""Tests for backup API endpoints."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from urms.api.app import create_app
from urms.backup import BackupOrchestrator, BackupScheduler
from urms.backup.errors import BusyError
from urms.backup.models import BackupResult, CleanupResult, RestoreResult

ADMIN = {"X-User-Role": "admin"}
SYSTEM_ADMIN = {"X-User-Role": "system-admin"}


@pytest.fixture
def orchestrator(make_config, memory_store):
    return BackupOrchestrator.from_config(make_config(), store=memory_store)


@pytest.fixture
def mock_app(orchestrator):
    """Create test FastAPI app with a real orchestrator over the memory store."""
    app = create_app()
    app.state.orchestrator = orchestrator
    app.state.scheduler = BackupScheduler(orchestrator)
    return app


@pytest.fixture
def client(mock_app):
    """Create test client."""
    return TestClient(mock_app)


@pytest.fixture
def stub_orchestrator(mock_app):
    """Swap in a mocked orchestrator for failure paths."""
    stub = MagicMock()
    mock_app.state.orchestrator = stub
    return stub


def create_backup(client):
    response = client.post("/api/backup/create", headers=ADMIN)
    assert response.status_code == 200
    return response.json()["backupId"]


class TestAuthorization:

    def test_missing_role_is_unauthorized(self, client):
        response = client.get("/api/backup/status")

        assert response.status_code == 401

    def test_unknown_role_is_forbidden(self, client):
        response = client.get("/api/backup/list", headers={"X-User-Role": "student"})

        assert response.status_code == 403

    def test_admin_cannot_restore(self, client):
        backup_id = create_backup(client)

        response = client.post(f"/api/backup/restore/{backup_id}", headers=ADMIN)

        assert response.status_code == 403

    def test_admin_cannot_change_schedule(self, client):
        response = client.put("/api/backup/schedule", json={"schedule": "weekly"}, headers=ADMIN)

        assert response.status_code == 403


def test_status_endpoint(client):
    response = client.get("/api/backup/status", headers=ADMIN)

    assert response.status_code == 200
    data = response.json()
    assert data["success"] is True
    assert data["status"]["isRunning"] is False
    assert data["status"]["archiveCount"] == 0
    assert data["status"]["schedule"]["frequency"] == "daily"
    assert data["status"]["schedule"]["runTime"] == "02:00"


def test_create_and_list(client):
    response = client.post("/api/backup/create", headers=SYSTEM_ADMIN)

    assert response.status_code == 200
    data = response.json()
    assert data["success"] is True
    assert data["message"] == "Backup completed successfully"
    backup_id = data["backupId"]

    listing = client.get("/api/backup/list", headers=ADMIN).json()
    assert listing["success"] is True
    assert len(listing["backups"]) == 1
    backup = listing["backups"][0]
    assert backup["backupId"] == backup_id
    assert backup["status"] == "complete"
    assert backup["sizeBytes"] > 0
    assert backup["recordCounts"]["students"] == 2
    assert backup["checksum"].startswith("sha256:")


def test_create_busy_is_conflict(client, stub_orchestrator):
    error = BusyError("backup", "restore")
    stub_orchestrator.perform_full_backup = AsyncMock(return_value=BackupResult(
        success=False, error=str(error), error_kind=error.kind
    ))

    response = client.post("/api/backup/create", headers=ADMIN)

    assert response.status_code == 409
    detail = response.json()["detail"]
    assert detail["success"] is False
    assert detail["message"] == "Backup failed"
    assert detail["errorKind"] == "busy"


def test_create_failure_is_server_error(client, stub_orchestrator):
    stub_orchestrator.perform_full_backup = AsyncMock(return_value=BackupResult(
        success=False, error="Backup failed on collection staff: timeout", error_kind="backup_failure"
    ))

    response = client.post("/api/backup/create", headers=ADMIN)

    assert response.status_code == 500
    assert "staff" in response.json()["detail"]["error"]


def test_restore_endpoint(client, memory_store):
    backup_id = create_backup(client)

    response = client.post(f"/api/backup/restore/{backup_id}", headers=SYSTEM_ADMIN)

    assert response.status_code == 200
    assert response.json() == {
        "success": True,
        "message": "Restore completed successfully",
        "backupId": backup_id,
    }


def test_restore_unknown_backup_is_not_found(client):
    response = client.post("/api/backup/restore/backup_missing", headers=SYSTEM_ADMIN)

    assert response.status_code == 404
    assert response.json()["detail"]["errorKind"] == "not_found"


def test_restore_busy_is_conflict(client, stub_orchestrator):
    stub_orchestrator.restore_from_backup = AsyncMock(return_value=RestoreResult(
        success=False, backup_id="b", error="busy", error_kind="busy"
    ))

    response = client.post("/api/backup/restore/b", headers=SYSTEM_ADMIN)

    assert response.status_code == 409


def test_restore_corrupt_is_server_error(client, stub_orchestrator):
    stub_orchestrator.restore_from_backup = AsyncMock(return_value=RestoreResult(
        success=False, backup_id="b", error="checksum mismatch", error_kind="corrupt"
    ))

    response = client.post("/api/backup/restore/b", headers=SYSTEM_ADMIN)

    assert response.status_code == 500
    assert response.json()["detail"]["message"] == "Restore failed"


class TestSchedule:

    def test_update_schedule(self, client):
        response = client.put(
            "/api/backup/schedule",
            json={"schedule": "weekly", "runTime": "03:15"},
            headers=SYSTEM_ADMIN,
        )

        assert response.status_code == 200
        data = response.json()
        assert data["message"] == "Backup schedule updated successfully"
        assert data["schedule"]["frequency"] == "weekly"
        assert data["schedule"]["runTime"] == "03:15"
        assert data["schedule"]["nextRun"] is not None

        status = client.get("/api/backup/status", headers=ADMIN).json()["status"]
        assert status["schedule"]["frequency"] == "weekly"

    def test_missing_schedule(self, client):
        response = client.put("/api/backup/schedule", json={}, headers=SYSTEM_ADMIN)

        assert response.status_code == 400
        assert response.json()["detail"] == "Backup schedule is required"

    def test_invalid_frequency(self, client):
        response = client.put("/api/backup/schedule", json={"schedule": "hourly"}, headers=SYSTEM_ADMIN)

        assert response.status_code == 400
        assert response.json()["detail"]["errorKind"] == "invalid_schedule"

    def test_invalid_run_time(self, client):
        response = client.put(
            "/api/backup/schedule",
            json={"schedule": "daily", "runTime": "noon"},
            headers=SYSTEM_ADMIN,
        )

        assert response.status_code == 400


def test_cleanup_endpoint(client):
    create_backup(client)

    response = client.delete("/api/backup/cleanup", headers=ADMIN)

    assert response.status_code == 200
    assert response.json()["success"] is True
    assert response.json()["removed"] == []


def test_cleanup_partial_failure(client, stub_orchestrator):
    stub_orchestrator.cleanup_old_backups = AsyncMock(return_value=CleanupResult(
        success=False,
        removed=["backup_a"],
        failures={"backup_b": "permission denied"},
        error="Failed to delete 1 backup(s)",
        error_kind="cleanup_partial_failure",
    ))

    response = client.delete("/api/backup/cleanup", headers=ADMIN)

    assert response.status_code == 500
    detail = response.json()["detail"]
    assert detail["removed"] == ["backup_a"]
    assert detail["failures"] == {"backup_b": "permission denied"}


def test_verify_endpoint(client):
    backup_id = create_backup(client)

    response = client.post("/api/backup/verify", headers=ADMIN)

    assert response.status_code == 200
    assert response.json()["results"] == [{"backupId": backup_id, "valid": True, "error": None}]


def test_download_backup(client, orchestrator):
    backup_id = create_backup(client)

    response = client.get(f"/api/backup/{backup_id}/download", headers=SYSTEM_ADMIN)

    assert response.status_code == 200
    assert response.content == orchestrator.get_backup_path(backup_id).read_bytes()
    assert f"{backup_id}.urbak" in response.headers["content-disposition"]


def test_download_unknown_backup(client):
    response = client.get("/api/backup/backup_missing/download", headers=SYSTEM_ADMIN)

    assert response.status_code == 404
    assert response.json()["detail"] == "Backup not found: backup_missing"


def test_delete_backup(client):
    backup_id = create_backup(client)

    response = client.delete(f"/api/backup/{backup_id}", headers=SYSTEM_ADMIN)

    assert response.status_code == 200
    assert response.json()["message"] == f"Backup deleted: {backup_id}"
    assert client.get("/api/backup/list", headers=ADMIN).json()["backups"] == []

    again = client.delete(f"/api/backup/{backup_id}", headers=SYSTEM_ADMIN)
    assert again.status_code == 404


def test_health_endpoint(client):
    response = client.get("/api/health")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert data["database"] is True
    assert data["scheduler"]["running"] is False
    assert data["scheduler"]["frequency"] == "daily"


def test_liveness_probe(client):
    assert client.get("/api/health/live").json() == {"status": "alive"}
