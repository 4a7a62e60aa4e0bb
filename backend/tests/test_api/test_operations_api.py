from __future__ import annotations

from fastapi.testclient import TestClient


def test_operation_log_listing_and_stats(client: TestClient) -> None:
    created = client.post("/api/v1/backups/", json={"backup_type": "Full"}).json()
    client.post("/api/v1/restores/", json={"filename": "missing.sql", "confirm_text": "RESTORE"})

    entries = client.get("/api/v1/operations/").json()
    assert [e["operation"] for e in entries] == ["backup"]
    assert entries[0]["backup_id"] == created["operation_id"]
    assert entries[0]["started_by"] == "admin-1"

    only_failed = client.get("/api/v1/operations/", params={"status": "Failed"}).json()
    assert only_failed == []

    stats = client.get("/api/v1/operations/stats").json()
    assert stats["completed"] == 1
    assert stats["last_completed_backup"]["backup_path"] == created["artifact"]


def test_get_unknown_operation(client: TestClient) -> None:
    assert client.get("/api/v1/operations/999").status_code == 404


def test_restore_permission_can_read_log(client: TestClient) -> None:
    response = client.get(
        "/api/v1/operations/",
        headers={"X-Actor-Id": "op", "X-Actor-Permissions": "backup.restore"},
    )
    assert response.status_code == 200


def test_health_endpoints(client: TestClient) -> None:
    assert client.get("/health").json() == {"status": "ok"}
    assert client.get("/ready").json() == {"status": "ready"}
