from __future__ import annotations

from pathlib import Path

import pytest
from sqlalchemy.orm import Session

from billing_backup.core.backup.errors import (
    ConfirmationError,
    MaintenanceInProgressError,
    RestorationPointError,
    UnsupportedArtifactError,
)
from billing_backup.core.backup.artifacts import ArtifactStore
from billing_backup.domain.enums import BackupMode, OperationStatus
from billing_backup.services.backups import BackupService
from billing_backup.services.operation_log import OperationLogService
from billing_backup.services.restoration_points import RestorationPointService
from billing_backup.services.restores import RestoreService


class _ExplodingEngine:
    dialect = None

    def restore(self, store, path):
        raise AssertionError("restore engine must not run")


class _UnstatableStore(ArtifactStore):
    def stat(self, filename):
        raise PermissionError(13, "Permission denied")


class _FailingPoints:
    def create(self):
        raise RestorationPointError("disk full")

    def list(self):
        return []


def _backup(db_session, store_engine, settings, lock, **kwargs) -> str:
    outcome = BackupService(db_session, store_engine, settings=settings, lock=lock).create_backup(**kwargs)
    assert outcome.ok
    return outcome.artifact


def _user_ids(store_engine) -> list[int]:
    with store_engine.connect() as conn:
        return [r[0] for r in conn.exec_driver_sql("SELECT id FROM users ORDER BY id")]


def test_restore_brings_back_backup_state(db_session: Session, store_engine, settings, lock) -> None:
    artifact = _backup(db_session, store_engine, settings, lock)
    with store_engine.begin() as conn:
        conn.exec_driver_sql("INSERT INTO users (id, name) VALUES (3, 'After backup')")
    svc = RestoreService(db_session, store_engine, settings=settings, lock=lock)

    outcome = svc.restore_from_artifact(artifact, "RESTORE", actor_id="admin")

    assert outcome.ok
    assert outcome.message == f"Database restored successfully from backup: {artifact}"
    assert outcome.statements_failed == 0
    assert _user_ids(store_engine) == [1, 2]
    assert not lock.held

    # The restoration point captured the state right before the restore
    point = Path(settings.backup_dir) / outcome.restoration_point
    assert "'After backup'" in point.read_text()
    assert [p.filename for p in svc.list_restoration_points()] == [outcome.restoration_point]

    entry = OperationLogService(db_session).get(outcome.operation_id)
    assert entry.status == OperationStatus.COMPLETED.value
    assert entry.operation == "restore"
    assert entry.backup_type == "Database"
    assert entry.restoration_point == outcome.restoration_point


@pytest.mark.parametrize("confirmation", ["restore", "RESTORE ", "", None])
def test_wrong_confirmation_never_runs_engine(db_session, store_engine, settings, lock, confirmation) -> None:
    artifact = _backup(db_session, store_engine, settings, lock)
    svc = RestoreService(db_session, store_engine, settings=settings, lock=lock, engine=_ExplodingEngine())

    with pytest.raises(ConfirmationError) as excinfo:
        svc.restore_from_artifact(artifact, confirmation)

    assert excinfo.value.public_message == 'Please type "RESTORE" to confirm this dangerous operation'
    assert svc.list_restoration_points() == []
    assert [e.operation for e in OperationLogService(db_session).list()] == ["backup"]


def test_zip_artifact_rejected_for_database_restore(db_session, store_engine, settings, lock) -> None:
    artifact = _backup(db_session, store_engine, settings, lock, include_assets=True)
    svc = RestoreService(db_session, store_engine, settings=settings, lock=lock, engine=_ExplodingEngine())

    with pytest.raises(UnsupportedArtifactError):
        svc.restore_from_artifact(artifact, "RESTORE")


def test_restoration_point_failure_blocks_restore(db_session, store_engine, settings, lock) -> None:
    artifact = _backup(db_session, store_engine, settings, lock)
    svc = RestoreService(
        db_session,
        store_engine,
        settings=settings,
        lock=lock,
        engine=_ExplodingEngine(),
        points=_FailingPoints(),
    )

    outcome = svc.restore_from_artifact(artifact, "RESTORE")

    assert outcome.status == OperationStatus.FAILED
    assert outcome.message == "Failed to create restoration point; restore was not attempted"
    entry = OperationLogService(db_session).get(outcome.operation_id)
    assert entry.status == OperationStatus.FAILED.value
    assert not lock.held


def test_partial_failure_completes_with_warnings(db_session, store_engine, settings, lock) -> None:
    backup_dir = Path(settings.backup_dir)
    backup_dir.mkdir(parents=True, exist_ok=True)
    (backup_dir / "handmade.sql").write_text(
        "DELETE FROM audit_logs;\n"
        "INSERT INTO audit_logs (id, action) VALUES (5, 'x');\n"
        "INSERT INTO nowhere VALUES (1);\n"
    )
    svc = RestoreService(db_session, store_engine, settings=settings, lock=lock)

    outcome = svc.restore_from_artifact("handmade.sql", "RESTORE")

    assert outcome.status == OperationStatus.COMPLETED
    assert outcome.has_warnings
    assert outcome.statements_applied == 2
    assert outcome.statements_failed == 1
    assert outcome.message == "Database restored from handmade.sql with 1 errors out of 3 statements"
    assert outcome.warnings[0].startswith("line 3 (table nowhere): ")
    entry = OperationLogService(db_session).get(outcome.operation_id)
    assert entry.statements_failed == 1
    assert "line 3 (table nowhere)" in entry.error_message


def test_restore_refused_while_lock_held(db_session, store_engine, settings, lock) -> None:
    artifact = _backup(db_session, store_engine, settings, lock)
    svc = RestoreService(db_session, store_engine, settings=settings, lock=lock, engine=_ExplodingEngine())

    with lock.hold("restore:other.sql"):
        with pytest.raises(MaintenanceInProgressError):
            svc.restore_from_artifact(artifact, "RESTORE")


def test_restore_uploads_from_zip(db_session, store_engine, settings, lock) -> None:
    uploads = Path(settings.uploads_dir)
    uploads.mkdir(parents=True)
    (uploads / "a.txt").write_text("original")
    artifact = _backup(db_session, store_engine, settings, lock, include_assets=True)
    (uploads / "a.txt").write_text("changed")
    svc = RestoreService(db_session, store_engine, settings=settings, lock=lock)

    outcome = svc.restore_assets(artifact, actor_id="admin")

    assert outcome.ok
    assert outcome.message == f"Upload files restored successfully from: {artifact}"
    assert (uploads / "a.txt").read_text() == "original"
    entry = OperationLogService(db_session).get(outcome.operation_id)
    assert entry.backup_type == "Uploads"


def test_preview_lists_tables_without_executing(db_session, store_engine, settings, lock) -> None:
    artifact = _backup(db_session, store_engine, settings, lock, mode=BackupMode.FULL)
    svc = RestoreService(db_session, store_engine, settings=settings, lock=lock, engine=_ExplodingEngine())

    preview = svc.preview(artifact)

    assert preview.filename == artifact
    assert set(preview.tables) == {"audit_logs", "invoices", "users"}
    assert preview.statements > 0


def test_restoration_point_os_error_fails_restore(db_session, store_engine, settings, lock) -> None:
    artifact = _backup(db_session, store_engine, settings, lock)
    broken = _UnstatableStore(settings.backup_dir)
    svc = RestoreService(
        db_session,
        store_engine,
        settings=settings,
        lock=lock,
        engine=_ExplodingEngine(),
        points=RestorationPointService(store_engine, broken),
    )

    outcome = svc.restore_from_artifact(artifact, "RESTORE")

    assert outcome.status == OperationStatus.FAILED
    entry = OperationLogService(db_session).get(outcome.operation_id)
    assert entry.status == OperationStatus.FAILED.value
    assert [p.filename for p in svc.points.list()] == []
    assert [a.filename for a in svc.artifacts.list()] == [artifact]
    assert not lock.held


def test_restoration_point_service_wraps_os_errors(store_engine, settings) -> None:
    points = RestorationPointService(store_engine, _UnstatableStore(settings.backup_dir))

    with pytest.raises(RestorationPointError):
        points.create()

    assert points.list() == []
