from __future__ import annotations

from typing import Any

from sqlalchemy.orm import sessionmaker

from billing_backup.core import scheduler as scheduler_module
from billing_backup.core.scheduler import run_backup_operation, run_restore_operation, submit_operation
from billing_backup.domain.enums import BackupMode, OperationKind, OperationStatus
from billing_backup.services.operation_log import OperationLogService


class _RecordingScheduler:
    def __init__(self) -> None:
        self.jobs: list[dict[str, Any]] = []

    def add_job(self, **kwargs: Any) -> None:
        self.jobs.append(kwargs)


def test_submit_operation_schedules_run_once_job() -> None:
    sched = _RecordingScheduler()

    job_id = submit_operation(run_backup_operation, operation_id=7, scheduler=sched, mode="Full", include_assets=False)

    assert job_id == "operation-7"
    job = sched.jobs[0]
    assert job["trigger"] == "date"
    assert job["func"] is run_backup_operation
    assert job["kwargs"] == {"operation_id": 7, "mode": "Full", "include_assets": False}


def _bind_catalog(monkeypatch, db_session, store_engine) -> None:
    factory = sessionmaker(autocommit=False, autoflush=False, bind=db_session.get_bind())
    monkeypatch.setattr(scheduler_module, "get_session_factory", lambda: factory)
    monkeypatch.setattr(scheduler_module, "get_store", lambda: store_engine)


def test_background_backup_finalizes_log_entry(monkeypatch, settings, db_session, store_engine) -> None:
    _bind_catalog(monkeypatch, db_session, store_engine)
    entry = OperationLogService(db_session).begin(OperationKind.BACKUP, BackupMode.FULL.value, "u1")

    run_backup_operation(operation_id=entry.backup_id, mode="Full", include_assets=False)

    db_session.expire_all()
    refreshed = OperationLogService(db_session).get(entry.backup_id)
    assert refreshed.status == OperationStatus.COMPLETED.value
    assert refreshed.backup_path.endswith(".sql")


def test_background_restore_with_bad_artifact_fails_entry(monkeypatch, settings, db_session, store_engine) -> None:
    _bind_catalog(monkeypatch, db_session, store_engine)
    entry = OperationLogService(db_session).begin(OperationKind.RESTORE, "Database", "u1", artifact_path="gone.sql")

    run_restore_operation(operation_id=entry.backup_id, filename="gone.sql")

    db_session.expire_all()
    refreshed = OperationLogService(db_session).get(entry.backup_id)
    assert refreshed.status == OperationStatus.FAILED.value
    # The restoration point was still taken before the artifact was looked up
    assert refreshed.restoration_point.startswith("restoration_point_before_restore_")
