"""Shared router dependencies and error mapping."""

from __future__ import annotations

from fastapi import Depends, HTTPException, status

from billing_backup.core.backup.errors import BackupError, ValidationError
from billing_backup.core.maintenance import MaintenanceLock, get_maintenance_lock


_STATUS_BY_CODE = {
    "artifact_not_found": status.HTTP_404_NOT_FOUND,
    "upload_too_large": status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
    "maintenance_in_progress": status.HTTP_423_LOCKED,
}


def http_error(exc: BackupError) -> HTTPException:
    """Translate an engine error into an HTTP error carrying only the public message."""
    code = _STATUS_BY_CODE.get(exc.code)
    if code is None:
        code = (
            status.HTTP_400_BAD_REQUEST
            if isinstance(exc, ValidationError)
            else status.HTTP_500_INTERNAL_SERVER_ERROR
        )
    return HTTPException(status_code=code, detail=exc.public_message)


def get_lock() -> MaintenanceLock:
    return get_maintenance_lock()


def require_no_maintenance(lock: MaintenanceLock = Depends(get_lock)) -> None:
    """Reject mutating requests with 423 while a restore holds the lock."""
    if lock.held:
        raise HTTPException(
            status_code=status.HTTP_423_LOCKED,
            detail="A restore is in progress. Try again once it has finished",
        )


def get_task_runner():
    """Scheduler used for background operations (overridden in tests)."""
    from billing_backup.core.scheduler import get_scheduler

    return get_scheduler()
