"""Backups API router."""

from typing import List, Union

from fastapi import APIRouter, Depends, File, Response, UploadFile, status
from fastapi.responses import FileResponse
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session

from billing_backup.api.deps import get_task_runner, http_error, require_no_maintenance
from billing_backup.core.backup.errors import BackupError
from billing_backup.core.db import get_session
from billing_backup.core.scheduler import run_backup_operation, submit_operation
from billing_backup.core.security import PERM_BACKUP_CREATE, Actor, require_permission
from billing_backup.core.store import get_store
from billing_backup.schemas import Artifact, BackupCreate, OperationHandle, OperationOutcome, StorageSummary
from billing_backup.services import BackupService


router = APIRouter(prefix="/backups", tags=["backups"])


@router.get("/", response_model=List[Artifact])
def list_backups(
    db: Session = Depends(get_session),
    store: Engine = Depends(get_store),
    actor: Actor = Depends(require_permission(PERM_BACKUP_CREATE)),
) -> List[Artifact]:
    """List `.sql` and `.zip` artifacts, newest first."""
    svc = BackupService(db, store)
    return [Artifact.model_validate(a) for a in svc.list_artifacts()]


@router.get("/summary", response_model=StorageSummary)
def backup_summary(
    db: Session = Depends(get_session),
    store: Engine = Depends(get_store),
    actor: Actor = Depends(require_permission(PERM_BACKUP_CREATE)),
) -> StorageSummary:
    svc = BackupService(db, store)
    return StorageSummary.model_validate(svc.summary())


@router.post(
    "/",
    response_model=Union[OperationOutcome, OperationHandle],
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_no_maintenance)],
)
def create_backup(
    payload: BackupCreate,
    response: Response,
    db: Session = Depends(get_session),
    store: Engine = Depends(get_store),
    actor: Actor = Depends(require_permission(PERM_BACKUP_CREATE)),
    runner=Depends(get_task_runner),
) -> Union[OperationOutcome, OperationHandle]:
    """Create a Full or Incremental backup, optionally bundled with uploads.

    With `background` set, the log entry is created and the work is handed to
    the task runner; the response is 202 with the operation id to poll.
    """
    svc = BackupService(db, store)
    try:
        if payload.background:
            entry = svc.start_backup(payload.backup_type, actor.actor_id)
            submit_operation(
                run_backup_operation,
                operation_id=entry.backup_id,
                scheduler=runner,
                mode=payload.backup_type.value,
                include_assets=payload.include_uploads,
            )
            response.status_code = status.HTTP_202_ACCEPTED
            return OperationHandle(operation_id=entry.backup_id)
        outcome = svc.create_backup(payload.backup_type, payload.include_uploads, actor.actor_id)
    except BackupError as exc:
        raise http_error(exc)
    if not outcome.ok:
        response.status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    return OperationOutcome.model_validate(outcome)


@router.post(
    "/upload",
    response_model=Artifact,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_no_maintenance)],
)
def upload_backup(
    file: UploadFile = File(...),
    db: Session = Depends(get_session),
    store: Engine = Depends(get_store),
    actor: Actor = Depends(require_permission(PERM_BACKUP_CREATE)),
) -> Artifact:
    """Store an uploaded `.sql` / `.zip` artifact (size-limited)."""
    svc = BackupService(db, store)
    try:
        meta = svc.upload_artifact(file.filename or "", file.file, file.size, actor.actor_id)
    except BackupError as exc:
        raise http_error(exc)
    return Artifact.model_validate(meta)


@router.get("/{filename}")
def download_backup(
    filename: str,
    db: Session = Depends(get_session),
    store: Engine = Depends(get_store),
    actor: Actor = Depends(require_permission(PERM_BACKUP_CREATE)),
) -> FileResponse:
    svc = BackupService(db, store)
    try:
        path = svc.open_artifact(filename, actor.actor_id)
    except BackupError as exc:
        raise http_error(exc)
    return FileResponse(path, filename=filename, media_type="application/octet-stream")


@router.delete(
    "/{filename}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(require_no_maintenance)],
)
def delete_backup(
    filename: str,
    db: Session = Depends(get_session),
    store: Engine = Depends(get_store),
    actor: Actor = Depends(require_permission(PERM_BACKUP_CREATE)),
) -> Response:
    svc = BackupService(db, store)
    try:
        svc.delete_artifact(filename, actor.actor_id)
    except BackupError as exc:
        raise http_error(exc)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
