"""Restore API router."""

from typing import List, Union

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session

from billing_backup.api.deps import get_task_runner, http_error, require_no_maintenance
from billing_backup.core.backup.errors import BackupError
from billing_backup.core.db import get_session
from billing_backup.core.scheduler import (
    run_assets_restore_operation,
    run_restore_operation,
    submit_operation,
)
from billing_backup.core.security import PERM_BACKUP_RESTORE, Actor, require_permission
from billing_backup.core.store import get_store
from billing_backup.domain.enums import RestoreSubtype
from billing_backup.schemas import (
    Artifact,
    DumpPreview,
    OperationHandle,
    OperationOutcome,
    RestoreRequest,
    UploadsRestoreRequest,
)
from billing_backup.services import RestoreService


router = APIRouter(prefix="/restores", tags=["restores"])


@router.post(
    "/",
    response_model=Union[OperationOutcome, OperationHandle],
    dependencies=[Depends(require_no_maintenance)],
)
def restore_database(
    payload: RestoreRequest,
    response: Response,
    db: Session = Depends(get_session),
    store: Engine = Depends(get_store),
    actor: Actor = Depends(require_permission(PERM_BACKUP_RESTORE)),
    runner=Depends(get_task_runner),
) -> Union[OperationOutcome, OperationHandle]:
    """Replay a `.sql` artifact into the live store.

    Requires the exact confirmation phrase. A restoration point is written
    before any statement runs; its name is part of the outcome.
    """
    svc = RestoreService(db, store)
    try:
        if payload.background:
            svc.validate_database_restore(payload.filename, payload.confirm_text)
            entry = svc.start_restore(payload.filename, actor.actor_id, RestoreSubtype.DATABASE)
            submit_operation(
                run_restore_operation,
                operation_id=entry.backup_id,
                scheduler=runner,
                filename=payload.filename,
            )
            response.status_code = status.HTTP_202_ACCEPTED
            return OperationHandle(operation_id=entry.backup_id)
        outcome = svc.restore_from_artifact(payload.filename, payload.confirm_text, actor.actor_id)
    except BackupError as exc:
        raise http_error(exc)
    if not outcome.ok:
        response.status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    return OperationOutcome.model_validate(outcome)


@router.post(
    "/uploads",
    response_model=Union[OperationOutcome, OperationHandle],
    dependencies=[Depends(require_no_maintenance)],
)
def restore_uploads(
    payload: UploadsRestoreRequest,
    response: Response,
    db: Session = Depends(get_session),
    store: Engine = Depends(get_store),
    actor: Actor = Depends(require_permission(PERM_BACKUP_RESTORE)),
    runner=Depends(get_task_runner),
) -> Union[OperationOutcome, OperationHandle]:
    """Extract the uploads tree of a `.zip` artifact into the uploads directory."""
    svc = RestoreService(db, store)
    try:
        if payload.background:
            svc.validate_assets_restore(payload.filename)
            entry = svc.start_restore(payload.filename, actor.actor_id, RestoreSubtype.UPLOADS)
            submit_operation(
                run_assets_restore_operation,
                operation_id=entry.backup_id,
                scheduler=runner,
                filename=payload.filename,
            )
            response.status_code = status.HTTP_202_ACCEPTED
            return OperationHandle(operation_id=entry.backup_id)
        outcome = svc.restore_assets(payload.filename, actor.actor_id)
    except BackupError as exc:
        raise http_error(exc)
    if not outcome.ok:
        response.status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    return OperationOutcome.model_validate(outcome)


@router.get("/points", response_model=List[Artifact])
def list_restoration_points(
    db: Session = Depends(get_session),
    store: Engine = Depends(get_store),
    actor: Actor = Depends(require_permission(PERM_BACKUP_RESTORE)),
) -> List[Artifact]:
    svc = RestoreService(db, store)
    return [Artifact.model_validate(p) for p in svc.list_restoration_points()]


@router.get("/preview/{filename}", response_model=DumpPreview)
def preview_restore(
    filename: str,
    db: Session = Depends(get_session),
    store: Engine = Depends(get_store),
    actor: Actor = Depends(require_permission(PERM_BACKUP_RESTORE)),
) -> DumpPreview:
    """Dry run: parse the dump and report what a restore would execute."""
    svc = RestoreService(db, store)
    try:
        preview = svc.preview(filename)
    except BackupError as exc:
        raise http_error(exc)
    return DumpPreview(filename=preview.filename, statements=preview.statements, tables=list(preview.tables))
