"""Operation log API router."""

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from billing_backup.core.db import get_session
from billing_backup.core.security import PERM_BACKUP_CREATE, PERM_BACKUP_RESTORE, Actor, require_any_permission
from billing_backup.models import OperationLog as OperationLogModel
from billing_backup.schemas import OperationLog, OperationStats
from billing_backup.services import OperationLogService


router = APIRouter(prefix="/operations", tags=["operations"])

_can_read_log = require_any_permission(PERM_BACKUP_CREATE, PERM_BACKUP_RESTORE)


@router.get("/", response_model=List[OperationLog])
def list_operations(
    db: Session = Depends(get_session),
    actor: Actor = Depends(_can_read_log),
    *,
    limit: int = Query(20, ge=1, le=500, description="Maximum number of entries"),
    operation: Optional[str] = Query(None, description="Filter by operation: backup or restore"),
    status: Optional[str] = Query(None, description="Filter by status"),
) -> List[OperationLogModel]:
    """Most recent operations first."""
    svc = OperationLogService(db)
    return svc.list(limit=limit, operation=operation, status=status)


@router.get("/stats", response_model=OperationStats)
def operation_stats(
    db: Session = Depends(get_session),
    actor: Actor = Depends(_can_read_log),
) -> OperationStats:
    svc = OperationLogService(db)
    return OperationStats.model_validate(svc.stats())


@router.get("/{operation_id}", response_model=OperationLog)
def get_operation(
    operation_id: int,
    db: Session = Depends(get_session),
    actor: Actor = Depends(_can_read_log),
) -> OperationLogModel:
    """Single entry; clients poll this after a background submission."""
    svc = OperationLogService(db)
    entry = svc.get(operation_id)
    if entry is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Operation not found")
    return entry
