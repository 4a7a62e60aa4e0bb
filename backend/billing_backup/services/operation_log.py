from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from billing_backup.domain.enums import OperationKind, OperationStatus
from billing_backup.models import OperationLog as OperationLogModel
from billing_backup.models.common import _utcnow


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OperationStats:
    total: int
    completed: int
    failed: int
    in_progress: int
    last_completed_backup: Optional[OperationLogModel]


class OperationLogService:
    """Catalog of backup/restore attempts.

    Every attempt gets exactly one row: `begin` creates it In Progress, and one
    of `complete` / `fail` finalizes it. Rows are never deleted.
    """

    def __init__(self, db: Session) -> None:
        self.db = db

    def begin(
        self,
        operation: OperationKind,
        subtype: str,
        actor_id: Optional[str],
        artifact_path: Optional[str] = None,
    ) -> OperationLogModel:
        entry = OperationLogModel(
            operation=OperationKind(operation).value,
            backup_type=str(subtype),
            backup_path=artifact_path,
            status=OperationStatus.IN_PROGRESS.value,
            started_by=actor_id,
            started_at=_utcnow(),
        )
        self.db.add(entry)
        self.db.commit()
        self.db.refresh(entry)
        logger.info(
            "operation_begin | id=%s operation=%s type=%s actor=%s",
            entry.backup_id,
            entry.operation,
            entry.backup_type,
            actor_id,
        )
        return entry

    def complete(
        self,
        operation_id: int,
        size: Optional[int],
        *,
        artifact_path: Optional[str] = None,
        applied: Optional[int] = None,
        failed: Optional[int] = None,
        restoration_point: Optional[str] = None,
        message: Optional[str] = None,
    ) -> OperationLogModel:
        entry = self._require(operation_id)
        entry.status = OperationStatus.COMPLETED.value
        entry.completed_at = _utcnow()
        entry.backup_size = size
        if artifact_path is not None:
            entry.backup_path = artifact_path
        if applied is not None:
            entry.statements_applied = applied
        if failed is not None:
            entry.statements_failed = failed
        if restoration_point is not None:
            entry.restoration_point = restoration_point
        if message:
            entry.error_message = message
        self.db.add(entry)
        self.db.commit()
        self.db.refresh(entry)
        logger.info("operation_completed | id=%s size=%s failed_statements=%s", operation_id, size, failed)
        return entry

    def fail(
        self,
        operation_id: int,
        error: str,
        *,
        restoration_point: Optional[str] = None,
    ) -> OperationLogModel:
        entry = self._require(operation_id)
        entry.status = OperationStatus.FAILED.value
        entry.completed_at = _utcnow()
        entry.error_message = error
        if restoration_point is not None:
            entry.restoration_point = restoration_point
        self.db.add(entry)
        self.db.commit()
        self.db.refresh(entry)
        logger.warning("operation_failed | id=%s error=%s", operation_id, error)
        return entry

    def get(self, operation_id: int) -> Optional[OperationLogModel]:
        return self.db.get(OperationLogModel, operation_id)

    def list(
        self,
        *,
        limit: Optional[int] = 20,
        operation: Optional[str] = None,
        status: Optional[str] = None,
    ) -> List[OperationLogModel]:
        """Most recent first."""
        q = self.db.query(OperationLogModel)
        if operation:
            q = q.filter(OperationLogModel.operation == operation)
        if status:
            q = q.filter(OperationLogModel.status == status)
        q = q.order_by(OperationLogModel.started_at.desc(), OperationLogModel.backup_id.desc())
        if limit is not None:
            q = q.limit(limit)
        return list(q.all())

    def last_completed_backup(self) -> Optional[OperationLogModel]:
        return (
            self.db.query(OperationLogModel)
            .filter(
                OperationLogModel.operation == OperationKind.BACKUP.value,
                OperationLogModel.status == OperationStatus.COMPLETED.value,
            )
            .order_by(OperationLogModel.completed_at.desc(), OperationLogModel.backup_id.desc())
            .first()
        )

    def stats(self) -> OperationStats:
        counts = dict(
            self.db.query(OperationLogModel.status, func.count(OperationLogModel.backup_id))
            .group_by(OperationLogModel.status)
            .all()
        )
        return OperationStats(
            total=sum(counts.values()),
            completed=counts.get(OperationStatus.COMPLETED.value, 0),
            failed=counts.get(OperationStatus.FAILED.value, 0),
            in_progress=counts.get(OperationStatus.IN_PROGRESS.value, 0),
            last_completed_backup=self.last_completed_backup(),
        )

    def _require(self, operation_id: int) -> OperationLogModel:
        entry = self.get(operation_id)
        if entry is None:
            raise KeyError("operation_not_found")
        return entry
