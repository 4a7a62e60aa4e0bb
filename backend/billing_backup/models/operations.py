from __future__ import annotations

from sqlalchemy import Column, DateTime, Integer, String, Text, BigInteger, event
from sqlalchemy.orm.base import NEVER_SET, NO_VALUE

from billing_backup.core.db import Base
from billing_backup.domain.enums import OperationStatus
from .common import StatusTransitionError, _utcnow


_ALLOWED_TRANSITIONS = {
    OperationStatus.IN_PROGRESS.value: {OperationStatus.COMPLETED.value, OperationStatus.FAILED.value},
}


class OperationLog(Base):
    """One backup or restore attempt (append-only audit trail)."""

    __tablename__ = "backup_logs"

    backup_id = Column(Integer, primary_key=True, index=True)
    operation = Column(String(20), nullable=False, index=True)  # values in OperationKind
    backup_type = Column(String(30), nullable=False)  # Full / Incremental / Database / Uploads
    backup_path = Column(String(500), nullable=True)
    status = Column(String(20), nullable=False, index=True, default=OperationStatus.IN_PROGRESS.value)
    backup_size = Column(BigInteger, nullable=True)
    started_by = Column(String(100), nullable=True, index=True)
    started_at = Column(DateTime, nullable=False, default=_utcnow, index=True)
    completed_at = Column(DateTime, nullable=True)
    error_message = Column(Text, nullable=True)
    # Restore only
    statements_applied = Column(Integer, nullable=True)
    statements_failed = Column(Integer, nullable=True)
    restoration_point = Column(String(500), nullable=True)

    @property
    def has_warnings(self) -> bool:
        return bool(self.statements_failed)

    def __repr__(self) -> str:
        return (
            f"<OperationLog(backup_id={self.backup_id}, operation='{self.operation}', "
            f"status='{self.status}', started_at={self.started_at})>"
        )


@event.listens_for(OperationLog.status, "set", active_history=True)
def _guard_status_transition(entry: OperationLog, value, oldvalue, initiator) -> None:
    if oldvalue in (NO_VALUE, NEVER_SET, None) or oldvalue == value:
        return
    if value not in _ALLOWED_TRANSITIONS.get(oldvalue, set()):
        raise StatusTransitionError(f"status transition {oldvalue!r} -> {value!r} is not allowed")


@event.listens_for(OperationLog, "before_delete")
def _forbid_delete(mapper, connection, entry: OperationLog) -> None:
    raise StatusTransitionError("operation log entries are never deleted")
