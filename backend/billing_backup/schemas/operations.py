from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from billing_backup.domain.enums import OperationKind, OperationStatus


class OperationLog(BaseModel):
    """Schema for operation log responses."""

    backup_id: int = Field(..., description="Unique identifier")
    operation: OperationKind = Field(..., description="backup or restore")
    backup_type: str = Field(..., description="Full / Incremental for backups, Database / Uploads for restores")
    backup_path: Optional[str] = Field(None, description="Artifact file name")
    status: OperationStatus = Field(..., description="In Progress, Completed or Failed")
    backup_size: Optional[int] = Field(None, description="Artifact size in bytes")
    started_by: Optional[str] = Field(None, description="Actor that started the operation")
    started_at: datetime = Field(..., description="Start timestamp")
    completed_at: Optional[datetime] = Field(None, description="Completion timestamp")
    error_message: Optional[str] = Field(None, description="Failure reason or restore warnings")
    statements_applied: Optional[int] = None
    statements_failed: Optional[int] = None
    restoration_point: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class OperationStats(BaseModel):
    total: int
    completed: int
    failed: int
    in_progress: int
    last_completed_backup: Optional[OperationLog] = None

    model_config = ConfigDict(from_attributes=True)


class OperationOutcome(BaseModel):
    """Final result of a synchronous backup or restore."""

    operation_id: int
    operation: OperationKind
    status: OperationStatus
    message: str
    artifact: Optional[str] = None
    size_bytes: Optional[int] = None
    statements_applied: Optional[int] = None
    statements_failed: Optional[int] = None
    restoration_point: Optional[str] = None
    warnings: List[str] = Field(default_factory=list)
    has_warnings: bool = False

    model_config = ConfigDict(from_attributes=True)


class OperationHandle(BaseModel):
    """Returned when an operation was handed to the background runner."""

    operation_id: int = Field(..., description="Poll /operations/{operation_id} for the result")
    status: OperationStatus = OperationStatus.IN_PROGRESS
