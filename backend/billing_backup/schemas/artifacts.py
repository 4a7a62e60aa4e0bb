"""Schemas for backup artifacts on disk."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from billing_backup.domain.enums import ArtifactKind


class Artifact(BaseModel):
    """A backup artifact found in the backup directory."""

    filename: str = Field(..., description="Artifact file name (no directory part)")
    size_bytes: int = Field(..., description="File size in bytes")
    modified_at: datetime = Field(..., description="File modification timestamp")
    kind: ArtifactKind = Field(..., description="'Database Only' for .sql, 'Full with Uploads' for .zip")
    is_restoration_point: bool = Field(False, description="True for automatic pre-restore snapshots")

    model_config = ConfigDict(from_attributes=True)


class StorageSummary(BaseModel):
    total_backups: int
    storage_used_bytes: int
    last_backup: Optional[Artifact] = None

    model_config = ConfigDict(from_attributes=True)
