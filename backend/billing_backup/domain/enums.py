from __future__ import annotations

from enum import Enum


class OperationKind(str, Enum):
    BACKUP = "backup"
    RESTORE = "restore"


class OperationStatus(str, Enum):
    IN_PROGRESS = "In Progress"
    COMPLETED = "Completed"
    FAILED = "Failed"


class BackupMode(str, Enum):
    FULL = "Full"
    INCREMENTAL = "Incremental"


class RestoreSubtype(str, Enum):
    DATABASE = "Database"
    UPLOADS = "Uploads"


class ArtifactKind(str, Enum):
    DUMP_ONLY = "Database Only"
    DUMP_WITH_ASSETS = "Full with Uploads"
