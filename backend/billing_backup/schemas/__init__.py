"""Pydantic schemas package."""

from .artifacts import (
    Artifact,
    StorageSummary,
)  # noqa: F401
from .operations import (
    OperationLog,
    OperationStats,
    OperationOutcome,
    OperationHandle,
)  # noqa: F401
from .backups import (
    BackupCreate,
)  # noqa: F401
from .restores import (
    RestoreRequest,
    UploadsRestoreRequest,
    DumpPreview,
)  # noqa: F401
