"""Error taxonomy for the backup and restore engine.

Each error carries a stable `code` (used by API routers to pick an HTTP status)
and a `public_message` that is safe to show an operator. Internal detail such as
filesystem paths or driver messages stays in `str(exc)` and goes to the log sink
only.
"""

from __future__ import annotations

from typing import Optional


class BackupError(Exception):
    code = "backup_error"
    public_message = "Backup operation failed"

    def __init__(self, detail: Optional[str] = None, *, public_message: Optional[str] = None) -> None:
        super().__init__(detail or self.public_message)
        if public_message is not None:
            self.public_message = public_message


class ValidationError(BackupError):
    """Rejected before any side effect."""

    code = "validation_error"
    public_message = "Invalid request"


class InvalidPathError(ValidationError):
    code = "invalid_path"
    public_message = "Backup file not found or invalid"


class ConfirmationError(ValidationError):
    code = "confirmation_required"

    def __init__(self, phrase: str) -> None:
        super().__init__(
            "confirmation phrase mismatch",
            public_message=f'Please type "{phrase}" to confirm this dangerous operation',
        )


class UnsupportedArtifactError(ValidationError):
    code = "unsupported_artifact"
    public_message = "Only SQL and ZIP backup files are allowed"


class UploadTooLargeError(ValidationError):
    code = "upload_too_large"

    def __init__(self, limit_bytes: int) -> None:
        mib = limit_bytes // (1024 * 1024)
        super().__init__(
            f"upload exceeds {limit_bytes} bytes",
            public_message=f"Backup file too large. Maximum size is {mib}MB",
        )


class ArtifactNotFoundError(BackupError):
    code = "artifact_not_found"
    public_message = "Backup file not found or invalid"


class SerializationError(BackupError):
    """Dump generation failed; no artifact is written."""

    code = "serialization_failed"
    public_message = "Failed to create database backup"

    def __init__(self, table: Optional[str], cause: BaseException | str) -> None:
        self.table = table
        self.cause = cause
        where = f"table {table!r}" if table else "store"
        super().__init__(f"could not serialize {where}: {cause}")


class ContainerError(BackupError):
    code = "container_error"
    public_message = "Failed to package backup archive"


class ContainerOpenError(ContainerError):
    code = "container_open_failed"
    public_message = "Cannot create ZIP file"


class AssetReadError(ContainerError):
    code = "asset_read_failed"
    public_message = "Failed to add upload files to the archive"

    def __init__(self, path: str, cause: BaseException | str) -> None:
        self.path = path
        self.cause = cause
        super().__init__(f"could not add asset {path}: {cause}")


class FatalRestoreError(BackupError):
    """Restore aborted before any statement ran."""

    code = "restore_failed"
    public_message = "Failed to read backup file"


class RestorationPointError(BackupError):
    code = "restoration_point_failed"
    public_message = "Failed to create restoration point; restore was not attempted"


class MaintenanceInProgressError(BackupError):
    code = "maintenance_in_progress"
    public_message = "A restore is in progress. Try again once it has finished"
