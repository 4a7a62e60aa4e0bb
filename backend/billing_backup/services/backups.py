from __future__ import annotations

import logging
from pathlib import Path
from typing import BinaryIO, List, Optional

from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session

from billing_backup.core.backup.archive import ArchivePackager
from billing_backup.core.backup.artifacts import (
    ARCHIVE_EXTENSION,
    DUMP_EXTENSION,
    ArtifactMetadata,
    ArtifactStore,
    StorageSummary,
)
from billing_backup.core.backup.dump import DumpSerializer
from billing_backup.core.backup.errors import BackupError, ContainerError, ContainerOpenError, SerializationError
from billing_backup.core.config import Settings, get_settings
from billing_backup.core.maintenance import MaintenanceLock, get_maintenance_lock
from billing_backup.domain.enums import BackupMode, OperationKind, OperationStatus
from billing_backup.domain.outcomes import OperationOutcome
from billing_backup.models import OperationLog as OperationLogModel
from billing_backup.services.operation_log import OperationLogService


logger = logging.getLogger(__name__)


def build_artifact_store(settings: Optional[Settings] = None) -> ArtifactStore:
    settings = settings or get_settings()
    return ArtifactStore(settings.backup_dir, max_upload_bytes=settings.max_upload_bytes)


def build_serializer(settings: Optional[Settings] = None) -> DumpSerializer:
    settings = settings or get_settings()
    return DumpSerializer(tool_name=settings.tool_name, insert_batch=settings.dump_insert_batch)


class BackupService:
    """Create, list, download, upload and delete backup artifacts.

    Every backup attempt is recorded in the operation log; component errors are
    turned into a Failed entry plus a Failed `OperationOutcome`.
    """

    def __init__(
        self,
        db: Session,
        store: Engine,
        *,
        settings: Optional[Settings] = None,
        artifacts: Optional[ArtifactStore] = None,
        serializer: Optional[DumpSerializer] = None,
        packager: Optional[ArchivePackager] = None,
        lock: Optional[MaintenanceLock] = None,
    ) -> None:
        self.db = db
        self.store = store
        self.settings = settings or get_settings()
        self.artifacts = artifacts or build_artifact_store(self.settings)
        self.serializer = serializer or build_serializer(self.settings)
        self.packager = packager or ArchivePackager()
        self.lock = lock or get_maintenance_lock()
        self.log = OperationLogService(db)

    def list_artifacts(self) -> List[ArtifactMetadata]:
        return self.artifacts.list()

    def summary(self) -> StorageSummary:
        return self.artifacts.summary()

    def start_backup(self, mode: BackupMode, actor_id: Optional[str]) -> OperationLogModel:
        """Record the attempt (In Progress) without doing any work yet."""
        self.lock.ensure_available()
        return self.log.begin(OperationKind.BACKUP, BackupMode(mode).value, actor_id)

    def create_backup(
        self,
        mode: BackupMode = BackupMode.FULL,
        include_assets: bool = False,
        actor_id: Optional[str] = None,
    ) -> OperationOutcome:
        entry = self.start_backup(mode, actor_id)
        return self.run_backup(entry.backup_id, mode, include_assets)

    def run_backup(self, operation_id: int, mode: BackupMode, include_assets: bool) -> OperationOutcome:
        """Serialize, optionally package, and finalize the log entry `operation_id`.

        Names are claimed before anything is written; on failure every claimed
        name is released so no unlogged artifact stays behind.
        """
        mode = BackupMode(mode)
        claimed: List[str] = []
        warnings: List[str] = []
        try:
            self.lock.ensure_available()
            filename = self.artifacts.backup_filename(self.settings.backup_prefix)
            claimed.append(filename)
            dump_path = self.artifacts.validate(filename)
            self.serializer.write(self.store, dump_path, mode)

            final_name = filename
            if include_assets:
                final_name, warning = self._package(filename, dump_path, claimed)
                if warning:
                    warnings.append(warning)
            size = self.artifacts.stat(final_name).size_bytes
        except BackupError as exc:
            self._release(claimed)
            return self._failed(operation_id, exc)
        except OSError as exc:
            self._release(claimed)
            return self._failed(operation_id, SerializationError(None, exc))
        except Exception:
            self._release(claimed)
            logger.exception("backup_unexpected_error | id=%s", operation_id)
            self.log.fail(operation_id, "Unexpected error while creating backup")
            raise

        self.log.complete(
            operation_id,
            size,
            artifact_path=final_name,
            message="; ".join(warnings) or None,
        )
        logger.info(
            "backup_created | id=%s artifact=%s mode=%s bytes=%s",
            operation_id,
            final_name,
            mode.value,
            size,
        )
        message = f"Backup created successfully: {final_name}"
        if warnings:
            message += f" ({warnings[0]})"
        return OperationOutcome(
            operation_id=operation_id,
            operation=OperationKind.BACKUP,
            status=OperationStatus.COMPLETED,
            message=message,
            artifact=final_name,
            size_bytes=size,
            warnings=warnings,
        )

    def _package(self, filename: str, dump_path: Path, claimed: List[str]) -> tuple[str, Optional[str]]:
        """Bundle uploads; on failure keep the dump-only artifact and return a warning."""
        zip_name: Optional[str] = None
        try:
            try:
                zip_name = self.artifacts.claim(filename[: -len(DUMP_EXTENSION)] + "_with_uploads" + ARCHIVE_EXTENSION)
            except OSError as exc:
                raise ContainerOpenError(f"cannot reserve archive name: {exc}") from exc
            claimed.append(zip_name)
            zip_path = self.artifacts.validate(zip_name)
            self.packager.pack(dump_path, self.settings.uploads_dir, zip_path)
        except ContainerError as exc:
            if zip_name is not None:
                self.artifacts.release(zip_name)
                claimed.remove(zip_name)
            logger.warning("backup_packaging_failed | artifact=%s error=%s", filename, exc)
            return filename, f"{exc.public_message}; database-only backup kept"
        self.artifacts.delete(filename)
        claimed.remove(filename)
        return zip_name, None

    def _release(self, claimed: List[str]) -> None:
        for name in claimed:
            try:
                self.artifacts.release(name)
            except OSError:
                logger.exception("backup_release_failed | artifact=%s", name)

    def _failed(self, operation_id: int, exc: BackupError) -> OperationOutcome:
        message = exc.public_message
        if isinstance(exc, SerializationError) and exc.table:
            message = f"{message} (table {exc.table})"
        logger.error("backup_failed | id=%s code=%s error=%s", operation_id, exc.code, exc)
        self.log.fail(operation_id, message)
        return OperationOutcome(
            operation_id=operation_id,
            operation=OperationKind.BACKUP,
            status=OperationStatus.FAILED,
            message=message,
        )

    def open_artifact(self, filename: str, actor_id: Optional[str] = None) -> Path:
        """Validated path for download."""
        self.artifacts.stat(filename)
        path = self.artifacts.path_for(filename)
        logger.info("backup_downloaded | filename=%s actor=%s", filename, actor_id)
        return path

    def delete_artifact(self, filename: str, actor_id: Optional[str] = None) -> None:
        self.lock.ensure_available()
        self.artifacts.stat(filename)
        self.artifacts.delete(filename)
        logger.info("backup_deleted | filename=%s actor=%s", filename, actor_id)

    def upload_artifact(
        self,
        original_name: str,
        stream: BinaryIO,
        declared_size: Optional[int],
        actor_id: Optional[str] = None,
    ) -> ArtifactMetadata:
        """Store an uploaded artifact as `uploaded_<timestamp>_<sanitized name>`."""
        self.lock.ensure_available()
        self.artifacts.check_size(declared_size)
        filename = self.artifacts.uploaded_filename(original_name)
        try:
            meta = self.artifacts.write(filename, stream, declared_size)
        except BaseException:
            self.artifacts.release(filename)
            raise
        logger.info("backup_uploaded | filename=%s bytes=%s actor=%s", filename, meta.size_bytes, actor_id)
        return meta
