from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session

from billing_backup.core.backup.archive import ArchivePackager
from billing_backup.core.backup.artifacts import ArtifactMetadata, ArtifactStore
from billing_backup.core.backup.dialects import get_dialect
from billing_backup.core.backup.errors import (
    BackupError,
    ConfirmationError,
    FatalRestoreError,
    RestorationPointError,
    UnsupportedArtifactError,
)
from billing_backup.core.backup.replay import ReplayResult, RestoreEngine
from billing_backup.core.backup.statements import split_statements
from billing_backup.core.config import Settings, get_settings
from billing_backup.core.maintenance import MaintenanceLock, get_maintenance_lock
from billing_backup.domain.enums import ArtifactKind, OperationKind, OperationStatus, RestoreSubtype
from billing_backup.domain.outcomes import OperationOutcome
from billing_backup.models import OperationLog as OperationLogModel
from billing_backup.services.backups import build_artifact_store, build_serializer
from billing_backup.services.operation_log import OperationLogService
from billing_backup.services.restoration_points import RestorationPointService


logger = logging.getLogger(__name__)

# How many individual statement failures are copied into the operation log
_LOGGED_FAILURES = 5


@dataclass(frozen=True)
class DumpPreview:
    filename: str
    statements: int
    tables: List[str]


class RestoreService:
    """Restores the database or the uploads tree from an artifact.

    A database restore only runs after:

    1. the caller typed the exact confirmation phrase,
    2. the maintenance lock was acquired,
    3. a restoration point (Full dump of the current data) was written.
    """

    def __init__(
        self,
        db: Session,
        store: Engine,
        *,
        settings: Optional[Settings] = None,
        artifacts: Optional[ArtifactStore] = None,
        engine: Optional[RestoreEngine] = None,
        points: Optional[RestorationPointService] = None,
        packager: Optional[ArchivePackager] = None,
        lock: Optional[MaintenanceLock] = None,
    ) -> None:
        self.db = db
        self.store = store
        self.settings = settings or get_settings()
        self.artifacts = artifacts or build_artifact_store(self.settings)
        self.engine = engine or RestoreEngine()
        self.points = points or RestorationPointService(store, self.artifacts, build_serializer(self.settings))
        self.packager = packager or ArchivePackager()
        self.lock = lock or get_maintenance_lock()
        self.log = OperationLogService(db)

    def check_confirmation(self, confirmation: Optional[str]) -> None:
        phrase = self.settings.restore_confirmation_phrase
        if confirmation != phrase:
            raise ConfirmationError(phrase)

    def _require_kind(self, filename: str, kind: ArtifactKind, public_message: str) -> Path:
        path = self.artifacts.path_for(filename)
        if self.artifacts.stat(filename).kind != kind:
            raise UnsupportedArtifactError(f"{filename!r} is not {kind.value}", public_message=public_message)
        return path

    def validate_database_restore(self, filename: str, confirmation: Optional[str]) -> None:
        """All checks that reject a restore request before any side effect."""
        self.check_confirmation(confirmation)
        self._require_kind(filename, ArtifactKind.DUMP_ONLY, "Only SQL backup files can be restored")
        self.lock.ensure_available()

    def start_restore(self, filename: str, actor_id: Optional[str], subtype: RestoreSubtype) -> OperationLogModel:
        return self.log.begin(OperationKind.RESTORE, subtype.value, actor_id, artifact_path=filename)

    def restore_from_artifact(
        self,
        filename: str,
        confirmation: Optional[str],
        actor_id: Optional[str] = None,
    ) -> OperationOutcome:
        self.validate_database_restore(filename, confirmation)
        entry = self.start_restore(filename, actor_id, RestoreSubtype.DATABASE)
        return self.run_restore(entry.backup_id, filename)

    def run_restore(self, operation_id: int, filename: str) -> OperationOutcome:
        """Take a restoration point, replay the dump, finalize the log entry."""
        try:
            with self.lock.hold(f"restore:{filename}"):
                try:
                    point = self.points.create()
                except RestorationPointError as exc:
                    return self._failed(operation_id, exc)
                try:
                    path = self._require_kind(filename, ArtifactKind.DUMP_ONLY, "Only SQL backup files can be restored")
                    result = self.engine.restore(self.store, path)
                    size = path.stat().st_size
                except BackupError as exc:
                    return self._failed(operation_id, exc, restoration_point=point.filename)
                except Exception:
                    logger.exception("restore_unexpected_error | id=%s", operation_id)
                    self.log.fail(
                        operation_id,
                        "Unexpected error during restore",
                        restoration_point=point.filename,
                    )
                    raise
        except BackupError as exc:
            # lock busy
            return self._failed(operation_id, exc)

        return self._completed(operation_id, filename, point.filename, result, size)

    def _completed(
        self,
        operation_id: int,
        filename: str,
        point_name: str,
        result: ReplayResult,
        size: int,
    ) -> OperationOutcome:
        warnings = [f.describe() for f in result.failures]
        log_message = None
        if result.has_warnings:
            message = (
                f"Database restored from {filename} with {result.failed} errors "
                f"out of {result.total} statements"
            )
            details = "; ".join(warnings[:_LOGGED_FAILURES])
            if len(warnings) > _LOGGED_FAILURES:
                details += f"; ... {len(warnings) - _LOGGED_FAILURES} more"
            log_message = f"{message}: {details}"
        else:
            message = f"Database restored successfully from backup: {filename}"

        self.log.complete(
            operation_id,
            size,
            applied=result.applied,
            failed=result.failed,
            restoration_point=point_name,
            message=log_message,
        )
        logger.info(
            "restore_completed | id=%s artifact=%s applied=%s failed=%s restoration_point=%s",
            operation_id,
            filename,
            result.applied,
            result.failed,
            point_name,
        )
        return OperationOutcome(
            operation_id=operation_id,
            operation=OperationKind.RESTORE,
            status=OperationStatus.COMPLETED,
            message=message,
            artifact=filename,
            size_bytes=size,
            statements_applied=result.applied,
            statements_failed=result.failed,
            restoration_point=point_name,
            warnings=warnings,
        )

    def _failed(
        self,
        operation_id: int,
        exc: BackupError,
        *,
        restoration_point: Optional[str] = None,
    ) -> OperationOutcome:
        logger.error("restore_failed | id=%s code=%s error=%s", operation_id, exc.code, exc)
        self.log.fail(operation_id, exc.public_message, restoration_point=restoration_point)
        return OperationOutcome(
            operation_id=operation_id,
            operation=OperationKind.RESTORE,
            status=OperationStatus.FAILED,
            message=exc.public_message,
            restoration_point=restoration_point,
        )

    def validate_assets_restore(self, filename: str) -> None:
        self._require_kind(filename, ArtifactKind.DUMP_WITH_ASSETS, "Only ZIP upload backups can be restored")
        self.lock.ensure_available()

    def restore_assets(self, filename: str, actor_id: Optional[str] = None) -> OperationOutcome:
        """Extract the `uploads/` tree of a ZIP artifact into the uploads directory."""
        self.validate_assets_restore(filename)
        entry = self.start_restore(filename, actor_id, RestoreSubtype.UPLOADS)
        return self.run_assets_restore(entry.backup_id, filename)

    def run_assets_restore(self, operation_id: int, filename: str) -> OperationOutcome:
        try:
            with self.lock.hold(f"restore_uploads:{filename}"):
                path = self._require_kind(
                    filename, ArtifactKind.DUMP_WITH_ASSETS, "Only ZIP upload backups can be restored"
                )
                files = self.packager.extract_assets(path, self.settings.uploads_dir)
                size = path.stat().st_size
        except BackupError as exc:
            return self._failed(operation_id, exc)
        except Exception:
            logger.exception("restore_uploads_unexpected_error | id=%s", operation_id)
            self.log.fail(operation_id, "Unexpected error while restoring uploads")
            raise

        self.log.complete(operation_id, size, applied=files, failed=0)
        logger.info("uploads_restored | id=%s artifact=%s files=%s", operation_id, filename, files)
        return OperationOutcome(
            operation_id=operation_id,
            operation=OperationKind.RESTORE,
            status=OperationStatus.COMPLETED,
            message=f"Upload files restored successfully from: {filename}",
            artifact=filename,
            size_bytes=size,
            statements_applied=files,
            statements_failed=0,
        )

    def list_restoration_points(self) -> List[ArtifactMetadata]:
        return self.points.list()

    def preview(self, filename: str) -> DumpPreview:
        """Parse a dump without executing it (dry run)."""
        path = self._require_kind(filename, ArtifactKind.DUMP_ONLY, "Only SQL backup files can be restored")
        try:
            source = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            raise FatalRestoreError(f"cannot read {filename}: {exc}") from exc
        dialect = self.engine.dialect or get_dialect(self.store)
        statements = [
            s
            for s in split_statements(source, backslash_escapes=dialect.backslash_escapes)
            if not s.is_transaction_control
        ]
        tables: List[str] = []
        for stmt in statements:
            table = stmt.table
            if table and table not in tables:
                tables.append(table)
        return DumpPreview(filename=filename, statements=len(statements), tables=tables)
