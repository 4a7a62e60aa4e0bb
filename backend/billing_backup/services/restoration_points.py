from __future__ import annotations

import logging
from typing import List, Optional

from sqlalchemy.engine import Engine

from billing_backup.core.backup.artifacts import ArtifactMetadata, ArtifactStore
from billing_backup.core.backup.dump import DumpSerializer
from billing_backup.core.backup.errors import BackupError, RestorationPointError
from billing_backup.domain.enums import BackupMode


logger = logging.getLogger(__name__)


class RestorationPointService:
    """Takes the Full safety snapshot that must exist before any restore runs."""

    def __init__(
        self,
        store: Engine,
        artifacts: ArtifactStore,
        serializer: Optional[DumpSerializer] = None,
    ) -> None:
        self.store = store
        self.artifacts = artifacts
        self.serializer = serializer or DumpSerializer()

    def create(self) -> ArtifactMetadata:
        filename: Optional[str] = None
        try:
            filename = self.artifacts.restoration_point_filename()
            path = self.artifacts.validate(filename)
            self.serializer.write(self.store, path, BackupMode.FULL, label="Restoration Point")
            meta = self.artifacts.stat(filename)
        except (BackupError, OSError) as exc:
            logger.error("restoration_point_failed | filename=%s error=%s", filename, exc)
            if filename is not None:
                self.artifacts.release(filename)
            raise RestorationPointError(str(exc)) from exc
        logger.info("restoration_point_created | filename=%s bytes=%s", filename, meta.size_bytes)
        return meta

    def list(self) -> List[ArtifactMetadata]:
        return [a for a in self.artifacts.list() if a.is_restoration_point]
