"""Flat directory of backup artifacts.

Every public method validates the filename it is given, on every call; no
method trusts a path that was validated earlier.
"""

from __future__ import annotations

import logging
import os
import re
import secrets
import tempfile
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import BinaryIO, List, Optional

from billing_backup.core.backup.errors import (
    ArtifactNotFoundError,
    InvalidPathError,
    UnsupportedArtifactError,
    UploadTooLargeError,
)
from billing_backup.core.config import DEFAULT_MAX_UPLOAD_BYTES
from billing_backup.domain.enums import ArtifactKind


logger = logging.getLogger(__name__)

DUMP_EXTENSION = ".sql"
ARCHIVE_EXTENSION = ".zip"
TIMESTAMP_FORMAT = "%Y-%m-%d_%H-%M-%S"
RESTORATION_POINT_PREFIX = "restoration_point_before_restore_"
UPLOADED_PREFIX = "uploaded_"

_UNSAFE_CHARS = re.compile(r"[^a-zA-Z0-9._-]")
_ENCODED_TRAVERSAL = re.compile(r"%(2e|2f|5c|00)", re.IGNORECASE)
_CHUNK = 1024 * 1024


@dataclass(frozen=True)
class ArtifactMetadata:
    filename: str
    size_bytes: int
    modified_at: datetime
    kind: ArtifactKind

    @property
    def is_restoration_point(self) -> bool:
        return self.filename.startswith(RESTORATION_POINT_PREFIX)


@dataclass(frozen=True)
class StorageSummary:
    total_backups: int
    storage_used_bytes: int
    last_backup: Optional[ArtifactMetadata]


def kind_for(filename: str) -> Optional[ArtifactKind]:
    lower = filename.lower()
    if lower.endswith(DUMP_EXTENSION):
        return ArtifactKind.DUMP_ONLY
    if lower.endswith(ARCHIVE_EXTENSION):
        return ArtifactKind.DUMP_WITH_ASSETS
    return None


def sanitize_filename(name: str) -> str:
    """Drop every character outside `[a-zA-Z0-9._-]`."""
    return _UNSAFE_CHARS.sub("", name)


def timestamp(now: Optional[datetime] = None) -> str:
    return (now or datetime.now()).strftime(TIMESTAMP_FORMAT)


class ArtifactStore:
    """Listing, retrieval, upload and deletion of artifacts in one directory."""

    def __init__(self, root: str | Path, *, max_upload_bytes: int = DEFAULT_MAX_UPLOAD_BYTES) -> None:
        self.root = Path(root)
        self.max_upload_bytes = max_upload_bytes

    def ensure_root(self) -> Path:
        self.root.mkdir(parents=True, exist_ok=True)
        return self.root

    def validate(self, filename: str) -> Path:
        """Return the absolute path for `filename` or raise `InvalidPathError`."""
        if not filename or not isinstance(filename, str):
            raise InvalidPathError("empty filename")
        if (
            ".." in filename
            or "/" in filename
            or "\\" in filename
            or "\x00" in filename
            or _ENCODED_TRAVERSAL.search(filename)
            or os.path.isabs(filename)
            or filename.startswith(".")
        ):
            raise InvalidPathError(f"rejected filename {filename!r}")
        root = self.root.resolve()
        candidate = (root / filename).resolve()
        if candidate.parent != root:
            raise InvalidPathError(f"filename resolves outside artifact dir: {filename!r}")
        return candidate

    def list(self) -> List[ArtifactMetadata]:
        """Return `.sql` and `.zip` artifacts, newest first."""
        if not self.root.is_dir():
            return []
        items: List[ArtifactMetadata] = []
        for entry in self.root.iterdir():
            kind = kind_for(entry.name)
            if kind is None or entry.name.startswith(".") or not entry.is_file():
                continue
            try:
                stat = entry.stat()
            except OSError:
                continue
            items.append(
                ArtifactMetadata(
                    filename=entry.name,
                    size_bytes=stat.st_size,
                    modified_at=datetime.fromtimestamp(stat.st_mtime),
                    kind=kind,
                )
            )
        items.sort(key=lambda a: (a.modified_at, a.filename), reverse=True)
        return items

    def summary(self) -> StorageSummary:
        items = self.list()
        return StorageSummary(
            total_backups=len(items),
            storage_used_bytes=sum(a.size_bytes for a in items),
            last_backup=items[0] if items else None,
        )

    def stat(self, filename: str) -> ArtifactMetadata:
        path = self.validate(filename)
        kind = kind_for(filename)
        if kind is None:
            raise UnsupportedArtifactError(f"unsupported artifact {filename!r}")
        if not path.is_file():
            raise ArtifactNotFoundError(f"artifact {filename!r} not found")
        st = path.stat()
        return ArtifactMetadata(
            filename=filename,
            size_bytes=st.st_size,
            modified_at=datetime.fromtimestamp(st.st_mtime),
            kind=kind,
        )

    def path_for(self, filename: str) -> Path:
        """Validated path of an existing artifact."""
        path = self.validate(filename)
        if not path.is_file():
            raise ArtifactNotFoundError(f"artifact {filename!r} not found")
        return path

    def open(self, filename: str) -> BinaryIO:
        return open(self.path_for(filename), "rb")

    def delete(self, filename: str) -> None:
        path = self.path_for(filename)
        path.unlink()
        logger.info("artifact_deleted | filename=%s", filename)

    def check_size(self, declared_size: Optional[int]) -> None:
        if declared_size is not None and declared_size > self.max_upload_bytes:
            raise UploadTooLargeError(self.max_upload_bytes)

    def write(self, filename: str, stream: BinaryIO, declared_size: Optional[int] = None) -> ArtifactMetadata:
        """Persist an uploaded artifact.

        Size and extension are checked before any byte is written; the actual
        byte count is enforced again while streaming.
        """
        self.check_size(declared_size)
        if kind_for(filename) is None:
            raise UnsupportedArtifactError(f"unsupported artifact {filename!r}")
        path = self.validate(filename)
        self.ensure_root()

        fd, tmp_name = tempfile.mkstemp(prefix=".tmp-", suffix=path.suffix, dir=str(self.root))
        written = 0
        try:
            with os.fdopen(fd, "wb") as out:
                while True:
                    chunk = stream.read(_CHUNK)
                    if not chunk:
                        break
                    written += len(chunk)
                    if written > self.max_upload_bytes:
                        raise UploadTooLargeError(self.max_upload_bytes)
                    out.write(chunk)
            os.replace(tmp_name, path)
        except BaseException:
            try:
                os.unlink(tmp_name)
            except FileNotFoundError:
                pass
            raise
        logger.info("artifact_written | filename=%s bytes=%s", filename, written)
        return self.stat(filename)

    def claim(self, filename: str) -> str:
        """Reserve `filename` with an exclusive create and return the name taken.

        A name that already exists gets a random suffix before its extension
        until the create succeeds. The empty placeholder is replaced by the
        writer or dropped with `release`.
        """
        self.ensure_root()
        stem, extension = os.path.splitext(filename)
        candidate = filename
        while True:
            path = self.validate(candidate)
            try:
                fd = os.open(path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
            except FileExistsError:
                candidate = f"{stem}_{secrets.token_hex(3)}{extension}"
                continue
            os.close(fd)
            return candidate

    def release(self, filename: str) -> None:
        """Remove a claimed name that never received its content."""
        try:
            self.validate(filename).unlink()
        except FileNotFoundError:
            return
        logger.info("artifact_released | filename=%s", filename)

    def new_filename(self, stem: str, extension: str = DUMP_EXTENSION, *, now: Optional[datetime] = None) -> str:
        return self.claim(f"{stem}{timestamp(now)}{extension}")

    def backup_filename(self, prefix: str, *, now: Optional[datetime] = None) -> str:
        return self.new_filename(f"{sanitize_filename(prefix)}_backup_", now=now)

    def restoration_point_filename(self, *, now: Optional[datetime] = None) -> str:
        return self.new_filename(RESTORATION_POINT_PREFIX, now=now)

    def uploaded_filename(self, original: str, *, now: Optional[datetime] = None) -> str:
        safe = sanitize_filename(os.path.basename(original.replace("\\", "/"))).lstrip(".")
        safe = re.sub(r"\.{2,}", ".", safe)
        if kind_for(safe) is None:
            raise UnsupportedArtifactError(f"unsupported artifact {original!r}")
        return self.claim(f"{UPLOADED_PREFIX}{timestamp(now)}_{safe}")
