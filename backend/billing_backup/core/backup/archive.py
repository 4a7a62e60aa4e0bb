"""ZIP packaging of a dump together with the uploads tree, and the reverse."""

from __future__ import annotations

import logging
import os
import shutil
import tempfile
import zipfile
from pathlib import Path, PurePosixPath

from billing_backup.core.backup.errors import AssetReadError, ContainerError, ContainerOpenError, InvalidPathError


logger = logging.getLogger(__name__)

DUMP_ENTRY_NAME = "database_backup.sql"
ASSET_PREFIX = "uploads"


class ArchivePackager:
    """Bundle a dump file and an asset directory into one ZIP container."""

    def pack(self, dump_path: str | Path, asset_root: str | Path, dest_path: str | Path) -> int:
        """Write `dest_path` and return its size in bytes.

        The container is assembled under a temp name next to `dest_path` and
        renamed once every entry has been added; on any error the temp file is
        removed and nothing appears at `dest_path`.
        """
        dump_path = Path(dump_path)
        asset_root = Path(asset_root)
        dest_path = Path(dest_path)

        try:
            fd, tmp_name = tempfile.mkstemp(prefix=".tmp-", suffix=".zip", dir=str(dest_path.parent))
            os.close(fd)
            zf = zipfile.ZipFile(tmp_name, "w", compression=zipfile.ZIP_DEFLATED)
        except OSError as exc:
            raise ContainerOpenError(f"cannot open archive next to {dest_path.name}: {exc}") from exc

        asset_count = 0
        try:
            with zf:
                _add_entry(zf, dump_path, DUMP_ENTRY_NAME)
                if asset_root.is_dir():
                    for file_path, arcname in _iter_assets(asset_root):
                        _add_entry(zf, file_path, arcname)
                        asset_count += 1
                else:
                    logger.info("archive_assets_missing | root=%s", asset_root)
            os.replace(tmp_name, dest_path)
            size = dest_path.stat().st_size
        except OSError as exc:
            _discard(tmp_name)
            raise ContainerError(f"cannot finalize archive {dest_path.name}: {exc}") from exc
        except BaseException:
            _discard(tmp_name)
            raise

        logger.info("archive_written | archive=%s assets=%s bytes=%s", dest_path.name, asset_count, size)
        return size

    def extract_assets(self, archive_path: str | Path, asset_root: str | Path) -> int:
        """Extract the `uploads/` members of an archive into `asset_root`.

        Every member is checked before anything is written; a member whose path
        would land outside `asset_root` aborts the whole extraction.
        """
        archive_path = Path(archive_path)
        root = Path(asset_root).resolve()

        try:
            zf = zipfile.ZipFile(archive_path)
        except (OSError, zipfile.BadZipFile) as exc:
            raise ContainerOpenError(f"cannot open {archive_path.name}: {exc}", public_message="Cannot open ZIP file") from exc

        written = 0
        with zf:
            plan: list[tuple[zipfile.ZipInfo, Path]] = []
            for info in zf.infolist():
                member = PurePosixPath(info.filename)
                if not member.parts or member.parts[0] != ASSET_PREFIX or info.is_dir():
                    continue
                relative = PurePosixPath(*member.parts[1:])
                if not relative.parts or ".." in relative.parts or member.is_absolute() or "\\" in info.filename:
                    raise InvalidPathError(f"unsafe archive member {info.filename!r}")
                target = (root / Path(*relative.parts)).resolve()
                if root != target and root not in target.parents:
                    raise InvalidPathError(f"archive member escapes asset root: {info.filename!r}")
                plan.append((info, target))

            for info, target in plan:
                target.parent.mkdir(parents=True, exist_ok=True)
                with zf.open(info) as src, open(target, "wb") as dst:
                    shutil.copyfileobj(src, dst)
                written += 1

        logger.info("archive_assets_extracted | archive=%s files=%s", archive_path.name, written)
        return written


def _iter_assets(asset_root: Path):
    """Yield `(path, arcname)` for every regular file below `asset_root`, sorted."""
    for dirpath, dirnames, filenames in os.walk(asset_root):
        dirnames.sort()
        for name in sorted(filenames):
            file_path = Path(dirpath) / name
            if not file_path.is_file():
                continue
            relative = file_path.relative_to(asset_root).as_posix()
            yield file_path, f"{ASSET_PREFIX}/{relative}"


def _add_entry(zf: zipfile.ZipFile, file_path: Path, arcname: str) -> None:
    # ValueError: mtime before 1980; LargeZipFile: ZIP64 disabled
    try:
        zf.write(file_path, arcname)
    except (OSError, ValueError, zipfile.LargeZipFile) as exc:
        raise AssetReadError(str(file_path), exc) from exc


def _discard(tmp_name: str) -> None:
    try:
        os.unlink(tmp_name)
    except FileNotFoundError:
        pass
