"""SQL dump serializer.

Walks every table of the live store and produces a replayable text dump:

    -- <tool> Database Backup
    -- Generated on: 2025-01-15 12:00:00
    -- Backup Type: Full

    <global directives>;
    START TRANSACTION;

    -- Table structure for table `users`
    DROP TABLE IF EXISTS `users`;
    CREATE TABLE `users` (...);

    -- Dumping data for table `users`
    INSERT INTO `users` (`id`, `name`) VALUES
    (1, 'Ama');

    COMMIT;

The header is informational; the replayer never depends on it.
"""

from __future__ import annotations

import logging
import os
import tempfile
from datetime import datetime
from pathlib import Path
from typing import Iterable, List, Optional, Sequence

from sqlalchemy import inspect, text
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import SQLAlchemyError

from billing_backup.core.backup.dialects import DumpDialect, get_dialect
from billing_backup.core.backup.errors import SerializationError
from billing_backup.domain.enums import BackupMode


logger = logging.getLogger(__name__)

# Operational history that is not needed to rebuild business state.
INCREMENTAL_EXCLUDED_TABLES = frozenset({"audit_logs", "backup_logs"})

DEFAULT_INSERT_BATCH = 500


class DumpSerializer:
    """Serialize a store's structure and rows into dump text."""

    def __init__(
        self,
        dialect: Optional[DumpDialect] = None,
        *,
        tool_name: str = "QuickBill 305",
        insert_batch: int = DEFAULT_INSERT_BATCH,
        excluded_tables: Iterable[str] = INCREMENTAL_EXCLUDED_TABLES,
    ) -> None:
        self.dialect = dialect
        self.tool_name = tool_name
        self.insert_batch = max(1, int(insert_batch))
        self.excluded_tables = frozenset(excluded_tables)

    def serialize(self, store: Engine, mode: BackupMode = BackupMode.FULL, *, label: Optional[str] = None) -> str:
        """Return the full dump text or raise `SerializationError`."""
        try:
            with store.connect() as conn:
                return self._serialize(conn, BackupMode(mode), label)
        except SerializationError:
            raise
        except SQLAlchemyError as exc:
            raise SerializationError(None, exc) from exc

    def write(
        self,
        store: Engine,
        destination: str | Path,
        mode: BackupMode = BackupMode.FULL,
        *,
        label: Optional[str] = None,
    ) -> int:
        """Serialize and write to `destination`; returns the byte size.

        The text is fully built before anything touches the disk, and it is
        written to a temp file in the same directory and renamed into place, so
        a failed call never leaves a partial dump behind.
        """
        dump_text = self.serialize(store, mode, label=label)
        try:
            return write_atomic(Path(destination), dump_text.encode("utf-8"))
        except OSError as exc:
            raise SerializationError(None, f"failed to write backup file: {exc}") from exc

    def _serialize(self, conn: Connection, mode: BackupMode, label: Optional[str]) -> str:
        dialect = self.dialect or get_dialect(conn)
        tables = list(inspect(conn).get_table_names())
        logger.info("dump_start | dialect=%s mode=%s tables=%s", dialect.name, mode.value, len(tables))

        title = f"{self.tool_name} Database Backup"
        if label:
            title += f" ({label})"
        parts: List[str] = [
            f"-- {title}\n",
            f"-- Generated on: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}\n",
            f"-- Backup Type: {mode.value}\n\n",
        ]
        for directive in dialect.preamble():
            parts.append(f"{directive};\n")
        parts.append(f"{dialect.transaction_start};\n\n")

        row_total = 0
        for table in tables:
            parts.append(self._structure_block(conn, dialect, table))
            if mode == BackupMode.INCREMENTAL and table in self.excluded_tables:
                logger.debug("dump_table_data_skipped | table=%s", table)
                continue
            block, count = self._data_block(conn, dialect, table)
            parts.append(block)
            row_total += count

        parts.append("COMMIT;\n")
        logger.info("dump_done | tables=%s rows=%s", len(tables), row_total)
        return "".join(parts)

    def _structure_block(self, conn: Connection, dialect: DumpDialect, table: str) -> str:
        quoted = dialect.quote_identifier(table)
        try:
            definition = dialect.table_definition(conn, table)
        except (SQLAlchemyError, LookupError) as exc:
            raise SerializationError(table, exc) from exc
        lines = [
            f"\n-- Table structure for table {quoted}\n",
            f"DROP TABLE IF EXISTS {quoted};\n",
        ]
        lines.extend(f"{stmt.rstrip(';')};\n" for stmt in definition)
        lines.append("\n")
        return "".join(lines)

    def _data_block(self, conn: Connection, dialect: DumpDialect, table: str) -> tuple[str, int]:
        quoted = dialect.quote_identifier(table)
        try:
            result = conn.execute(text(f"SELECT * FROM {quoted}"))
            columns = list(result.keys())
            rows = result.all()
        except SQLAlchemyError as exc:
            raise SerializationError(table, exc) from exc

        if not rows:
            return "", 0

        column_list = ", ".join(dialect.quote_identifier(c) for c in columns)
        chunks = [f"-- Dumping data for table {quoted}\n"]
        for start in range(0, len(rows), self.insert_batch):
            batch = rows[start:start + self.insert_batch]
            values = ",\n".join(self._row_literal(dialect, row) for row in batch)
            chunks.append(f"INSERT INTO {quoted} ({column_list}) VALUES\n{values};\n")
        chunks.append("\n")
        return "".join(chunks), len(rows)

    @staticmethod
    def _row_literal(dialect: DumpDialect, row: Sequence) -> str:
        return "(" + ", ".join(dialect.literal(value) for value in row) + ")"


def write_atomic(destination: Path, payload: bytes) -> int:
    """Write bytes via temp file + rename in the destination directory."""
    destination.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=".tmp-", suffix=destination.suffix, dir=str(destination.parent))
    try:
        with os.fdopen(fd, "wb") as fh:
            fh.write(payload)
            fh.flush()
            os.fsync(fh.fileno())
        os.replace(tmp_name, destination)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except FileNotFoundError:
            pass
        raise
    return len(payload)
