"""Replay a SQL dump into the live store.

Each statement runs on its own in autocommit mode: a failing statement is
recorded and skipped, and everything applied before and after it stays in
place. Referential-integrity enforcement is relaxed for the duration of the
replay so tables can be recreated in file order, and is always put back to its
previous value afterwards.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from billing_backup.core.backup.dialects import DumpDialect, get_dialect
from billing_backup.core.backup.errors import FatalRestoreError
from billing_backup.core.backup.statements import Statement, split_statements


logger = logging.getLogger(__name__)

# Keep failure messages short enough for the operation log
_MAX_ERROR_CHARS = 300


@dataclass(frozen=True)
class StatementFailure:
    line: int
    table: Optional[str]
    message: str

    def describe(self) -> str:
        where = f"line {self.line}"
        if self.table:
            where += f" (table {self.table})"
        return f"{where}: {self.message}"


@dataclass
class ReplayResult:
    applied: int = 0
    failed: int = 0
    skipped: int = 0
    failures: List[StatementFailure] = field(default_factory=list)

    @property
    def has_warnings(self) -> bool:
        return self.failed > 0

    @property
    def total(self) -> int:
        return self.applied + self.failed


def _short_error(exc: BaseException) -> str:
    orig = getattr(exc, "orig", None)
    raw = str(orig if orig is not None else exc).strip()
    message = raw.splitlines()[0] if raw else type(exc).__name__
    if len(message) > _MAX_ERROR_CHARS:
        message = message[:_MAX_ERROR_CHARS] + "..."
    return message


class RestoreEngine:
    """Parse a dump artifact and replay it statement by statement."""

    def __init__(self, dialect: Optional[DumpDialect] = None) -> None:
        self.dialect = dialect

    def restore(self, store: Engine, artifact_path: str | Path) -> ReplayResult:
        """Replay the dump at `artifact_path` into `store`."""
        path = Path(artifact_path)
        try:
            source = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            raise FatalRestoreError(f"cannot read {path.name}: {exc}") from exc
        return self.replay_text(store, source)

    def replay_text(self, store: Engine, source: str) -> ReplayResult:
        dialect = self.dialect or get_dialect(store)
        statements = split_statements(source, backslash_escapes=dialect.backslash_escapes)

        try:
            conn = store.connect().execution_options(isolation_level="AUTOCOMMIT")
        except SQLAlchemyError as exc:
            raise FatalRestoreError(
                f"store unreachable: {exc}",
                public_message="Database is unreachable; restore was not attempted",
            ) from exc

        result = ReplayResult()
        with conn:
            try:
                previous = dialect.relax_integrity(conn)
            except SQLAlchemyError as exc:
                raise FatalRestoreError(
                    f"cannot relax integrity checks: {exc}",
                    public_message="Database refused to prepare for restore; nothing was changed",
                ) from exc
            logger.info(
                "replay_start | dialect=%s statements=%s integrity_before=%s",
                dialect.name,
                len(statements),
                previous,
            )
            try:
                for statement in statements:
                    self._apply(conn, statement, result)
            finally:
                try:
                    dialect.set_integrity(conn, previous)
                except SQLAlchemyError:
                    logger.exception("replay_integrity_restore_failed | value=%s", previous)
                    raise

        if result.has_warnings:
            logger.warning(
                "replay_done_with_errors | applied=%s failed=%s skipped=%s",
                result.applied,
                result.failed,
                result.skipped,
            )
        else:
            logger.info("replay_done | applied=%s skipped=%s", result.applied, result.skipped)
        return result

    def _apply(self, conn, statement: Statement, result: ReplayResult) -> None:
        if statement.is_transaction_control:
            result.skipped += 1
            return
        try:
            conn.exec_driver_sql(statement.sql)
        except SQLAlchemyError as exc:
            failure = StatementFailure(line=statement.line, table=statement.table, message=_short_error(exc))
            result.failed += 1
            result.failures.append(failure)
            logger.error("replay_statement_failed | %s", failure.describe())
            return
        result.applied += 1
