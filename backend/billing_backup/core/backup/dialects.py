"""Per-backend SQL text conventions used by the dump serializer and the replayer.

A dialect knows how to quote identifiers, render Python values as SQL literals,
fetch the native DDL of a table, and toggle referential-integrity enforcement
on a live connection. Dialects are stateless; pick one with `get_dialect()`.
"""

from __future__ import annotations

import binascii
import datetime as dt
import math
from decimal import Decimal
from typing import Any, List

from sqlalchemy import MetaData, Table, text
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.schema import CreateIndex, CreateTable


class DumpDialect:
    """ANSI-flavoured defaults; also used for backends without a dedicated dialect."""

    name = "generic"
    backslash_escapes = False
    transaction_start = "START TRANSACTION"
    relaxed_value: Any = None

    def quote_identifier(self, name: str) -> str:
        return '"' + name.replace('"', '""') + '"'

    def escape_string(self, value: str) -> str:
        return "'" + value.replace("'", "''") + "'"

    def bytes_literal(self, value: bytes) -> str:
        return "X'" + binascii.hexlify(value).decode("ascii").upper() + "'"

    def bool_literal(self, value: bool) -> str:
        return "1" if value else "0"

    def literal(self, value: Any) -> str:
        """Render one scalar as a SQL literal. `None` becomes the bare `NULL` marker."""
        if value is None:
            return "NULL"
        if isinstance(value, bool):
            return self.bool_literal(value)
        if isinstance(value, int):
            return str(value)
        if isinstance(value, float):
            if math.isfinite(value):
                return repr(value)
            return self.escape_string(repr(value))
        if isinstance(value, Decimal):
            return str(value)
        if isinstance(value, (bytes, bytearray, memoryview)):
            return self.bytes_literal(bytes(value))
        if isinstance(value, dt.datetime):
            return self.escape_string(value.isoformat(sep=" "))
        if isinstance(value, (dt.date, dt.time)):
            return self.escape_string(value.isoformat())
        if isinstance(value, dt.timedelta):
            return self.escape_string(str(value))
        return self.escape_string(str(value))

    def preamble(self) -> List[str]:
        """Global directives emitted once, before the transaction marker."""
        return []

    def table_definition(self, conn: Connection, table: str) -> List[str]:
        """Return statements (without terminators) that recreate `table` from empty."""
        reflected = Table(table, MetaData(), autoload_with=conn)
        statements = [str(CreateTable(reflected).compile(dialect=conn.dialect)).strip()]
        for index in sorted(reflected.indexes, key=lambda idx: idx.name or ""):
            statements.append(str(CreateIndex(index).compile(dialect=conn.dialect)).strip())
        return statements

    def get_integrity(self, conn: Connection) -> Any:
        return None

    def set_integrity(self, conn: Connection, value: Any) -> None:
        return None

    def relax_integrity(self, conn: Connection) -> Any:
        """Disable FK enforcement and return the previous setting for `set_integrity`."""
        previous = self.get_integrity(conn)
        self.set_integrity(conn, self.relaxed_value)
        return previous


class MySQLDialect(DumpDialect):
    name = "mysql"
    backslash_escapes = True
    relaxed_value = 0

    _ESCAPES = {
        "\\": "\\\\",
        "'": "\\'",
        '"': '\\"',
        "\x00": "\\0",
        "\n": "\\n",
        "\r": "\\r",
        "\x1a": "\\Z",
    }

    def quote_identifier(self, name: str) -> str:
        return "`" + name.replace("`", "``") + "`"

    def escape_string(self, value: str) -> str:
        return "'" + "".join(self._ESCAPES.get(ch, ch) for ch in value) + "'"

    def preamble(self) -> List[str]:
        return ['SET SQL_MODE = "NO_AUTO_VALUE_ON_ZERO"', 'SET time_zone = "+00:00"']

    def table_definition(self, conn: Connection, table: str) -> List[str]:
        row = conn.execute(text(f"SHOW CREATE TABLE {self.quote_identifier(table)}")).first()
        if row is None:
            raise LookupError(f"no definition for {table}")
        return [str(row[1]).strip()]

    def get_integrity(self, conn: Connection) -> Any:
        return int(conn.execute(text("SELECT @@SESSION.foreign_key_checks")).scalar() or 0)

    def set_integrity(self, conn: Connection, value: Any) -> None:
        conn.execute(text(f"SET FOREIGN_KEY_CHECKS = {int(value)}"))


class SQLiteDialect(DumpDialect):
    name = "sqlite"
    transaction_start = "BEGIN TRANSACTION"
    relaxed_value = 0

    def preamble(self) -> List[str]:
        return ["PRAGMA foreign_keys = OFF"]

    def table_definition(self, conn: Connection, table: str) -> List[str]:
        create_sql = conn.execute(
            text("SELECT sql FROM sqlite_master WHERE type = 'table' AND name = :name"),
            {"name": table},
        ).scalar()
        if not create_sql:
            raise LookupError(f"no definition for {table}")
        statements = [str(create_sql).strip()]
        # Auto-indexes (UNIQUE / PRIMARY KEY) have NULL sql and are rebuilt by CREATE TABLE
        index_rows = conn.execute(
            text(
                "SELECT sql FROM sqlite_master "
                "WHERE type = 'index' AND tbl_name = :name AND sql IS NOT NULL ORDER BY name"
            ),
            {"name": table},
        ).all()
        statements.extend(str(r[0]).strip() for r in index_rows)
        return statements

    def get_integrity(self, conn: Connection) -> Any:
        return int(conn.execute(text("PRAGMA foreign_keys")).scalar() or 0)

    def set_integrity(self, conn: Connection, value: Any) -> None:
        conn.execute(text(f"PRAGMA foreign_keys = {'ON' if int(value) else 'OFF'}"))


class PostgreSQLDialect(DumpDialect):
    name = "postgresql"
    relaxed_value = "replica"

    def bytes_literal(self, value: bytes) -> str:
        return "'\\x" + binascii.hexlify(value).decode("ascii") + "'::bytea"

    def bool_literal(self, value: bool) -> str:
        return "TRUE" if value else "FALSE"

    def preamble(self) -> List[str]:
        return ["SET client_encoding = 'UTF8'", "SET TIME ZONE 'UTC'"]

    def get_integrity(self, conn: Connection) -> Any:
        return str(conn.execute(text("SHOW session_replication_role")).scalar() or "origin")

    def set_integrity(self, conn: Connection, value: Any) -> None:
        conn.execute(text(f"SET session_replication_role = {self.escape_string(str(value))}"))


_DIALECTS = {
    "mysql": MySQLDialect,
    "mariadb": MySQLDialect,
    "sqlite": SQLiteDialect,
    "postgresql": PostgreSQLDialect,
}


def get_dialect(store: Engine | Connection | str) -> DumpDialect:
    """Return the dump dialect matching an engine, connection, or backend name."""
    if isinstance(store, str):
        backend = store
    else:
        backend = store.dialect.name
    return _DIALECTS.get(backend, DumpDialect)()
