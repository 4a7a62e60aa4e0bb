from __future__ import annotations

from pathlib import Path

import pytest
from sqlalchemy import create_engine, event

from billing_backup.core.backup.dialects import SQLiteDialect
from billing_backup.core.backup.dump import DumpSerializer
from billing_backup.core.backup.errors import FatalRestoreError
from billing_backup.core.backup.replay import RestoreEngine


def _rows(engine, table: str) -> list[tuple]:
    with engine.connect() as conn:
        return [tuple(r) for r in conn.exec_driver_sql(f"SELECT * FROM {table} ORDER BY id").all()]


class _RecordingDialect(SQLiteDialect):
    def __init__(self) -> None:
        self.calls: list = []

    def set_integrity(self, conn, value) -> None:
        self.calls.append(value)
        super().set_integrity(conn, value)


def test_round_trip_reproduces_rows(store_engine, empty_store) -> None:
    dump = DumpSerializer().serialize(store_engine)

    result = RestoreEngine().replay_text(empty_store, dump)

    assert result.failed == 0
    assert result.applied > 0
    for table in ("users", "invoices", "audit_logs"):
        assert _rows(empty_store, table) == _rows(store_engine, table)
    # Values with quotes, semicolons and newlines survive
    notes = [r[3] for r in _rows(empty_store, "invoices")]
    assert notes == ["paid; thanks", "line1\nline2"]


def test_replay_is_idempotent(store_engine, store_factory) -> None:
    dump = DumpSerializer().serialize(store_engine)
    first = store_factory("first.db")
    second = store_factory("second.db")

    RestoreEngine().replay_text(first, dump)
    RestoreEngine().replay_text(second, dump)
    # Replaying again over existing tables drops and recreates them
    again = RestoreEngine().replay_text(second, dump)

    assert again.failed == 0
    for table in ("users", "invoices", "audit_logs"):
        assert _rows(first, table) == _rows(second, table)


def test_restore_replaces_current_state(store_engine, tmp_path: Path) -> None:
    dump_path = tmp_path / "snapshot.sql"
    DumpSerializer().write(store_engine, dump_path)
    with store_engine.begin() as conn:
        conn.exec_driver_sql("DELETE FROM invoices")
        conn.exec_driver_sql("INSERT INTO users (id, name) VALUES (3, 'Later')")

    RestoreEngine().restore(store_engine, dump_path)

    assert [r[0] for r in _rows(store_engine, "users")] == [1, 2]
    assert len(_rows(store_engine, "invoices")) == 2


def test_failing_statement_is_recorded_and_others_apply(empty_store) -> None:
    lines = ["CREATE TABLE t (id INTEGER PRIMARY KEY, v TEXT);"]
    lines += [f"INSERT INTO t VALUES ({i}, 'v{i}');" for i in range(1, 6)]
    lines.append("INSERT INTO missing_table VALUES (1);")
    lines += [f"INSERT INTO t VALUES ({i}, 'v{i}');" for i in range(6, 9)]
    source = "\n".join(lines) + "\n"

    result = RestoreEngine().replay_text(empty_store, source)

    assert result.total == 10
    assert result.applied == 9
    assert result.failed == 1
    assert result.has_warnings
    failure = result.failures[0]
    assert failure.line == 7
    assert failure.table == "missing_table"
    assert "missing_table" in failure.message
    assert failure.describe().startswith("line 7 (table missing_table): ")
    assert len(_rows(empty_store, "t")) == 8


def test_transaction_markers_are_skipped(empty_store) -> None:
    source = "BEGIN TRANSACTION;\nCREATE TABLE t (id INTEGER PRIMARY KEY);\nINSERT INTO t VALUES (1);\nCOMMIT;\n"

    result = RestoreEngine().replay_text(empty_store, source)

    assert result.skipped == 2
    assert result.applied == 2


def test_colon_inside_string_is_not_a_bind_parameter(empty_store) -> None:
    source = "CREATE TABLE t (id INTEGER PRIMARY KEY, v TEXT);\nINSERT INTO t VALUES (1, 'at 10:30 :name');\n"

    result = RestoreEngine().replay_text(empty_store, source)

    assert result.failed == 0
    assert _rows(empty_store, "t") == [(1, "at 10:30 :name")]


def test_integrity_setting_is_restored_even_with_failures(store_factory) -> None:
    store = store_factory("fk_on.db")

    @event.listens_for(store, "connect")
    def _fk_on(dbapi_conn, _record) -> None:
        dbapi_conn.execute("PRAGMA foreign_keys = ON")

    dialect = _RecordingDialect()
    source = "PRAGMA foreign_keys = OFF;\nINSERT INTO nowhere VALUES (1);\n"

    result = RestoreEngine(dialect).replay_text(store, source)

    assert result.failed == 1
    # relaxed first, then put back to the value read before the replay
    assert dialect.calls == [0, 1]


def test_unreachable_store_is_fatal(tmp_path: Path) -> None:
    engine = create_engine(f"sqlite:///{tmp_path / 'no' / 'such' / 'dir.db'}")
    with pytest.raises(FatalRestoreError) as excinfo:
        RestoreEngine().replay_text(engine, "SELECT 1;")
    assert "unreachable" in excinfo.value.public_message


def test_unreadable_artifact_is_fatal(empty_store, tmp_path: Path) -> None:
    path = tmp_path / "binary.sql"
    path.write_bytes(b"\xff\xfe\x00 not utf-8")
    with pytest.raises(FatalRestoreError):
        RestoreEngine().restore(empty_store, path)
