"""Root conftest for tests directory."""

from __future__ import annotations

from pathlib import Path
from typing import Generator

import pytest
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from billing_backup.core.backup.artifacts import ArtifactStore
from billing_backup.core.config import Settings, get_settings
from billing_backup.core.db import Base
from billing_backup.core.maintenance import MaintenanceLock


_STORE_SCHEMA = [
    "CREATE TABLE users (id INTEGER PRIMARY KEY, name TEXT NOT NULL, email TEXT)",
    "CREATE TABLE invoices ("
    "id INTEGER PRIMARY KEY, "
    "user_id INTEGER NOT NULL REFERENCES users(id), "
    "amount NUMERIC, "
    "note TEXT)",
    "CREATE INDEX ix_invoices_user ON invoices (user_id)",
    "CREATE TABLE audit_logs (id INTEGER PRIMARY KEY, action TEXT)",
]

_STORE_ROWS = [
    "INSERT INTO users (id, name, email) VALUES (1, 'Ama', NULL)",
    "INSERT INTO users (id, name, email) VALUES (2, 'O''Brien', 'ob@example.com')",
    "INSERT INTO invoices (id, user_id, amount, note) VALUES (1, 1, 12.5, 'paid; thanks')",
    "INSERT INTO invoices (id, user_id, amount, note) VALUES (2, 2, 7, 'line1' || char(10) || 'line2')",
    "INSERT INTO audit_logs (id, action) VALUES (1, 'login')",
]


def make_store(path: Path, *, seed: bool = True) -> Engine:
    engine = create_engine(f"sqlite:///{path}", connect_args={"check_same_thread": False})
    if seed:
        with engine.begin() as conn:
            for stmt in _STORE_SCHEMA + _STORE_ROWS:
                conn.exec_driver_sql(stmt)
    return engine


@pytest.fixture()
def db_session() -> Session:
    """Provide a test catalog session."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    # Ensure models are imported
    import billing_backup.models  # noqa: F401
    Base.metadata.create_all(bind=engine)
    try:
        yield TestingSessionLocal()
    finally:
        Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def settings(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Generator[Settings, None, None]:
    """Settings pointing every directory into tmp_path."""
    monkeypatch.setenv("STORE_DATABASE_URL", f"sqlite:///{tmp_path / 'store.db'}")
    monkeypatch.setenv("CATALOG_DB_DIR", str(tmp_path / "db"))
    monkeypatch.setenv("BACKUP_DIR", str(tmp_path / "backups"))
    monkeypatch.setenv("UPLOADS_DIR", str(tmp_path / "uploads"))
    get_settings.cache_clear()
    try:
        yield get_settings()
    finally:
        get_settings.cache_clear()


@pytest.fixture()
def store_engine(tmp_path: Path) -> Generator[Engine, None, None]:
    """Seeded live store: users, invoices (FK to users) and audit_logs."""
    engine = make_store(tmp_path / "store.db")
    try:
        yield engine
    finally:
        engine.dispose()


@pytest.fixture()
def empty_store(tmp_path: Path) -> Generator[Engine, None, None]:
    engine = make_store(tmp_path / "empty_store.db", seed=False)
    try:
        yield engine
    finally:
        engine.dispose()


@pytest.fixture()
def artifact_store(settings: Settings) -> ArtifactStore:
    store = ArtifactStore(settings.backup_dir, max_upload_bytes=settings.max_upload_bytes)
    store.ensure_root()
    return store


@pytest.fixture()
def lock() -> MaintenanceLock:
    return MaintenanceLock()


@pytest.fixture()
def store_factory(tmp_path: Path):
    """Create extra SQLite stores; disposed at teardown."""
    created: list[Engine] = []

    def _make(name: str, *, seed: bool = False) -> Engine:
        engine = make_store(tmp_path / name, seed=seed)
        created.append(engine)
        return engine

    yield _make
    for engine in created:
        engine.dispose()
