from __future__ import annotations

from typing import Any, Generator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool
from sqlalchemy.orm import Session, sessionmaker

from billing_backup.main import app
from billing_backup.api.deps import get_task_runner
from billing_backup.core.db import Base, get_session
from billing_backup.core.store import get_store


class _DummyScheduler:
    def __init__(self) -> None:
        self.jobs: list[dict[str, Any]] = []

    def start(self) -> None:  # noqa: D401
        """No-op start."""
        return None

    def shutdown(self) -> None:  # noqa: D401
        """No-op shutdown."""
        return None

    def add_job(self, **kwargs: Any) -> None:
        self.jobs.append(kwargs)


ADMIN_HEADERS = {"X-Actor-Id": "admin-1", "X-Actor-Permissions": "backup.create,backup.restore"}


@pytest.fixture
def db_session_override() -> Generator[Session, None, None]:
    """Provide a test catalog session and override FastAPI dependency."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    # Ensure models are registered with Base before creating tables
    import billing_backup.models  # noqa: F401
    Base.metadata.create_all(bind=engine)

    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def task_runner() -> _DummyScheduler:
    return _DummyScheduler()


@pytest.fixture
def client(
    db_session_override: Session,
    store_engine: Engine,
    settings,
    task_runner: _DummyScheduler,
    monkeypatch: pytest.MonkeyPatch,
) -> Generator[TestClient, None, None]:
    """FastAPI TestClient with catalog, store and scheduler overrides."""

    def override_get_session() -> Generator[Session, None, None]:
        try:
            yield db_session_override
        finally:
            pass

    app.dependency_overrides[get_session] = override_get_session
    app.dependency_overrides[get_store] = lambda: store_engine
    app.dependency_overrides[get_task_runner] = lambda: task_runner

    # Avoid touching the real catalog or starting APScheduler during app startup
    monkeypatch.setattr("billing_backup.main.init_db", lambda: None, raising=True)
    monkeypatch.setattr("billing_backup.main.get_scheduler", lambda: _DummyScheduler(), raising=True)
    monkeypatch.setattr("billing_backup.main.dispose_store", lambda: None, raising=True)

    with TestClient(app, headers=ADMIN_HEADERS) as test_client:
        yield test_client

    app.dependency_overrides.clear()
