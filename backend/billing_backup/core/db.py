"""Catalog database configuration and session management.

The catalog holds the operation log only. It is a SQLite file named
`backup_catalog.db` under `CATALOG_DB_DIR` (default `/app/db`), kept apart
from the live data store so that replaying a dump can never drop the log
entry of the restore that is running.
"""

from typing import Generator
from pathlib import Path
import logging
import os

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker, declarative_base

from billing_backup.core.config import get_settings

DEFAULT_DB_FILENAME = "backup_catalog.db"

logger = logging.getLogger(__name__)


def _ensure_dir(path: Path) -> tuple[bool, str]:
    try:
        if not path.exists():
            logger.warning("Catalog dir does not exist: %s. Attempting to create it", path)
        path.mkdir(parents=True, exist_ok=True)
        if not os.access(path, os.W_OK):
            return False, "directory not writable"
        return True, ""
    except OSError as exc:  # pragma: no cover - safety net
        return False, str(exc)


def _build_sqlite_url(db_dir: Path) -> str:
    db_file = db_dir / DEFAULT_DB_FILENAME
    logger.info("Catalog file path: %s", db_file)
    # `sqlite:///` + absolute path results in four slashes (sqlite:////...) which SQLAlchemy expects
    return f"sqlite:///{db_file.resolve()}"


def resolve_sql_echo() -> bool | str:
    """Resolve SQL echo flag from environment.

    Supports the following values for `LOG_SQL_ECHO`:
    - "" (unset or empty): returns False (no SQL echo)
    - truthy ("1", "true", "yes", "on"): returns True (INFO-level statements)
    - "debug": returns "debug" (DEBUG-level with parameter values)
    Any other value defaults to False.
    """
    raw = os.getenv("LOG_SQL_ECHO", "").strip().lower()
    if raw in ("1", "true", "yes", "on"):
        return True
    if raw in ("debug", "2", "verbose"):
        return "debug"
    return False


_engine: Engine | None = None
SessionLocal: sessionmaker | None = None

# Create base class for models
Base = declarative_base()


def get_engine() -> Engine:
    """Create the catalog engine lazily.

    Ensures the catalog directory exists and is writable. If not, logs an error and exits.
    """
    global _engine, SessionLocal
    if _engine is not None:
        return _engine

    db_dir = Path(get_settings().catalog_db_dir)
    ok, reason = _ensure_dir(db_dir)
    if not ok:
        logger.error("Catalog directory '%s' is not usable: %s", db_dir, reason)
        raise SystemExit(1)

    sqlite_url = _build_sqlite_url(db_dir)
    _engine = create_engine(
        sqlite_url,
        connect_args={"check_same_thread": False},  # Required for SQLite
        echo=resolve_sql_echo(),
    )

    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=_engine)
    return _engine


def get_session_factory() -> sessionmaker:
    """Return the catalog session factory, initializing the engine if needed."""
    if SessionLocal is None:
        get_engine()
        assert SessionLocal is not None
    return SessionLocal


def get_session() -> Generator[Session, None, None]:
    """Get catalog database session."""
    db = get_session_factory()()
    try:
        yield db
    finally:
        db.close()


def init_db() -> None:
    """Initialize catalog tables.

    Only creates missing tables; the operation log is append-only and is never
    dropped by application code.
    """
    from billing_backup.models import OperationLog  # noqa: F401

    logger.info("init_db: creating catalog tables if missing")
    engine = get_engine()
    Base.metadata.create_all(bind=engine)
    logger.info("init_db: ensured catalog tables exist")
