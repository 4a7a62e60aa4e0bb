"""Live data store handle.

The store is the relational database being backed up and restored. It is
addressed by `STORE_DATABASE_URL` and is only ever handed to the backup
components as an explicit `Engine` argument.
"""

from __future__ import annotations

import logging

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine

from billing_backup.core.config import get_settings
from billing_backup.core.db import resolve_sql_echo

logger = logging.getLogger(__name__)

_store_engine: Engine | None = None


def build_store_engine(url: str) -> Engine:
    """Create an engine for the given store URL."""
    connect_args: dict = {}
    if url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
    return create_engine(
        url,
        connect_args=connect_args,
        pool_pre_ping=True,
        echo=resolve_sql_echo(),
    )


def get_store() -> Engine:
    """Return the process-wide store engine (FastAPI dependency)."""
    global _store_engine
    if _store_engine is None:
        url = get_settings().store_database_url
        _store_engine = build_store_engine(url)
        logger.info("store_engine_created | dialect=%s", _store_engine.dialect.name)
    return _store_engine


def dispose_store() -> None:
    global _store_engine
    if _store_engine is not None:
        _store_engine.dispose()
        _store_engine = None
