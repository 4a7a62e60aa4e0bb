"""Central logging configuration for the backend.

This module configures Python logging with sane defaults and is intended to be
invoked from `billing_backup.main` during startup.
"""

from __future__ import annotations

import logging
import os
from typing import Optional


_PROBE_PATHS = ("/health", "/ready")


class HealthCheckFilter(logging.Filter):
    """Filter out health check requests from uvicorn access logs."""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        if any(path in message for path in _PROBE_PATHS):
            return False
        return True


def setup_logging(level: Optional[str] = None) -> None:
    """Initialize application logging.

    - Level is taken from the `LOG_LEVEL` environment variable if not provided.
    - Uses a concise, structured-ish format with timestamps.
    """

    log_level = (level or os.getenv("LOG_LEVEL", "INFO")).upper()

    root_logger = logging.getLogger()

    # Configure handlers once to avoid duplicates in reloads
    if not root_logger.handlers:
        logging.basicConfig(
            level=log_level,
            format=(
                "%(asctime)s | %(levelname)s | %(name)s | "
                "%(message)s"
            ),
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    # Always align root level (uvicorn may install handlers before we run)
    root_logger.setLevel(log_level)

    logging.getLogger("uvicorn").setLevel(log_level)
    logging.getLogger("uvicorn.error").setLevel(log_level)

    access_logger = logging.getLogger("uvicorn.access")
    if not any(isinstance(f, HealthCheckFilter) for f in access_logger.filters):
        access_logger.addFilter(HealthCheckFilter())

    # SQLAlchemy: keep quiet by default; detailed SQL is controlled via engine echo
    sqlalchemy_engine_level = logging.DEBUG if root_logger.level == logging.DEBUG else logging.WARNING
    logging.getLogger("sqlalchemy.engine").setLevel(sqlalchemy_engine_level)

    # APScheduler is chatty at INFO for every run-once job
    logging.getLogger("apscheduler").setLevel(logging.WARNING)
