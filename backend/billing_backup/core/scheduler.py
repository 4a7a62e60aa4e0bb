"""Background task runner for backup and restore operations.

Responsibilities:
- Provide a singleton `BackgroundScheduler` instance
- Run a prepared backup/restore operation once, off the request thread
- Log structured events for every submitted operation

The request handler creates the operation log entry first and returns its id;
clients poll the operation log for the final status. The job functions open
their own catalog session and finalize that same entry.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from apscheduler.schedulers.background import BackgroundScheduler

from billing_backup.core.config import get_settings
from billing_backup.core.db import get_session_factory
from billing_backup.core.store import get_store
from billing_backup.domain.enums import BackupMode


logger = logging.getLogger(__name__)

# Global scheduler instance
_scheduler: Optional[BackgroundScheduler] = None

_RESERVED_LOG_KEYS = {
    "name",
    "msg",
    "message",
    "asctime",
    "levelname",
    "levelno",
    "pathname",
    "filename",
    "module",
    "exc_info",
    "exc_text",
    "stack_info",
    "lineno",
    "funcName",
    "created",
    "msecs",
    "relativeCreated",
    "thread",
    "threadName",
    "processName",
    "process",
    "args",
}


def get_scheduler() -> BackgroundScheduler:
    """Get the global scheduler instance."""
    global _scheduler
    if _scheduler is None:
        tz = get_settings().scheduler_timezone
        _scheduler = BackgroundScheduler(
            timezone=tz,
            job_defaults={
                "coalesce": False,
                "max_instances": 1,
                "misfire_grace_time": None,
            },
        )
        _log_event("scheduler_created", timezone=tz)
    return _scheduler


def _log_event(event_name: str, **fields: object) -> None:
    """Emit a log line with text message and structured context via `extra`.

    The message is a concise 'event | k=v ...' line to keep parity with other
    modules, and the `extra` dict carries structured fields for future handlers.
    """
    if not fields:
        logger.info("%s", event_name, extra={"event": event_name})
        return
    keys = sorted(fields.keys())
    tmpl = " ".join(f"{k}=%s" for k in keys)
    values = tuple(fields[k] for k in keys)
    safe_extra: dict[str, object] = {"event": event_name}
    for k, v in fields.items():
        safe_key = k if k not in _RESERVED_LOG_KEYS else f"field_{k}"
        safe_extra[safe_key] = v
    logger.info("%s | " + tmpl, event_name, *values, extra=safe_extra)


def submit_operation(func: Callable[..., Any], *, operation_id: int, scheduler: Any = None, **kwargs: Any) -> str:
    """Schedule `func(operation_id=..., **kwargs)` to run once, immediately."""
    sched = scheduler or get_scheduler()
    job_id = f"operation-{operation_id}"
    sched.add_job(
        func=func,
        trigger="date",
        run_date=datetime.now(timezone.utc),
        id=job_id,
        name=f"{func.__name__}#{operation_id}",
        kwargs={"operation_id": operation_id, **kwargs},
        replace_existing=True,
    )
    _log_event("operation_submitted", operation_id=operation_id, job=func.__name__)
    return job_id


def run_backup_operation(*, operation_id: int, mode: str, include_assets: bool) -> None:
    """Job body: finish a backup whose log entry already exists."""
    from billing_backup.services.backups import BackupService

    db = get_session_factory()()
    try:
        svc = BackupService(db, get_store())
        outcome = svc.run_backup(operation_id, BackupMode(mode), include_assets)
        _log_event("operation_finished", operation_id=operation_id, status=outcome.status.value)
    except Exception:
        logger.exception("background_backup_crashed | id=%s", operation_id)
    finally:
        db.close()


def run_restore_operation(*, operation_id: int, filename: str) -> None:
    """Job body: finish a database restore whose log entry already exists."""
    from billing_backup.services.restores import RestoreService

    db = get_session_factory()()
    try:
        svc = RestoreService(db, get_store())
        outcome = svc.run_restore(operation_id, filename)
        _log_event(
            "operation_finished",
            operation_id=operation_id,
            status=outcome.status.value,
            failed_statements=outcome.statements_failed,
        )
    except Exception:
        logger.exception("background_restore_crashed | id=%s", operation_id)
    finally:
        db.close()


def run_assets_restore_operation(*, operation_id: int, filename: str) -> None:
    """Job body: finish an uploads restore whose log entry already exists."""
    from billing_backup.services.restores import RestoreService

    db = get_session_factory()()
    try:
        svc = RestoreService(db, get_store())
        outcome = svc.run_assets_restore(operation_id, filename)
        _log_event("operation_finished", operation_id=operation_id, status=outcome.status.value)
    except Exception:
        logger.exception("background_uploads_restore_crashed | id=%s", operation_id)
    finally:
        db.close()
