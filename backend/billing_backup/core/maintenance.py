"""Process-wide maintenance lock.

A restore relaxes integrity checks and rewrites whole tables, so nothing else
may mutate data while it runs. The restore path holds the lock for its whole
duration; every other mutating path calls `ensure_available()` first and is
turned away while the lock is held.
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Iterator, Optional

from billing_backup.core.backup.errors import MaintenanceInProgressError


logger = logging.getLogger(__name__)


class MaintenanceLock:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._holder: Optional[str] = None
        self._since: Optional[datetime] = None

    @property
    def held(self) -> bool:
        return self._lock.locked()

    @property
    def holder(self) -> Optional[str]:
        return self._holder

    @property
    def since(self) -> Optional[datetime]:
        return self._since

    def ensure_available(self) -> None:
        if self._lock.locked():
            raise MaintenanceInProgressError(f"maintenance held by {self._holder}")

    @contextmanager
    def hold(self, reason: str) -> Iterator[None]:
        """Acquire without waiting; raises `MaintenanceInProgressError` if taken."""
        if not self._lock.acquire(blocking=False):
            raise MaintenanceInProgressError(f"maintenance held by {self._holder}")
        self._holder = reason
        self._since = datetime.now(timezone.utc)
        logger.warning("maintenance_lock_acquired | reason=%s", reason)
        try:
            yield
        finally:
            self._holder = None
            self._since = None
            self._lock.release()
            logger.info("maintenance_lock_released | reason=%s", reason)


_maintenance_lock = MaintenanceLock()


def get_maintenance_lock() -> MaintenanceLock:
    return _maintenance_lock
