from __future__ import annotations

from datetime import datetime, timezone


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class StatusTransitionError(ValueError):
    """Raised when an operation log entry would leave a final status."""
