"""Health check API router."""

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from billing_backup.core.maintenance import MaintenanceLock
from billing_backup.core.store import get_store
from billing_backup.api.deps import get_lock

router = APIRouter(tags=["health"])


@router.get("/health")
async def health() -> dict[str, str]:
    """Health check endpoint."""
    return {"status": "ok"}


@router.get("/ready")
def ready(store: Engine = Depends(get_store), lock: MaintenanceLock = Depends(get_lock)) -> dict[str, str]:
    """Readiness: store reachable and no restore running."""
    if lock.held:
        return {"status": "maintenance"}
    try:
        with store.connect() as conn:
            conn.execute(text("SELECT 1"))
    except SQLAlchemyError:
        return {"status": "store_unreachable"}
    return {"status": "ready"}
