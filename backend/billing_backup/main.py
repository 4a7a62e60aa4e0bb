"""Main FastAPI application for the billing backup and restore engine."""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
import logging
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import RedirectResponse

from billing_backup.core.db import init_db
from billing_backup.core.logging import setup_logging
from billing_backup.core.scheduler import get_scheduler
from billing_backup.core.store import dispose_store


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager."""
    # Startup
    setup_logging()
    logger = logging.getLogger(__name__)
    init_db()

    scheduler = get_scheduler()
    scheduler.start()
    logger.info("Task runner started")

    yield

    # Shutdown
    scheduler.shutdown()
    dispose_store()
    logger.info("Task runner shutdown")


app = FastAPI(
    title="Billing Backup API",
    description="Backup and restore engine for the billing database",
    version="0.1.0",
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    openapi_url="/api/openapi.json",
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
from billing_backup.api import health, backups, restores, operations

# Mount health endpoints unversioned for infra probes (/health, /ready)
app.include_router(health.router)

# Mount application APIs under versioned prefix
app.include_router(backups.router, prefix="/api/v1")
app.include_router(restores.router, prefix="/api/v1")
app.include_router(operations.router, prefix="/api/v1")


@app.get("/")
async def root() -> RedirectResponse:
    """Redirect root to Swagger UI."""
    return RedirectResponse(url="/api/docs")


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8080)
