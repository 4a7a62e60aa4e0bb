"""Runtime configuration resolved from environment variables.

All values have defaults suited to the container layout:

- `/app/db` holds the catalog database (operation log)
- `/app/storage/backups` is the flat artifact directory
- `/app/uploads` is the asset tree bundled into archives
"""

from __future__ import annotations

import os
from functools import lru_cache
from typing import Optional

from pydantic import BaseModel, Field


DEFAULT_MAX_UPLOAD_BYTES = 100 * 1024 * 1024


class Settings(BaseModel):
    """Backup engine settings."""

    store_database_url: str = Field("sqlite:////app/db/billing.db", description="Live data store URL")
    catalog_db_dir: str = Field("/app/db", description="Directory of the catalog SQLite file")
    backup_dir: str = Field("/app/storage/backups", description="Flat artifact directory")
    uploads_dir: str = Field("/app/uploads", description="Asset tree bundled into archives")
    backup_prefix: str = Field("quickbill_305", description="Filename prefix for backup artifacts")
    tool_name: str = Field("QuickBill 305", description="Tool identity written in dump headers")
    max_upload_bytes: int = Field(DEFAULT_MAX_UPLOAD_BYTES, ge=1)
    dump_insert_batch: int = Field(500, ge=1, description="Rows per INSERT statement")
    restore_confirmation_phrase: str = Field("RESTORE", min_length=1)
    scheduler_timezone: str = Field("UTC")

    @classmethod
    def from_env(cls) -> "Settings":
        env_map = {
            "store_database_url": "STORE_DATABASE_URL",
            "catalog_db_dir": "CATALOG_DB_DIR",
            "backup_dir": "BACKUP_DIR",
            "uploads_dir": "UPLOADS_DIR",
            "backup_prefix": "BACKUP_PREFIX",
            "tool_name": "BACKUP_TOOL_NAME",
            "max_upload_bytes": "MAX_UPLOAD_BYTES",
            "dump_insert_batch": "DUMP_INSERT_BATCH",
            "restore_confirmation_phrase": "RESTORE_CONFIRMATION_PHRASE",
            "scheduler_timezone": "SCHEDULER_TIMEZONE",
        }
        values: dict[str, str] = {}
        for field_name, env_name in env_map.items():
            raw: Optional[str] = os.getenv(env_name)
            if raw is not None and raw.strip() != "":
                values[field_name] = raw.strip()
        return cls(**values)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return process-wide settings (cached after the first call)."""
    return Settings.from_env()
