from pydantic import BaseModel, Field

from billing_backup.domain.enums import BackupMode


class BackupCreate(BaseModel):
    backup_type: BackupMode = Field(BackupMode.FULL, description="Full or Incremental")
    include_uploads: bool = Field(False, description="Package the uploads tree into a ZIP artifact")
    background: bool = Field(False, description="Run via the task runner and return an operation handle")
