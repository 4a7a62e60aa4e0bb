from typing import List, Optional

from pydantic import BaseModel, Field


class RestoreRequest(BaseModel):
    filename: str = Field(..., description="Name of a .sql artifact in the backup directory")
    confirm_text: Optional[str] = Field(None, description="Must equal the confirmation phrase exactly")
    background: bool = Field(False, description="Run via the task runner and return an operation handle")


class UploadsRestoreRequest(BaseModel):
    filename: str = Field(..., description="Name of a .zip artifact in the backup directory")
    background: bool = False


class DumpPreview(BaseModel):
    """Dry-run summary of a dump: what a restore would execute."""

    filename: str
    statements: int
    tables: List[str] = Field(default_factory=list)
