from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional

from billing_backup.domain.enums import OperationKind, OperationStatus


@dataclass
class OperationOutcome:
    """Final result of one backup or restore, as reported to the caller.

    `message` is safe to show an operator. A restore where some statements
    failed is `Completed` with `has_warnings` set, not `Failed`.
    """

    operation_id: int
    operation: OperationKind
    status: OperationStatus
    message: str
    artifact: Optional[str] = None
    size_bytes: Optional[int] = None
    statements_applied: Optional[int] = None
    statements_failed: Optional[int] = None
    restoration_point: Optional[str] = None
    warnings: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.status == OperationStatus.COMPLETED

    @property
    def has_warnings(self) -> bool:
        return bool(self.warnings) or bool(self.statements_failed)
