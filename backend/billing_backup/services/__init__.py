"""Service layer for backups, restores and the operation log.

Exposes:
- BackupService
- RestoreService
- RestorationPointService
- OperationLogService
"""

from .operation_log import OperationLogService
from .backups import BackupService
from .restoration_points import RestorationPointService
from .restores import RestoreService

__all__ = [
    "OperationLogService",
    "BackupService",
    "RestorationPointService",
    "RestoreService",
]
