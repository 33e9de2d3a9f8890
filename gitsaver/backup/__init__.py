"""Repository backup orchestration."""

from gitsaver.backup.errors import (
    BackupDirectoryError,
    BackupError,
    CloneError,
    InvalidRepositoryName,
)
from gitsaver.backup.service import BackupOrchestrator
from gitsaver.backup.types import BackupTarget

__all__ = [
    "BackupDirectoryError",
    "BackupError",
    "BackupOrchestrator",
    "BackupTarget",
    "CloneError",
    "InvalidRepositoryName",
]
