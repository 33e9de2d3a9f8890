"""Types for the backup module."""

from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class BackupTarget:
    """Destination of one clone.

    path follows the convention:
        {backups_root}/{owner}/{repo}/{timestamp}[-{n}]
    """

    owner: str
    repo: str
    timestamp: str
    path: Path
