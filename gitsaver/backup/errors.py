"""Backup failure types.

All of them are permanent for the delivery that raised them; a later push
to the same repository starts from scratch.
"""


class BackupError(Exception):
    """Base class for a backup that could not be completed."""


class InvalidRepositoryName(BackupError):
    """Owner or repository name is empty or could escape the backups root."""


class BackupDirectoryError(BackupError):
    """The destination directory could not be created."""


class CloneError(BackupError):
    """The clone URL was rejected or ``git clone`` failed.

    The partially written destination directory is left on disk.
    """
