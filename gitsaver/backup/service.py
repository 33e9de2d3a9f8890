"""Backup orchestration: push event + installation token → clone on disk.

Steps:
1. Validate the owner and repository names from the payload
2. Validate the clone URL (HTTPS, allowed host, public address)
3. Create {backups_root}/{owner}/{repo}/{YYYYMMDD_HHMMSS}
4. Clone into it as ``x-access-token`` with the installation token

Names come from a signed but only partially trusted payload, so they are
checked before any path is built from them. A failed clone leaves its
directory behind for inspection.
"""

import logging
from collections.abc import Iterable
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Optional

from gitsaver.backup.errors import BackupDirectoryError, CloneError, InvalidRepositoryName
from gitsaver.backup.types import BackupTarget
from gitsaver.github.schemas import PushEvent
from gitsaver.sandbox.checkout import (
    Cloner,
    GitCloneError,
    SandboxError,
    redact_repo_url,
    validate_repo_url,
)

logger = logging.getLogger(__name__)

# Any non-empty username works with an installation token; this is the one
# GitHub documents.
CLONE_USERNAME = "x-access-token"

TIMESTAMP_FORMAT = "%Y%m%d_%H%M%S"

_FORBIDDEN_SEQUENCES = ("/", "\\", "..", "\x00")

# Upper bound on "-n" suffixes tried when two pushes land in the same second.
MAX_COLLISION_SUFFIX = 99


def validate_path_component(value: str, label: str) -> str:
    """Reject names that are empty or could escape their parent directory.

    Raises:
        InvalidRepositoryName: ``value`` is empty, ``.``, or contains a
            path separator or a parent-traversal sequence.
    """
    if not value or value == ".":
        raise InvalidRepositoryName(f"invalid repository {label}: {value!r}")
    for sequence in _FORBIDDEN_SEQUENCES:
        if sequence in value:
            raise InvalidRepositoryName(f"invalid repository {label}: {value!r}")
    return value


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class BackupOrchestrator:
    """Turns a verified push event into a clone under ``backups_root``.

    Stateless between calls apart from configuration; the installation token
    is passed in per call and not retained.
    """

    def __init__(
        self,
        backups_root: Path,
        cloner: Cloner,
        allowed_clone_hosts: Optional[Iterable[str]] = None,
        clone_timeout: Optional[float] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.backups_root = Path(backups_root)
        self.cloner = cloner
        self.allowed_clone_hosts = (
            list(allowed_clone_hosts) if allowed_clone_hosts is not None else None
        )
        self.clone_timeout = clone_timeout
        self._clock = clock

    def build_target(self, owner: str, repo: str) -> BackupTarget:
        """Validate names and compute a fresh destination path (nothing is created)."""
        owner = validate_path_component(owner, "owner")
        repo = validate_path_component(repo, "name")
        timestamp = self._clock().strftime(TIMESTAMP_FORMAT)
        return BackupTarget(
            owner=owner,
            repo=repo,
            timestamp=timestamp,
            path=self.backups_root / owner / repo / timestamp,
        )

    def create_target_dir(self, target: BackupTarget) -> BackupTarget:
        """Create the destination, suffixing ``-1``, ``-2``… if it already exists.

        Raises:
            BackupDirectoryError: The parent is not writable, or every
                suffix up to MAX_COLLISION_SUFFIX is taken.
        """
        parent = target.path.parent
        try:
            parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise BackupDirectoryError(
                f"failed to create backup directory {parent}: {exc}"
            ) from exc

        for attempt in range(MAX_COLLISION_SUFFIX + 1):
            name = target.timestamp if attempt == 0 else f"{target.timestamp}-{attempt}"
            path = parent / name
            try:
                path.mkdir()
            except FileExistsError:
                continue
            except OSError as exc:
                raise BackupDirectoryError(
                    f"failed to create backup directory {path}: {exc}"
                ) from exc
            return BackupTarget(
                owner=target.owner,
                repo=target.repo,
                timestamp=name,
                path=path,
            )

        raise BackupDirectoryError(
            f"backup directory {target.path} and {MAX_COLLISION_SUFFIX} "
            f"suffixed variants already exist"
        )

    def backup(self, event: PushEvent, token: str) -> BackupTarget:
        """Clone the pushed repository into a new timestamped directory.

        Returns:
            The target that now holds the clone.

        Raises:
            InvalidRepositoryName: Unsafe owner or repository name.
            BackupDirectoryError: Destination could not be created.
            CloneError: URL rejected or git failed.
        """
        repository = event.repository
        target = self.build_target(event.owner_name, repository.name)

        try:
            validate_repo_url(repository.clone_url, self.allowed_clone_hosts)
        except SandboxError as exc:
            raise CloneError(str(exc)) from exc

        target = self.create_target_dir(target)
        logger.info(
            "Created backup directory %s for %s",
            target.path,
            repository.full_name or f"{target.owner}/{target.repo}",
        )

        try:
            self.cloner.clone(
                repository.clone_url,
                CLONE_USERNAME,
                token,
                target.path,
                timeout=self.clone_timeout,
            )
        except GitCloneError as exc:
            logger.error(
                "Clone of %s failed; leaving %s in place: %s",
                redact_repo_url(repository.clone_url),
                target.path,
                exc,
            )
            raise CloneError(f"failed to clone repository: {exc}") from exc

        logger.info("Repository backup completed: %s", target.path)
        return target
