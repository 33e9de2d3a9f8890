"""FastAPI dependencies for the webhook route.

Settings and the credential issuer are process-wide: ``create_app()`` stores
the settings on ``app.state`` and the lifespan adds the issuer. The
orchestrator is cheap and built per request from those settings. Tests
replace the issuer and orchestrator through ``app.dependency_overrides``.
"""

from pathlib import Path
from typing import Optional

from fastapi import Depends, Request

from gitsaver.backup.service import BackupOrchestrator
from gitsaver.core.config import Settings
from gitsaver.github.auth import CredentialIssuer
from gitsaver.sandbox.checkout import GitCliCloner


def get_app_settings(request: Request) -> Settings:
    """The Settings instance the app was created with."""
    return request.app.state.settings


def get_credential_issuer(request: Request) -> Optional[CredentialIssuer]:
    """None until the lifespan has loaded the App credentials."""
    return getattr(request.app.state, "credential_issuer", None)


def get_backup_orchestrator(
    settings: Settings = Depends(get_app_settings),
) -> BackupOrchestrator:
    return BackupOrchestrator(
        backups_root=Path(settings.backups_directory),
        cloner=GitCliCloner(depth=settings.clone_depth),
        allowed_clone_hosts=settings.allowed_clone_hosts,
        clone_timeout=settings.clone_timeout_seconds,
    )
