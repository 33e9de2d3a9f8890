"""GitHub webhook endpoint.

The endpoint is public (no auth dependency) but verifies the
X-Hub-Signature-256 header before looking at the payload. A delivery moves
through these stages, and the first one that fails decides the response:

  method check     → 405  (FastAPI routing; only POST is registered)
  secret present   → 500
  body read        → 400
  signature valid  → 401
  push payload     → 400  (only parsed for push deliveries)
  main/master ref  → 200, ignored otherwise
  backup           → 500 on any auth, filesystem or clone failure

Non-push deliveries and pushes to other branches are valid traffic and get
200. Response bodies stay short; details go to the log.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Request, status
from starlette.concurrency import run_in_threadpool
from starlette.requests import ClientDisconnect

from gitsaver.backup.errors import BackupError
from gitsaver.backup.service import BackupOrchestrator
from gitsaver.backup.types import BackupTarget
from gitsaver.core.config import Settings
from gitsaver.github.auth import CredentialIssuer
from gitsaver.github.dependencies import (
    get_app_settings,
    get_backup_orchestrator,
    get_credential_issuer,
)
from gitsaver.github.errors import GitHubAuthError, PayloadError
from gitsaver.github.schemas import PushEvent, WebhookResponse
from gitsaver.github.webhooks import (
    PUSH_EVENT,
    is_actionable,
    parse_push_event,
    verify_webhook_signature,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["webhook"])


def _run_backup(
    issuer: Optional[CredentialIssuer],
    orchestrator: BackupOrchestrator,
    event: PushEvent,
) -> BackupTarget:
    """Blocking part of a delivery; runs in the worker threadpool.

    A dropped client connection does not interrupt it: the clone runs to
    completion or to its timeout.
    """
    if issuer is None:
        raise GitHubAuthError("GitHub App credentials not loaded")
    token = issuer.current_token()
    return orchestrator.backup(event, token)


@router.post("/", response_model=WebhookResponse)
@router.post("/webhook", response_model=WebhookResponse)
async def handle_webhook(
    request: Request,
    x_hub_signature_256: str = Header(default=""),
    x_github_event: str = Header(default=""),
    settings: Settings = Depends(get_app_settings),
    issuer: Optional[CredentialIssuer] = Depends(get_credential_issuer),
    orchestrator: BackupOrchestrator = Depends(get_backup_orchestrator),
) -> WebhookResponse:
    """Verify a GitHub delivery and back up the repository on pushes to main/master."""
    remote_addr = request.client.host if request.client else "unknown"

    if not settings.webhook_secret:
        logger.error("Webhook secret not configured")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Webhook secret not configured",
        )

    try:
        body = await request.body()
    except ClientDisconnect as exc:
        logger.error(
            "Failed to read request body: %s",
            exc,
            extra={"remote_addr": remote_addr},
        )
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Failed to read request body",
        )

    if not verify_webhook_signature(body, x_hub_signature_256, settings.webhook_secret):
        logger.warning("Invalid webhook signature", extra={"remote_addr": remote_addr})
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid signature",
        )

    if x_github_event != PUSH_EVENT:
        logger.info(
            "Ignoring non-push event",
            extra={"event_type": x_github_event},
        )
        return WebhookResponse(received=True, event=x_github_event, action="ignored")

    try:
        event = parse_push_event(body)
    except PayloadError as exc:
        logger.error("Failed to parse webhook payload: %s", exc)
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Failed to parse webhook payload",
        )

    log_fields = {
        "event_type": x_github_event,
        "repository": event.repository.full_name,
        "ref": event.ref,
    }

    if not is_actionable(event, x_github_event):
        logger.info("Ignoring push to non-main branch", extra=log_fields)
        return WebhookResponse(
            received=True, event=x_github_event, action="non_main_branch"
        )

    try:
        target = await run_in_threadpool(_run_backup, issuer, orchestrator, event)
    except (GitHubAuthError, BackupError) as exc:
        logger.error(
            "Failed to backup repository: %s: %s",
            type(exc).__name__,
            exc,
            extra=log_fields,
        )
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to backup repository",
        )

    logger.info(
        "Webhook processed successfully",
        extra={**log_fields, "backup_dir": str(target.path)},
    )
    return WebhookResponse(received=True, event=x_github_event, action="backed_up")


health_router = APIRouter(tags=["health"])


@health_router.get("/health")
async def health_check() -> dict[str, str]:
    return {"status": "ok"}
