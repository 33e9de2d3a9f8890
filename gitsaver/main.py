import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Optional

from fastapi import FastAPI
from starlette.concurrency import run_in_threadpool

from gitsaver import __version__
from gitsaver.core.config import Settings, get_settings
from gitsaver.core.middleware import RequestIdMiddleware, SecurityHeadersMiddleware
from gitsaver.github.auth import CredentialIssuer
from gitsaver.github.router import health_router
from gitsaver.github.router import router as webhook_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Load App credentials and prime one installation token before serving.

    A missing key or a refused token exchange here stops the process: both
    mean the App is misconfigured and no backup could ever succeed.
    """
    settings: Settings = app.state.settings

    issuer = CredentialIssuer.from_settings(settings)
    try:
        await run_in_threadpool(issuer.current_token)
        logger.info(
            "Obtained installation token for installation %d",
            issuer.installation_id,
        )

        backups_root = Path(settings.backups_directory)
        backups_root.mkdir(parents=True, exist_ok=True)
        logger.info("Backups directory: %s", backups_root.resolve())

        app.state.credential_issuer = issuer
        yield
    finally:
        app.state.credential_issuer = None
        issuer.close()


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or get_settings()

    _app = FastAPI(
        title="gitsaver",
        description="Backs up GitHub repositories on every push to main",
        version=__version__,
        lifespan=lifespan,
    )
    _app.state.settings = settings

    # ---------------------------------------------------------------------------
    # Middleware (registered outermost → innermost; executed innermost → outermost)
    # ---------------------------------------------------------------------------
    _app.add_middleware(SecurityHeadersMiddleware)
    _app.add_middleware(RequestIdMiddleware)

    # ---------------------------------------------------------------------------
    # Sentry: initialised here so it captures startup errors too
    # ---------------------------------------------------------------------------
    from gitsaver.core.sentry import init_sentry

    init_sentry(
        dsn=settings.sentry_dsn,
        environment="development" if settings.debug else "production",
    )

    # ---------------------------------------------------------------------------
    # Logging: configure structlog before any routers log anything
    # ---------------------------------------------------------------------------
    from gitsaver.core.logging import configure_structlog

    configure_structlog(debug=settings.debug)

    # ---------------------------------------------------------------------------
    # Routes
    # ---------------------------------------------------------------------------
    _app.include_router(health_router)
    _app.include_router(webhook_router)

    return _app
