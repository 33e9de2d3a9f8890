"""GitHub App authentication.

Handles JWT generation for GitHub App auth and installation token exchange.
The private key is read from a PEM file at startup, never from source control.

GitHub App auth flow:
1. Generate a JWT signed with the App's private key
2. Exchange the JWT for a short-lived installation access token
3. Use the installation token to clone repositories on the installation's behalf

The installation token is the only mutable state shared between requests.
It lives inside a ``CredentialIssuer`` instance (one per process, stored on
``app.state``) and is handed out by value; callers never keep it.
"""

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable, Optional

import httpx
import jwt
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization
from pydantic import ValidationError

from gitsaver import __version__
from gitsaver.core.config import Settings
from gitsaver.github.errors import CredentialError, TokenExchangeError
from gitsaver.github.schemas import InstallationToken

logger = logging.getLogger(__name__)

GITHUB_API_BASE = "https://api.github.com"
GITHUB_API_VERSION = "2022-11-28"

# GitHub rejects App JWTs that live longer than 10 minutes.
JWT_LIFETIME = timedelta(minutes=10)

# Refresh a cached token this many seconds before GitHub says it expires so
# a clone that starts just before expiry does not fail halfway through auth.
DEFAULT_REFRESH_LEEWAY_SECONDS = 60.0


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class AppCredential:
    """Long-lived signing material for one App installation."""

    app_id: int
    installation_id: int
    private_key: str = field(repr=False)


def load_app_credential(
    app_id: int,
    installation_id: int,
    private_key_path: str | Path,
) -> AppCredential:
    """Read and validate the App's private key.

    Raises:
        CredentialError: IDs are unset, or the key file is missing,
            unreadable or not a PEM-encoded private key.
    """
    if not app_id or not installation_id:
        raise CredentialError(
            "GitHub App credentials not configured. "
            "Set GITSAVER_GITHUB_APP_ID and GITSAVER_GITHUB_INSTALLATION_ID."
        )

    path = Path(private_key_path)
    try:
        pem = path.read_bytes()
    except OSError as exc:
        raise CredentialError(f"failed to read private key {path}: {exc}") from exc

    try:
        serialization.load_pem_private_key(pem, password=None)
    except (ValueError, TypeError, UnsupportedAlgorithm) as exc:
        raise CredentialError(f"failed to parse private key {path}: {exc}") from exc

    return AppCredential(
        app_id=app_id,
        installation_id=installation_id,
        private_key=pem.decode("utf-8"),
    )


class CredentialIssuer:
    """Mints App JWTs and keeps one installation token fresh.

    ``current_token()`` is safe to call from many request threads at once.
    Reads of the cached token are lock-guarded; refreshes are single-flight,
    so threads that all observe a stale token wait for one exchange instead
    of each calling GitHub.
    """

    def __init__(
        self,
        credential: AppCredential,
        api_url: str = GITHUB_API_BASE,
        timeout: float = 30.0,
        http_client: Optional[httpx.Client] = None,
        clock: Callable[[], datetime] = _utcnow,
        refresh_leeway_seconds: float = DEFAULT_REFRESH_LEEWAY_SECONDS,
    ):
        self._credential = credential
        self._api_url = api_url.rstrip("/")
        self._http = http_client or httpx.Client(timeout=timeout)
        self._clock = clock
        self._leeway = refresh_leeway_seconds

        self._token: Optional[InstallationToken] = None
        self._token_lock = threading.Lock()
        self._refresh_lock = threading.Lock()

    @classmethod
    def from_settings(cls, settings: Settings) -> "CredentialIssuer":
        credential = load_app_credential(
            settings.github_app_id,
            settings.github_installation_id,
            settings.github_private_key_path,
        )
        return cls(
            credential,
            api_url=settings.github_api_url,
            timeout=settings.http_timeout_seconds,
        )

    @property
    def installation_id(self) -> int:
        return self._credential.installation_id

    def mint_assertion(self) -> str:
        """Create a JWT for authenticating as the GitHub App.

        Claims: ``iss`` = App ID, ``iat`` = now, ``exp`` = now + 10 minutes.
        """
        now = self._clock()
        payload = {
            "iat": int(now.timestamp()),
            "exp": int((now + JWT_LIFETIME).timestamp()),
            "iss": str(self._credential.app_id),
        }
        try:
            return jwt.encode(payload, self._credential.private_key, algorithm="RS256")
        except (jwt.PyJWTError, ValueError, TypeError, UnsupportedAlgorithm) as exc:
            raise CredentialError(f"failed to sign App JWT: {exc}") from exc

    def exchange_for_token(self, assertion: str) -> InstallationToken:
        """Exchange an App JWT for an installation access token.

        GitHub answers ``201 Created`` with ``{"token", "expires_at", ...}``.
        Anything else is raised as-is; there is no retry here.
        """
        url = (
            f"{self._api_url}/app/installations/"
            f"{self._credential.installation_id}/access_tokens"
        )
        try:
            response = self._http.post(url, headers=_app_headers(assertion))
        except httpx.HTTPError as exc:
            raise TokenExchangeError(
                f"installation token request failed: {type(exc).__name__}: {exc}"
            ) from exc

        if response.status_code != httpx.codes.CREATED:
            raise TokenExchangeError(
                f"failed to get installation token: "
                f"HTTP {response.status_code}: {response.text}",
                status_code=response.status_code,
                body=response.text,
            )

        try:
            return InstallationToken.model_validate_json(response.content)
        except ValidationError as exc:
            # The body may hold a usable token, so it is not echoed.
            raise TokenExchangeError(
                f"failed to parse installation token response: "
                f"{exc.error_count()} validation error(s)",
                status_code=response.status_code,
            ) from exc

    def current_token(self) -> str:
        """Return a usable installation token, refreshing it if stale."""
        cached = self._fresh_token()
        if cached is not None:
            return cached.token.get_secret_value()

        with self._refresh_lock:
            # Another thread may have refreshed while this one waited.
            cached = self._fresh_token()
            if cached is not None:
                return cached.token.get_secret_value()

            token = self.exchange_for_token(self.mint_assertion())
            with self._token_lock:
                self._token = token

        logger.info(
            "Installation token refreshed for installation %d (expires_at=%s)",
            self._credential.installation_id,
            token.expires_at.isoformat(),
        )
        return token.token.get_secret_value()

    def close(self) -> None:
        self._http.close()

    def _fresh_token(self) -> Optional[InstallationToken]:
        with self._token_lock:
            token = self._token
        if token is None or token.is_expired(self._clock(), self._leeway):
            return None
        return token


def _app_headers(assertion: str) -> dict[str, str]:
    return {
        "Authorization": f"Bearer {assertion}",
        "Accept": "application/vnd.github+json",
        "X-GitHub-Api-Version": GITHUB_API_VERSION,
        "User-Agent": f"gitsaver/{__version__}",
    }
