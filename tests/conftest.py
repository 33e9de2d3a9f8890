"""Shared test fixtures for the gitsaver test suite.

The webhook app is built with ``create_app()`` and its dependencies swapped
for fakes: the credential issuer never calls GitHub and the cloner writes a
marker file instead of running git. DNS lookups made by the clone URL guard
are pinned to a public address so tests run offline.
"""

import hashlib
import hmac
import json
import socket
from collections.abc import AsyncGenerator
from pathlib import Path
from typing import Any, Optional

import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from httpx import ASGITransport, AsyncClient

from gitsaver.backup.service import BackupOrchestrator
from gitsaver.core.config import Settings
from gitsaver.github.dependencies import get_backup_orchestrator, get_credential_issuer
from gitsaver.main import create_app
from gitsaver.sandbox.checkout import GitCloneError

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

WEBHOOK_SECRET = "test-webhook-secret"
INSTALLATION_TOKEN = "ghs_testinstallationtoken"
PUBLIC_IP = "140.82.112.3"


def _generate_private_key() -> rsa.RSAPrivateKey:
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


TEST_PRIVATE_KEY = _generate_private_key()
TEST_PRIVATE_KEY_PEM = TEST_PRIVATE_KEY.private_bytes(
    serialization.Encoding.PEM,
    serialization.PrivateFormat.TraditionalOpenSSL,
    serialization.NoEncryption(),
).decode()
TEST_PUBLIC_KEY_PEM = TEST_PRIVATE_KEY.public_key().public_bytes(
    serialization.Encoding.PEM,
    serialization.PublicFormat.SubjectPublicKeyInfo,
).decode()


def sign_payload(payload: bytes, secret: str = WEBHOOK_SECRET) -> str:
    """Build an X-Hub-Signature-256 value the way GitHub does."""
    sig = hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()
    return f"sha256={sig}"


def make_push_payload(
    ref: str = "refs/heads/main",
    owner: str = "octo-org",
    name: str = "hello-world",
    clone_url: Optional[str] = None,
) -> dict[str, Any]:
    """A trimmed-down push delivery body."""
    return {
        "ref": ref,
        "before": "0" * 40,
        "after": "a" * 40,
        "repository": {
            "id": 1296269,
            "name": name,
            "full_name": f"{owner}/{name}",
            "owner": {"name": owner, "login": owner},
            "clone_url": clone_url or f"https://github.com/{owner}/{name}.git",
            "private": True,
            "default_branch": "main",
        },
        "pusher": {"name": "octocat", "email": "octocat@github.com"},
        "commits": [
            {
                "id": "a" * 40,
                "message": "Update README",
                "timestamp": "2024-05-01T12:00:00Z",
                "url": f"https://github.com/{owner}/{name}/commit/{'a' * 40}",
                "author": {"name": "Octo Cat", "email": "octocat@github.com", "username": "octocat"},
            }
        ],
        "head_commit": None,
    }


def delivery_headers(body: bytes, event: str = "push", secret: str = WEBHOOK_SECRET) -> dict[str, str]:
    return {
        "X-Hub-Signature-256": sign_payload(body, secret),
        "X-GitHub-Event": event,
        "X-GitHub-Delivery": "72d3162e-cc78-11e3-81ab-4c9367dc0958",
        "Content-Type": "application/json",
    }


def encode(payload: dict[str, Any]) -> bytes:
    return json.dumps(payload).encode("utf-8")


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


class FakeCloner:
    """Records clone calls and writes a marker file into the destination."""

    def __init__(self, error: Optional[GitCloneError] = None):
        self.calls: list[dict[str, Any]] = []
        self.error = error

    def clone(
        self,
        url: str,
        username: str,
        password: str,
        dest_dir: Path,
        timeout: Optional[float] = None,
    ) -> None:
        self.calls.append(
            {
                "url": url,
                "username": username,
                "password": password,
                "dest_dir": dest_dir,
                "timeout": timeout,
            }
        )
        if self.error is not None:
            (dest_dir / ".git").mkdir()
            raise self.error
        (dest_dir / ".git").mkdir()
        (dest_dir / "README.md").write_text("hello\n")


class FakeIssuer:
    """Stands in for CredentialIssuer; counts token requests."""

    installation_id = 56702972

    def __init__(self, token: str = INSTALLATION_TOKEN, error: Optional[Exception] = None):
        self.token = token
        self.error = error
        self.calls = 0

    def current_token(self) -> str:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.token


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def public_dns(monkeypatch):
    """Resolve every hostname to a public GitHub address."""
    monkeypatch.setattr(
        "gitsaver.sandbox.checkout.socket.getaddrinfo",
        lambda host, port: [(socket.AF_INET, socket.SOCK_STREAM, 6, "", (PUBLIC_IP, 0))],
    )


@pytest.fixture
def backups_root(tmp_path) -> Path:
    return tmp_path / "backups"


@pytest.fixture
def settings(backups_root) -> Settings:
    return Settings(
        webhook_secret=WEBHOOK_SECRET,
        github_app_id=1044603,
        github_installation_id=56702972,
        backups_directory=str(backups_root),
        allowed_clone_hosts=["github.com"],
        sentry_dsn="",
        debug=False,
    )


@pytest.fixture
def fake_cloner() -> FakeCloner:
    return FakeCloner()


@pytest.fixture
def fake_issuer() -> FakeIssuer:
    return FakeIssuer()


@pytest.fixture
def app(settings, fake_cloner, fake_issuer, public_dns):
    """FastAPI app built from ``settings`` with the issuer and orchestrator faked.

    Settings are not overridden: the handler reads the instance passed to
    ``create_app()``.
    """
    test_app = create_app(settings)
    test_app.dependency_overrides[get_credential_issuer] = lambda: fake_issuer
    test_app.dependency_overrides[get_backup_orchestrator] = lambda: BackupOrchestrator(
        backups_root=Path(settings.backups_directory),
        cloner=fake_cloner,
        allowed_clone_hosts=settings.allowed_clone_hosts,
        clone_timeout=settings.clone_timeout_seconds,
    )
    return test_app


@pytest.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client wired to the test app (lifespan not run)."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
