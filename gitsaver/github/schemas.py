"""Pydantic schemas for GitHub payloads and API responses.

Only the fields the receiver reads are declared; everything else in a push
payload is ignored. Payload models are frozen once parsed.
"""

from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, SecretStr, field_validator


class _Payload(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")


class RepositoryOwner(_Payload):
    name: str = ""
    login: str = ""


class Repository(_Payload):
    id: Optional[int] = None
    name: str
    full_name: str = ""
    owner: RepositoryOwner
    clone_url: str
    private: bool = False
    default_branch: str = ""


class CommitAuthor(_Payload):
    name: str = ""
    email: str = ""
    username: str = ""


class Commit(_Payload):
    id: str = ""
    message: str = ""
    timestamp: str = ""
    url: str = ""
    author: Optional[CommitAuthor] = None


class Pusher(_Payload):
    name: str = ""
    email: str = ""


class PushEvent(_Payload):
    """Body of a ``push`` webhook delivery."""

    ref: str
    before: str = ""
    after: str = ""
    repository: Repository
    pusher: Optional[Pusher] = None
    created: bool = False
    deleted: bool = False
    forced: bool = False
    commits: list[Commit] = Field(default_factory=list)
    head_commit: Optional[Commit] = None

    @property
    def owner_name(self) -> str:
        """Directory name for the repository owner.

        Push payloads carry both ``name`` and ``login`` on the owner; older
        deliveries and some organisation payloads leave ``name`` empty.
        """
        owner = self.repository.owner
        return owner.name or owner.login


class InstallationToken(BaseModel):
    """Installation access token as returned by GitHub (HTTP 201)."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    token: SecretStr
    expires_at: datetime

    @field_validator("expires_at", mode="after")
    @classmethod
    def ensure_aware(cls, v: datetime) -> datetime:
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v

    def is_expired(self, now: datetime, leeway_seconds: float = 0) -> bool:
        """True once ``now`` is within ``leeway_seconds`` of ``expires_at``."""
        return (self.expires_at - now).total_seconds() <= leeway_seconds


class WebhookResponse(BaseModel):
    """Acknowledgement response for webhook deliveries."""

    received: bool
    event: str
    action: str
