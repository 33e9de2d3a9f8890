"""Exceptions raised by the GitHub integration layer."""

from typing import Optional


class GitHubAuthError(Exception):
    """Base class for failures obtaining an installation credential."""


class CredentialError(GitHubAuthError):
    """The App private key is missing, unreadable or cannot sign a JWT.

    Not retryable with the same key material.
    """


class TokenExchangeError(GitHubAuthError):
    """GitHub refused (or never answered) an installation token request.

    ``status_code`` is None when the request failed before a response was
    received. ``body`` is the raw response text, kept verbatim for the log.
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        body: str = "",
    ):
        self.status_code = status_code
        self.body = body
        super().__init__(message)


class PayloadError(Exception):
    """The webhook body is not valid JSON or does not fit the push envelope."""
