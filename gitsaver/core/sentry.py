"""Sentry SDK integration.

Backup failures are reported to Sentry when a DSN is configured. Events are
scrubbed before they leave the process: the webhook secret, installation
tokens, the App private key and signature headers must never be shipped.
"""

from __future__ import annotations

import logging
from typing import Any

logger = logging.getLogger(__name__)

_SENSITIVE_KEYS = frozenset(
    {"secret", "token", "password", "private_key", "signature", "authorization", "dsn"}
)

REDACTED = "[REDACTED]"


def _scrub_secrets(event: dict[str, Any], hint: Any) -> dict[str, Any]:
    """Sentry before_send hook: redact values for sensitive keys.

    Walks ``extra``, ``request.headers`` and ``request.data``.
    """
    _scrub_dict(event.get("extra", {}))
    request = event.get("request", {})
    for section in ("headers", "data"):
        value = request.get(section)
        if isinstance(value, dict):
            _scrub_dict(value)
    return event


def _scrub_dict(d: dict[str, Any]) -> None:
    """Recursively redact sensitive values in-place."""
    for key in list(d.keys()):
        normalised = key.lower().replace("-", "_")
        if any(sensitive in normalised for sensitive in _SENSITIVE_KEYS):
            d[key] = REDACTED
        elif isinstance(d[key], dict):
            _scrub_dict(d[key])


def init_sentry(dsn: str, environment: str = "development") -> None:
    """Initialise the Sentry SDK. No-op when ``dsn`` is blank."""
    if not dsn or not dsn.strip():
        logger.debug("Sentry DSN not configured, skipping initialisation")
        return

    import sentry_sdk
    from sentry_sdk.integrations.fastapi import FastApiIntegration

    sentry_sdk.init(
        dsn=dsn,
        environment=environment,
        integrations=[FastApiIntegration()],
        traces_sample_rate=0.0,
        send_default_pii=False,
        before_send=_scrub_secrets,
    )
    logger.info("Sentry initialised (environment=%s)", environment)
