"""GitHub webhook verification and push-event filtering.

The webhook secret is shared between GitHub and this service; it must never
be logged or exposed.

Signature verification uses HMAC-SHA256 as specified by GitHub:
https://docs.github.com/en/webhooks/using-webhooks/validating-webhook-deliveries
"""

import hashlib
import hmac

from pydantic import ValidationError

from gitsaver.github.errors import PayloadError
from gitsaver.github.schemas import PushEvent

SIGNATURE_PREFIX = "sha256="
PUSH_EVENT = "push"
MAIN_BRANCH_REFS = frozenset({"refs/heads/main", "refs/heads/master"})


def verify_webhook_signature(
    payload_body: bytes,
    signature_header: str,
    secret: str,
) -> bool:
    """Verify that a webhook payload was signed by GitHub.

    A missing, malformed or wrong-length header is a failed verification,
    never an exception: callers treat "bad" and "malformed" the same way.

    Args:
        payload_body: Raw request body bytes, exactly as received.
        signature_header: Value of the X-Hub-Signature-256 header.
        secret: The webhook secret configured on the App.

    Returns:
        True if the signature is valid, False otherwise.
    """
    if not signature_header or not signature_header.startswith(SIGNATURE_PREFIX):
        return False

    expected_signature = hmac.new(
        secret.encode("utf-8"),
        payload_body,
        hashlib.sha256,
    ).hexdigest()

    received_signature = signature_header.removeprefix(SIGNATURE_PREFIX)

    # compare_digest only accepts ASCII str; anything else cannot match anyway.
    if not received_signature.isascii():
        return False

    return hmac.compare_digest(expected_signature, received_signature)


def is_main_branch(ref: str) -> bool:
    return ref in MAIN_BRANCH_REFS


def is_actionable(event: PushEvent, event_kind: str) -> bool:
    """Whether a delivery should trigger a backup.

    Only pushes to main or master do. Other event kinds and branches are
    valid traffic that is acknowledged and dropped.
    """
    return event_kind == PUSH_EVENT and is_main_branch(event.ref)


def parse_push_event(payload_body: bytes) -> PushEvent:
    """Decode a push delivery body.

    Raises:
        PayloadError: The body is not JSON, or lacks the fields a push
            envelope must carry.
    """
    try:
        return PushEvent.model_validate_json(payload_body)
    except ValidationError as exc:
        raise PayloadError(
            f"invalid push payload: {exc.error_count()} validation error(s): "
            + "; ".join(
                f"{'.'.join(str(p) for p in err['loc']) or '<body>'}: {err['msg']}"
                for err in exc.errors()[:5]
            )
        ) from exc
