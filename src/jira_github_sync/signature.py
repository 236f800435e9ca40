"""Webhook authentication for inbound Jira deliveries."""

from __future__ import annotations

import hashlib
import hmac
import logging
from typing import TYPE_CHECKING, Final

if TYPE_CHECKING:
    from collections.abc import Mapping

logger: logging.Logger = logging.getLogger(__name__)

# Checked in this order; Jira Cloud sends X-Hub-Signature with a sha256= prefix
SIGNATURE_HEADERS: Final[tuple[str, ...]] = ("x-hub-signature", "x-hub-signature-256")
SECRET_HEADERS: Final[tuple[str, ...]] = (
    "x-atlassian-webhook-secret",
    "x-jira-webhook-secret",
    "x-webhook-secret",
    "x-hook-secret",
)
SECRET_QUERY_PARAMS: Final[tuple[str, ...]] = ("secret", "token")


def _constant_time_equals(provided: str, expected: str) -> bool:
    return hmac.compare_digest(provided.encode("utf-8"), expected.encode("utf-8"))


def compute_signature(raw_body: bytes | str, secret: str) -> str:
    """Return the hex HMAC-SHA256 digest of the raw body."""
    body = raw_body.encode("utf-8") if isinstance(raw_body, str) else raw_body
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


def validate_signature(
    raw_body: bytes | str,
    headers: Mapping[str, str],
    query: Mapping[str, str] | None,
    secret: str | None,
) -> bool:
    """Check an inbound webhook against the shared secret.

    Args:
        raw_body: The request body exactly as received, before any decoding
        headers: Request headers (any case)
        query: Query string parameters, if any
        secret: Shared secret; when empty, validation is skipped

    Returns:
        True if the delivery is authentic (or no secret is configured)
    """
    secret = (secret or "").strip()
    if not secret:
        return True

    lower = {str(name).lower(): value for name, value in headers.items()}

    signature = next((lower[name] for name in SIGNATURE_HEADERS if lower.get(name)), None)
    if signature is not None:
        # Accept "sha256=<hex>" as well as a bare hex digest
        parts = str(signature).split("=")
        provided = parts[1] if len(parts) == 2 else parts[0]
        return _constant_time_equals(provided.strip().lower(), compute_signature(raw_body, secret))

    candidate = next((lower[name] for name in SECRET_HEADERS if lower.get(name)), None)
    if candidate is None and query:
        candidate = next((query[name] for name in SECRET_QUERY_PARAMS if query.get(name)), None)
    if candidate is None:
        logger.debug("No signature header or shared secret present on webhook delivery")
        return False

    return _constant_time_equals(str(candidate).strip(), secret)
