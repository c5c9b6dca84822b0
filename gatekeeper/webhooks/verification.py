"""Webhook signature verification: constant-time HMAC.

Security contract:
- Digest is computed over the raw request bytes, before any JSON parsing
- Comparison uses hmac.compare_digest() (constant-time, no timing attacks)
- Length mismatch returns False before comparing
- Missing header or secret -> verification fails (fail-closed)
- Never raises
"""

from __future__ import annotations

import hashlib
import hmac
import logging

logger = logging.getLogger(__name__)

# Lemon Squeezy sends the hex HMAC-SHA256 of the body in this header.
LEMONSQUEEZY_SIGNATURE_HEADER = "x-signature"


def compute_signature(raw_body: bytes, secret: str) -> str:
    """Lowercase hex HMAC-SHA256 of ``raw_body`` keyed with ``secret``."""
    return hmac.new(secret.encode("utf-8"), raw_body, hashlib.sha256).hexdigest()


def verify_signature(raw_body: bytes, signature_header: str | None, secret: str) -> bool:
    """Verify a hex HMAC-SHA256 signature over the raw body.

    Args:
        raw_body: Request body exactly as received
        signature_header: Value of the signature header (may be missing)
        secret: Shared signing secret

    Returns:
        True if the signature matches
    """
    if not secret:
        logger.warning("Signing secret not set, rejecting webhook")
        return False
    if not signature_header:
        return False

    digest = compute_signature(raw_body, secret).encode("utf-8")
    signature = signature_header.encode("utf-8", errors="replace")

    if len(digest) != len(signature):
        return False
    return hmac.compare_digest(digest, signature)


def verify_lemonsqueezy(raw_body: bytes, headers: dict[str, str], secret: str) -> bool:
    """Verify a Lemon Squeezy delivery.

    Args:
        raw_body: Raw request body
        headers: Request headers (lowercase keys)
        secret: LEMON_SIGNING_SECRET

    Returns:
        True if the X-Signature header is valid
    """
    return verify_signature(raw_body, headers.get(LEMONSQUEEZY_SIGNATURE_HEADER), secret)
