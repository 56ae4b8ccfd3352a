"""Webhook signature verification.

GitHub signs each delivery with HMAC-SHA256 over the raw request body
using the secret configured on the webhook, and sends the result in the
X-Hub-Signature-256 header as "sha256=<hex digest>".
"""

import hashlib
import hmac
import logging
from typing import Optional

logger = logging.getLogger(__name__)

SIGNATURE_PREFIX = "sha256="


def compute_signature(raw_body: bytes, secret: str) -> str:
    """Compute the X-Hub-Signature-256 header value for a body."""
    digest = hmac.new(secret.encode("utf-8"), raw_body, hashlib.sha256).hexdigest()
    return SIGNATURE_PREFIX + digest


def verify_signature(
    raw_body: bytes,
    provided_signature: Optional[str],
    secret: Optional[str],
) -> bool:
    """Verify a delivery signature in constant time.

    Args:
        raw_body: The exact request body bytes.
        provided_signature: Value of the X-Hub-Signature-256 header.
        secret: The shared webhook secret.

    Returns:
        True if the signature matches, False otherwise. Also False when the
        header is absent or the secret is not configured; reporting an
        unconfigured secret is left to the caller.
    """
    if not provided_signature or not secret:
        return False

    expected = compute_signature(raw_body, secret)
    # Compare as bytes so non-ASCII header values fail instead of raising.
    return hmac.compare_digest(
        expected.encode("utf-8"),
        provided_signature.encode("utf-8", errors="surrogateescape"),
    )
