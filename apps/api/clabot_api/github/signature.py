"""GitHub webhook signature verification."""

import hashlib
import hmac
import re
from typing import Optional

_SIGNATURE_RE = re.compile(r"^sha256=([0-9a-fA-F]{64})$")


def normalize_webhook_secret(secret: str) -> str:
    """Strip whitespace and one layer of surrounding quotes from a configured secret."""
    trimmed = secret.strip()
    if len(trimmed) >= 2 and trimmed[0] == trimmed[-1] and trimmed[0] in ("'", '"'):
        return trimmed[1:-1]
    return trimmed


def verify_github_signature(secret: str, raw_body: bytes, signature_header: Optional[str]) -> bool:
    """
    Verify an ``X-Hub-Signature-256`` header against the raw request body.

    Args:
        secret: Shared webhook secret
        raw_body: Request body bytes exactly as received
        signature_header: Header value, ``sha256=<hex>``

    Returns:
        True if the signature matches, False otherwise
    """
    if not signature_header:
        return False

    match = _SIGNATURE_RE.match(signature_header.strip())
    if not match:
        return False

    if not isinstance(raw_body, bytes):
        raw_body = raw_body.encode("utf-8")

    expected = hmac.new(secret.encode("utf-8"), raw_body, hashlib.sha256).hexdigest()

    # Constant-time comparison
    return hmac.compare_digest(expected, match.group(1).lower())
