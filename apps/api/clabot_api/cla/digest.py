"""Content addressing for CLA text."""

import hashlib
from typing import Optional

LABEL_LENGTH = 7


def content_address(text: str) -> str:
    """Return the SHA-256 hex digest of the UTF-8 bytes of ``text``."""
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def short_label(digest: Optional[str]) -> str:
    """Short display label for a digest, e.g. ``a3f8c1e``."""
    if not digest:
        return "unknown"
    return digest[:LABEL_LENGTH]
