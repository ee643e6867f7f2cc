"""Evidence captured alongside a signature."""

import hashlib
import hmac
from dataclasses import dataclass
from typing import Mapping, Optional

NOREPLY_DOMAIN = "users.noreply.github.com"


@dataclass(frozen=True)
class RequestEvidence:
    ip: Optional[str] = None
    user_agent: Optional[str] = None


def resolve_request_evidence(
    headers: Mapping[str, str], client_host: Optional[str] = None
) -> RequestEvidence:
    """Pick the client IP from proxy headers; the first X-Forwarded-For hop wins."""
    forwarded = headers.get("x-forwarded-for") or ""
    ip = forwarded.split(",")[0].strip() or (headers.get("x-real-ip") or "").strip() or client_host
    return RequestEvidence(ip=ip or None, user_agent=headers.get("user-agent") or None)


def hash_ip(ip: Optional[str], secret: str) -> Optional[str]:
    """HMAC-SHA256 of the IP; the raw address is never stored."""
    if not ip:
        return None
    return hmac.new(secret.encode("utf-8"), ip.encode("utf-8"), hashlib.sha256).hexdigest()


def signature_email(user) -> tuple[str, bool, str]:
    """Return ``(email, verified, source)``, falling back to the noreply address."""
    if user.email:
        return user.email, bool(user.email_verified), user.email_source or "profile"
    return f"{user.github_login}@{NOREPLY_DOMAIN}", False, "none"
