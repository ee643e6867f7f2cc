"""Typed errors surfaced across the service boundary."""

from typing import Any, Optional


class ClaError(Exception):
    """Base class for errors returned to API callers."""

    code = "ERROR"
    status_code = 500

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        """Render the error body returned to HTTP callers."""
        return {"code": self.code, "message": self.message, "details": self.details}


class NotFoundError(ClaError):
    """Unknown organization, signature or bypass entry."""

    code = "NOT_FOUND"
    status_code = 404


class ForbiddenError(ClaError):
    """Inactive organization, or requester not allowed to act."""

    code = "FORBIDDEN"
    status_code = 403


class InvalidRequestError(ClaError):
    """Malformed input or missing CLA configuration."""

    code = "BAD_REQUEST"
    status_code = 400


class UnauthorizedError(ClaError):
    """Missing identity or session context."""

    code = "UNAUTHORIZED"
    status_code = 401


class VersionMismatchError(ClaError):
    """The accepted digest is not the organization's current digest."""

    code = "VERSION_MISMATCH"
    status_code = 409

    def __init__(self, current_digest: str):
        super().__init__(
            "CLA version mismatch. Reload the page and review the latest agreement before signing.",
            {"current_digest": current_digest},
        )
        self.current_digest = current_digest


class AlreadySignedError(ClaError):
    """The actor already holds a signature on the current digest."""

    code = "ALREADY_SIGNED"
    status_code = 409

    def __init__(self, signature):
        super().__init__(
            "Already signed current version",
            {"signature_id": signature.id, "signed_digest": signature.signed_digest},
        )
        self.signature = signature


class UpstreamError(ClaError):
    """GitHub could not be reached while serving a request."""

    code = "UPSTREAM_ERROR"
    status_code = 502
