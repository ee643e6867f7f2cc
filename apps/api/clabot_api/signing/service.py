"""CLA signing."""

import logging
from typing import Optional

from clabot_api.cla.digest import short_label
from clabot_api.cla.store import ComplianceStore
from clabot_api.errors import (
    AlreadySignedError,
    ForbiddenError,
    InvalidRequestError,
    NotFoundError,
    UnauthorizedError,
    VersionMismatchError,
)
from clabot_api.models import ClaSignature, User
from clabot_api.settings import get_settings
from clabot_api.signing.evidence import RequestEvidence, hash_ip, signature_email
from clabot_api.utils.metrics import signatures_created

logger = logging.getLogger(__name__)


class SigningService:
    """Record a contributor's signature on an organization's current CLA."""

    def __init__(self, store: ComplianceStore):
        """Initialize signing service."""
        self.store = store
        self.settings = get_settings()

    def _check_request(
        self,
        user: Optional[User],
        assented: Optional[bool],
        repo_name: Optional[str],
        pr_number: Optional[int],
    ) -> None:
        if user is None:
            raise UnauthorizedError("Sign in with GitHub before signing the CLA")
        if assented is False:
            raise InvalidRequestError("You must agree to the CLA before signing")
        if (repo_name is None) != (pr_number is None):
            raise InvalidRequestError("repoName and prNumber must be provided together")

    def sign(
        self,
        org_slug: str,
        user: Optional[User],
        session_id: Optional[str],
        accepted_digest: Optional[str] = None,
        consent_version: Optional[str] = None,
        assented: Optional[bool] = True,
        repo_name: Optional[str] = None,
        pr_number: Optional[int] = None,
        evidence: Optional[RequestEvidence] = None,
    ) -> ClaSignature:
        """Sign the organization's current CLA and commit.

        Raises NotFoundError, ForbiddenError, InvalidRequestError,
        VersionMismatchError, AlreadySignedError or UnauthorizedError, checked
        in that order.
        """
        self._check_request(user, assented, repo_name, pr_number)

        organization = self.store.get_organization_by_slug(org_slug)
        if organization is None:
            raise NotFoundError(f'Organization "{org_slug}" not found')
        if not organization.is_active:
            raise ForbiddenError("CLA bot is not active for this organization")

        current_digest = organization.cla_digest
        if not current_digest:
            raise InvalidRequestError("This organization has not published a CLA yet")

        accepted = accepted_digest or current_digest
        if accepted != current_digest:
            raise VersionMismatchError(current_digest)

        existing = self.store.get_signature_for_digest(organization.id, user.id, current_digest)
        if existing:
            raise AlreadySignedError(existing)

        if not session_id:
            raise UnauthorizedError("Missing session context")

        evidence = evidence or RequestEvidence()
        email, email_verified, email_source = signature_email(user)

        self.store.get_or_create_archive(organization.id, current_digest, organization.cla_text)
        signature, created = self.store.create_signature(
            organization_id=organization.id,
            user_id=user.id,
            signed_digest=current_digest,
            accepted_digest=accepted,
            consent_version=consent_version or self.settings.consent_text_version,
            assented=True,
            github_id_at_signature=user.github_id,
            github_login_at_signature=user.github_login,
            email=email,
            email_verified=email_verified,
            email_source=email_source,
            session_id=session_id,
            ip_hash=hash_ip(evidence.ip, self.settings.session_secret),
            user_agent=(evidence.user_agent or "")[:1024] or None,
        )
        if not created:
            self.store.db.rollback()
            raise AlreadySignedError(signature)

        payload = {
            "signed_digest": current_digest,
            "label": short_label(current_digest),
            "consent_version": signature.consent_version,
            "email_source": email_source,
        }
        if repo_name is not None:
            payload.update({"repo_name": repo_name, "pr_number": pr_number})
        self.store.append_audit_event(
            "signature.created",
            organization_id=organization.id,
            user_id=user.id,
            actor_github_id=user.github_id,
            actor_github_login=user.github_login,
            payload=payload,
        )
        self.store.db.commit()
        self.store.db.refresh(signature)

        signatures_created.inc()
        logger.info(
            f"CLA signed by {user.github_login} for {organization.slug}",
            extra={"organization": organization.slug, "signature_id": signature.id},
        )
        return signature
