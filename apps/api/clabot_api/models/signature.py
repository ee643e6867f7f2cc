"""CLA signature model."""

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import relationship

from clabot_api.db.base import Base
from clabot_api.models.account import utcnow


class ClaSignature(Base):
    """Append-only record linking a user to the digest of the CLA they signed.

    Whether a signature is current is decided by comparing ``signed_digest``
    with the organization's live ``cla_digest``; nothing here is ever updated.
    """

    __tablename__ = "cla_signatures"
    __table_args__ = (
        UniqueConstraint(
            "organization_id", "user_id", "signed_digest", name="uq_cla_signatures_org_user_digest"
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    organization_id = Column(Integer, ForeignKey("organizations.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    signed_digest = Column(String(64), nullable=False)
    accepted_digest = Column(String(64), nullable=False)
    consent_version = Column(String(50), nullable=False)
    assented = Column(Boolean, default=True, nullable=False)
    signed_at = Column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)

    # Identity captured at signing time
    github_id_at_signature = Column(String(64), nullable=False)
    github_login_at_signature = Column(String(255), nullable=False)

    # Evidence
    email = Column(String(320), nullable=False)
    email_verified = Column(Boolean, default=False, nullable=False)
    email_source = Column(String(50), default="none", nullable=False)
    session_id = Column(String(255), nullable=False)  # session JWT id
    ip_hash = Column(String(64), nullable=True)  # HMAC-SHA256 of source IP
    user_agent = Column(String(1024), nullable=True)

    # Relationships
    organization = relationship("Organization")
    user = relationship("User")
