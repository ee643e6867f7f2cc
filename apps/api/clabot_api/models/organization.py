"""Organization, CLA archive and bypass list models."""

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import relationship

from clabot_api.db.base import Base
from clabot_api.models.account import utcnow


class Organization(Base):
    """A GitHub account (organization or personal) with the app installed.

    The live CLA text sits on this row together with its digest. Editing the
    text overwrites both columns; archives are only written when someone signs.
    """

    __tablename__ = "organizations"

    id = Column(Integer, primary_key=True, index=True)
    slug = Column(String(255), nullable=False, unique=True, index=True)
    account_type = Column(String(20), default="organization", nullable=False)  # organization, user
    account_id = Column(String(64), nullable=True)
    name = Column(String(255), nullable=False)
    avatar_url = Column(String(1024), nullable=False, default="")
    installation_id = Column(Integer, nullable=True)
    admin_user_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    cla_text = Column(Text, nullable=False, default="")
    cla_digest = Column(String(64), nullable=True)  # NULL means no CLA configured
    installed_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    # Relationships
    admin_user = relationship("User")
    archives = relationship("ClaArchive", back_populates="organization")
    bypass_accounts = relationship("BypassAccount", back_populates="organization")


class ClaArchive(Base):
    """Immutable snapshot of CLA text, created the first time a digest is signed."""

    __tablename__ = "cla_archives"
    __table_args__ = (
        UniqueConstraint("organization_id", "digest", name="uq_cla_archives_org_digest"),
    )

    id = Column(Integer, primary_key=True, index=True)
    organization_id = Column(Integer, ForeignKey("organizations.id"), nullable=False, index=True)
    digest = Column(String(64), nullable=False)
    cla_text = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    # Relationships
    organization = relationship("Organization", back_populates="archives")


class BypassAccount(Base):
    """Org-scoped allowlist entry exempting an account from signing.

    ``subject_key`` holds the numeric GitHub user id for ``user`` entries and
    the normalized slug (no ``[bot]`` suffix) for ``app_bot`` entries.
    """

    __tablename__ = "org_cla_bypass_accounts"
    __table_args__ = (
        UniqueConstraint(
            "organization_id", "kind", "subject_key", name="uq_bypass_org_kind_subject"
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    organization_id = Column(Integer, ForeignKey("organizations.id"), nullable=False, index=True)
    kind = Column(String(20), nullable=False)  # user, app_bot
    subject_key = Column(String(255), nullable=False)
    github_login = Column(String(255), nullable=False)
    created_by_user_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    # Relationships
    organization = relationship("Organization", back_populates="bypass_accounts")
