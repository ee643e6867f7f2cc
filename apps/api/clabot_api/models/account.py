"""Contributor account model."""

from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, Integer, String

from clabot_api.db.base import Base


def utcnow() -> datetime:
    """Timezone-aware UTC now, used for column defaults."""
    return datetime.now(timezone.utc)


class User(Base):
    """A GitHub account that signed in to the CLA site or installed the app."""

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    github_id = Column(String(64), nullable=False, unique=True, index=True)  # immutable account id
    github_login = Column(String(255), nullable=False, index=True)
    email = Column(String(320), nullable=False, default="")
    email_verified = Column(Boolean, default=False, nullable=False)
    email_source = Column(String(50), default="none", nullable=False)  # profile, primary_verified, verified, any, none
    name = Column(String(255), nullable=False, default="")
    avatar_url = Column(String(1024), nullable=False, default="")
    role = Column(String(50), default="contributor", nullable=False)  # contributor, admin
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)
