"""Audit log model."""

from sqlalchemy import Column, DateTime, ForeignKey, Integer, JSON, String

from clabot_api.db.base import Base
from clabot_api.models.account import utcnow


class AuditEvent(Base):
    """Append-only audit log for compliance-relevant actions."""

    __tablename__ = "audit_events"

    id = Column(Integer, primary_key=True, index=True)
    event_type = Column(String(100), nullable=False, index=True)  # signature.created, webhook.pr_check, etc.
    organization_id = Column(Integer, ForeignKey("organizations.id"), nullable=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    actor_github_id = Column(String(64), nullable=True)
    actor_github_login = Column(String(255), nullable=True)
    payload_json = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)
