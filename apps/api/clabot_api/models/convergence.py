"""Convergence run model."""

from sqlalchemy import Column, DateTime, ForeignKey, Integer, JSON, String, Text

from clabot_api.db.base import Base
from clabot_api.models.account import utcnow


class ConvergenceRun(Base):
    """State of one scheduled convergence run, keyed by the Celery task id."""

    __tablename__ = "convergence_runs"

    run_id = Column(String(36), primary_key=True)
    organization_id = Column(Integer, ForeignKey("organizations.id"), nullable=True, index=True)
    trigger = Column(String(50), nullable=False)  # cla_updated, bypass_added, bypass_removed, signature, activation
    status = Column(String(20), default="queued", nullable=False)  # queued, running, completed, failed, superseded, skipped
    actor_github_id = Column(String(64), nullable=True)
    actor_github_login = Column(String(255), nullable=True)
    expected_digest = Column(String(64), nullable=True)
    summary_json = Column(JSON, nullable=True)
    error = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    finished_at = Column(DateTime(timezone=True), nullable=True)
