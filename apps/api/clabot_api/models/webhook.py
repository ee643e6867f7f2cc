"""Webhook delivery ledger model."""

from sqlalchemy import Column, DateTime, String

from clabot_api.db.base import Base
from clabot_api.models.account import utcnow


class WebhookDelivery(Base):
    """One row per GitHub delivery id; the primary key makes processing idempotent."""

    __tablename__ = "webhook_deliveries"

    delivery_id = Column(String(255), primary_key=True)
    event = Column(String(100), nullable=False)
    received_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
