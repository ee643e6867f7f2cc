"""Database models - import all models here for Alembic discovery."""

from clabot_api.models.account import User
from clabot_api.models.audit import AuditEvent
from clabot_api.models.convergence import ConvergenceRun
from clabot_api.models.organization import BypassAccount, ClaArchive, Organization
from clabot_api.models.signature import ClaSignature
from clabot_api.models.webhook import WebhookDelivery

__all__ = [
    "User",
    "Organization",
    "ClaArchive",
    "BypassAccount",
    "ClaSignature",
    "WebhookDelivery",
    "AuditEvent",
    "ConvergenceRun",
]
