"""Convergence run request, passed to the worker as JSON kwargs."""

from dataclasses import asdict, dataclass, field
from typing import Optional


class Trigger:
    CLA_UPDATED = "cla_updated"
    BYPASS_ADDED = "bypass_added"
    BYPASS_REMOVED = "bypass_removed"
    SIGNATURE = "signature"
    ACTIVATION = "activation"


@dataclass
class ConvergenceRequest:
    run_id: str
    organization_id: int
    trigger: str
    actor_github_id: Optional[str] = None
    actor_github_login: Optional[str] = None
    expected_digest: Optional[str] = None
    target_repo: Optional[str] = None
    target_pr_number: Optional[int] = None

    @property
    def per_actor(self) -> bool:
        return bool(self.actor_github_id or self.actor_github_login)

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "ConvergenceRequest":
        return cls(**{key: data.get(key) for key in cls.__dataclass_fields__})


@dataclass
class ScheduleResult:
    scheduled: bool
    run_id: Optional[str] = None
    error: Optional[str] = None
    skipped_reason: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "scheduled": self.scheduled,
            "runId": self.run_id,
            "error": self.error,
            "skippedReason": self.skipped_reason,
        }


@dataclass
class ConvergenceSummary:
    run_id: str
    status: str = "completed"
    skipped_reason: Optional[str] = None
    attempted: int = 0
    reconciled: int = 0
    passing: int = 0
    failing: int = 0
    comments_created: int = 0
    comments_updated: int = 0
    comments_deleted: int = 0
    errors: list = field(default_factory=list)
    targeted_pr_status: str = "not_requested"

    def to_dict(self) -> dict:
        return {
            "runId": self.run_id,
            "status": self.status,
            "skippedReason": self.skipped_reason,
            "attempted": self.attempted,
            "reconciled": self.reconciled,
            "passing": self.passing,
            "failing": self.failing,
            "commentsCreated": self.comments_created,
            "commentsUpdated": self.comments_updated,
            "commentsDeleted": self.comments_deleted,
            "errors": list(self.errors),
            "targetedPrStatus": self.targeted_pr_status,
        }
