"""Schedule background convergence runs.

Scheduling happens after the triggering change is committed. A failure to
enqueue is logged and audited; it never undoes the change that caused it.
"""

import logging
import uuid
from typing import Callable, Optional

from clabot_api.cla.store import ComplianceStore
from clabot_api.convergence.request import ConvergenceRequest, ScheduleResult
from clabot_api.github.types import GitHubActor
from clabot_api.models import Organization
from clabot_api.utils.metrics import convergence_runs

logger = logging.getLogger(__name__)

Dispatch = Callable[[ConvergenceRequest], None]


def celery_dispatch(request: ConvergenceRequest) -> None:
    """Enqueue on the worker with the run id as the Celery task id."""
    from clabot_api.celery_client import send_convergence_task

    send_convergence_task(request.to_dict(), task_id=request.run_id)


class ConvergenceScheduler:
    """Record and enqueue convergence runs for an organization."""

    def __init__(self, store: ComplianceStore, dispatch: Optional[Dispatch] = None):
        self.store = store
        self.dispatch = dispatch or celery_dispatch

    def schedule(
        self,
        organization: Organization,
        trigger: str,
        actor: Optional[GitHubActor] = None,
        expected_digest: Optional[str] = None,
        target_repo: Optional[str] = None,
        target_pr_number: Optional[int] = None,
    ) -> ScheduleResult:
        """Record a queued run and enqueue it.

        ``target_repo``/``target_pr_number`` name a pull request the actor signed
        from; it is reconciled even if the open pull request listing misses it.
        """
        log_extra = {"organization": organization.slug, "trigger": trigger}

        if not organization.installation_id:
            logger.info("Convergence skipped: organization has no installation", extra=log_extra)
            convergence_runs.labels(trigger=trigger, status="skipped").inc()
            return ScheduleResult(scheduled=False, skipped_reason="missing_installation_id")

        request = ConvergenceRequest(
            run_id=str(uuid.uuid4()),
            organization_id=organization.id,
            trigger=trigger,
            actor_github_id=str(actor.id) if actor and actor.id is not None else None,
            actor_github_login=actor.login if actor else None,
            expected_digest=expected_digest,
            target_repo=target_repo,
            target_pr_number=target_pr_number,
        )
        log_extra["run_id"] = request.run_id

        self.store.create_convergence_run(
            request.run_id,
            trigger,
            organization_id=organization.id,
            actor_github_id=request.actor_github_id,
            actor_github_login=request.actor_github_login,
            expected_digest=expected_digest,
        )
        self.store.db.commit()

        try:
            self.dispatch(request)
        except Exception as e:
            logger.warning(f"Failed to enqueue convergence run: {e}", exc_info=True, extra=log_extra)
            run = self.store.get_convergence_run(request.run_id)
            run.status = "failed"
            run.error = str(e)[:1000]
            self.store.append_audit_event(
                "convergence.schedule_failed",
                organization_id=organization.id,
                actor_github_id=request.actor_github_id,
                actor_github_login=request.actor_github_login,
                payload={"run_id": request.run_id, "trigger": trigger, "error": str(e)[:500]},
            )
            self.store.db.commit()
            convergence_runs.labels(trigger=trigger, status="schedule_failed").inc()
            return ScheduleResult(scheduled=False, run_id=request.run_id, error=str(e))

        logger.info("Convergence scheduled", extra=log_extra)
        convergence_runs.labels(trigger=trigger, status="scheduled").inc()
        return ScheduleResult(scheduled=True, run_id=request.run_id)
