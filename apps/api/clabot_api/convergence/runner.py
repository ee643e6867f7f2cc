"""Execute a convergence run: reconcile every affected open pull request."""

import logging
from typing import Callable, Optional

from sqlalchemy.orm import Session

from clabot_api.cla.store import ComplianceStore
from clabot_api.compliance.reconcile import PullRequestReconciler
from clabot_api.convergence.request import ConvergenceRequest, ConvergenceSummary
from clabot_api.github.client import GitHubAPIError, GitHubClient
from clabot_api.github.factory import get_github_client
from clabot_api.github.types import PullRequest
from clabot_api.models.account import utcnow
from clabot_api.utils.metrics import convergence_pr_errors, convergence_runs

logger = logging.getLogger(__name__)


def authored_by(pull_request: PullRequest, request: ConvergenceRequest) -> bool:
    author = pull_request.author
    if request.actor_github_id and author.id is not None:
        return str(author.id) == request.actor_github_id
    login = (request.actor_github_login or "").lower()
    return bool(login) and author.login.lower() == login


class ConvergenceRunner:
    """Re-evaluate open pull requests after an organization-level change."""

    def __init__(
        self,
        db: Session,
        github_factory: Callable[[Optional[int]], GitHubClient] = get_github_client,
    ):
        self.db = db
        self.store = ComplianceStore(db)
        self.github_factory = github_factory

    def _finish(self, request: ConvergenceRequest, summary: ConvergenceSummary, error: Optional[str] = None):
        run = self.store.get_convergence_run(request.run_id)
        if run is None:
            # Synchronous runs from the CLI have no scheduled row
            organization_id = None if summary.skipped_reason == "org_not_found" else request.organization_id
            run = self.store.create_convergence_run(
                request.run_id,
                request.trigger,
                organization_id=organization_id,
                actor_github_id=request.actor_github_id,
                actor_github_login=request.actor_github_login,
                expected_digest=request.expected_digest,
            )
        run.status = summary.status
        run.summary_json = summary.to_dict()
        run.error = error
        run.finished_at = utcnow()
        self.db.commit()
        convergence_runs.labels(trigger=request.trigger, status=summary.status).inc()

    def mark_failed(self, request: ConvergenceRequest, error: str) -> ConvergenceSummary:
        """Record a run that raised before it could finish."""
        summary = ConvergenceSummary(run_id=request.run_id, status="failed")
        organization = self.store.get_organization(request.organization_id)
        if organization is not None:
            self.store.append_audit_event(
                "convergence.failed",
                organization_id=organization.id,
                payload={"run_id": request.run_id, "trigger": request.trigger, "error": error[:500]},
            )
        self._finish(request, summary, error=error[:1000])
        return summary

    def _mark_running(self, request: ConvergenceRequest) -> None:
        run = self.store.get_convergence_run(request.run_id)
        if run is not None:
            run.status = "running"
            self.db.commit()

    def _targeted_pull_request(
        self, github: GitHubClient, owner: str, request: ConvergenceRequest, summary: ConvergenceSummary
    ) -> Optional[PullRequest]:
        """The pull request the signer signed from, if it exists and is theirs."""
        if not request.target_repo or not request.target_pr_number:
            return None
        pull_request = github.get_pull_request(owner, request.target_repo, int(request.target_pr_number))
        if pull_request is None:
            summary.targeted_pr_status = "pull_request_not_found"
            return None
        if not authored_by(pull_request, request):
            summary.targeted_pr_status = "signer_not_pr_author"
            return None
        summary.targeted_pr_status = "matched"
        return pull_request

    def run(self, request: ConvergenceRequest) -> ConvergenceSummary:
        summary = ConvergenceSummary(run_id=request.run_id)
        log_extra = {"run_id": request.run_id, "trigger": request.trigger}
        self._mark_running(request)

        organization = self.store.get_organization(request.organization_id)
        if organization is None:
            logger.warning("Convergence skipped: organization not found", extra=log_extra)
            summary.status = "skipped"
            summary.skipped_reason = "org_not_found"
            self._finish(request, summary)
            return summary
        log_extra["organization"] = organization.slug

        if request.expected_digest and organization.cla_digest != request.expected_digest:
            logger.info("Convergence superseded by a newer CLA edit", extra=log_extra)
            summary.status = "superseded"
            summary.skipped_reason = "superseded"
            self.store.append_audit_event(
                "convergence.superseded",
                organization_id=organization.id,
                payload={
                    "run_id": request.run_id,
                    "trigger": request.trigger,
                    "expected_digest": request.expected_digest,
                    "current_digest": organization.cla_digest,
                },
            )
            self._finish(request, summary)
            return summary

        if not organization.installation_id:
            summary.status = "skipped"
            summary.skipped_reason = "missing_installation_id"
            self._finish(request, summary)
            return summary

        try:
            github = self.github_factory(organization.installation_id)
            targeted = self._targeted_pull_request(github, organization.slug, request, summary)
            pull_requests = github.list_open_pull_requests(organization.slug)
        except GitHubAPIError as e:
            logger.error(f"Convergence failed loading pull requests: {e}", extra=log_extra)
            summary.status = "failed"
            self.store.append_audit_event(
                "convergence.failed",
                organization_id=organization.id,
                payload={"run_id": request.run_id, "trigger": request.trigger, "error": str(e)[:500]},
            )
            self._finish(request, summary, error=str(e)[:1000])
            return summary

        if request.per_actor:
            pull_requests = [pr for pr in pull_requests if authored_by(pr, request)]
        if targeted is not None:
            pull_requests = [targeted] + [
                pr for pr in pull_requests
                if (pr.repo, pr.number) != (targeted.repo, targeted.number)
            ]

        reconciler = PullRequestReconciler(self.store, github)
        for pull_request in pull_requests:
            summary.attempted += 1
            try:
                result = reconciler.reconcile(organization, pull_request)
                self.db.commit()
            except Exception as e:
                self.db.rollback()
                logger.exception(
                    f"Failed to reconcile {pull_request.repo}#{pull_request.number}", extra=log_extra
                )
                convergence_pr_errors.inc()
                summary.errors.append(
                    {"repo": pull_request.repo, "number": pull_request.number, "error": str(e)[:500]}
                )
                continue

            summary.reconciled += 1
            if result.conclusion == "success":
                summary.passing += 1
            else:
                summary.failing += 1
            if result.comment_action == "created":
                summary.comments_created += 1
            elif result.comment_action == "updated":
                summary.comments_updated += 1
            elif result.comment_action == "deleted":
                summary.comments_deleted += 1

        self.store.append_audit_event(
            "convergence.completed",
            organization_id=organization.id,
            actor_github_id=request.actor_github_id,
            actor_github_login=request.actor_github_login,
            payload={"trigger": request.trigger, **summary.to_dict()},
        )
        self._finish(request, summary)
        logger.info(
            f"Convergence completed: {summary.reconciled}/{summary.attempted} reconciled",
            extra=log_extra,
        )
        return summary
