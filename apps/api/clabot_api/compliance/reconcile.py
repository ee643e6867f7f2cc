"""Drive a pull request's check run and bot comment to match its outcome.

Each pass looks up what already exists on GitHub and updates it in place, so
running it again against the same facts changes nothing new.
"""

import logging
from dataclasses import asdict, dataclass
from typing import Optional

from clabot_api.cla.store import ComplianceStore
from clabot_api.compliance.messages import (
    check_output,
    conclusion_for,
    merge_queue_output,
    render_comment,
)
from clabot_api.compliance.resolver import Outcome
from clabot_api.compliance.service import ComplianceService
from clabot_api.github.client import GitHubClient
from clabot_api.github.types import CheckRun, PullRequest
from clabot_api.models import Organization
from clabot_api.settings import get_settings
from clabot_api.utils.metrics import check_conclusions

logger = logging.getLogger(__name__)


@dataclass
class ReconcileResult:
    """What one reconciliation pass did on GitHub."""

    repo: str
    number: int
    head_sha: str
    author: str
    decision: str
    conclusion: str
    check_run_id: int
    check_action: str  # created, updated
    comment_action: str  # created, updated, unchanged, deleted, none
    comment_id: Optional[int] = None

    def to_dict(self) -> dict:
        return asdict(self)


class PullRequestReconciler:
    """Resolve compliance for a PR author and reconcile GitHub state."""

    def __init__(
        self,
        store: ComplianceStore,
        github: GitHubClient,
        base_url: Optional[str] = None,
        check_name: Optional[str] = None,
    ):
        settings = get_settings()
        self.store = store
        self.github = github
        self.base_url = base_url or settings.app_base_url
        self.check_name = check_name or settings.check_name
        self.compliance = ComplianceService(store)

    def upsert_check_run(
        self, owner: str, repo: str, head_sha: str, conclusion: str, title: str, summary: str
    ) -> tuple[CheckRun, str]:
        existing = self.github.find_check_run(owner, repo, head_sha, self.check_name)
        if existing:
            run = self.github.update_check_run(owner, repo, existing.id, conclusion, title, summary)
            return run, "updated"
        run = self.github.create_check_run(
            owner, repo, self.check_name, head_sha, conclusion, title, summary
        )
        return run, "created"

    def sync_comment(
        self, owner: str, repo: str, number: int, body: Optional[str]
    ) -> tuple[str, Optional[int]]:
        """Converge the bot comment to ``body``; None means no comment should exist."""
        existing = self.github.find_bot_comment(owner, repo, number)
        if body is None:
            if existing is None:
                return "none", None
            self.github.delete_comment(owner, repo, existing.id)
            return "deleted", existing.id
        if existing is None:
            created = self.github.create_comment(owner, repo, number, body)
            return "created", created.id
        if existing.body == body:
            return "unchanged", existing.id
        updated = self.github.update_comment(owner, repo, existing.id, body)
        return "updated", updated.id

    def apply(
        self, organization: Organization, pull_request: PullRequest, outcome: Outcome
    ) -> ReconcileResult:
        owner = organization.slug
        author = pull_request.author
        conclusion = conclusion_for(outcome)
        title, summary = check_output(outcome, owner, author.login)

        run, check_action = self.upsert_check_run(
            owner, pull_request.repo, pull_request.head_sha, conclusion, title, summary
        )

        body = None
        if not outcome.passing:
            body = render_comment(outcome, organization.name, owner, author.login, self.base_url)
        comment_action, comment_id = self.sync_comment(owner, pull_request.repo, pull_request.number, body)

        result = ReconcileResult(
            repo=pull_request.repo,
            number=pull_request.number,
            head_sha=pull_request.head_sha,
            author=author.login,
            decision=outcome.decision,
            conclusion=conclusion,
            check_run_id=run.id,
            check_action=check_action,
            comment_action=comment_action,
            comment_id=comment_id,
        )
        self.store.append_audit_event(
            "webhook.pr_check",
            organization_id=organization.id,
            actor_github_id=author.id,
            actor_github_login=author.login,
            payload={"owner": owner, **result.to_dict()},
        )
        check_conclusions.labels(decision=outcome.decision, conclusion=conclusion).inc()
        logger.info(
            f"Reconciled {owner}/{pull_request.repo}#{pull_request.number}: {outcome.decision}",
            extra={"organization": owner, "decision": outcome.decision, "conclusion": conclusion},
        )
        return result

    def reconcile(self, organization: Organization, pull_request: PullRequest) -> ReconcileResult:
        outcome = self.compliance.resolve_for_actor(organization, pull_request.author, self.github)
        return self.apply(organization, pull_request, outcome)

    def report_merge_queue(self, owner: str, repo: str, head_sha: str) -> tuple[CheckRun, str]:
        """Merge groups always pass; compliance was enforced on the source PRs."""
        title, summary = merge_queue_output()
        return self.upsert_check_run(owner, repo, head_sha, "success", title, summary)
