"""GitHub webhook state machine.

Every delivery is first reserved in the delivery ledger; a delivery id that
was already reserved is acknowledged without side effects. The reservation is
committed on its own so a concurrent duplicate sees it immediately.
"""

import logging
import time
from typing import Callable, Optional

from pydantic import ValidationError
from sqlalchemy.orm import Session

from clabot_api.cla.store import ComplianceStore
from clabot_api.compliance.reconcile import PullRequestReconciler
from clabot_api.compliance.service import is_personal_account_owner
from clabot_api.convergence.request import Trigger
from clabot_api.convergence.scheduler import ConvergenceScheduler
from clabot_api.errors import (
    ClaError,
    ForbiddenError,
    InvalidRequestError,
    NotFoundError,
    UpstreamError,
)
from clabot_api.github.client import GitHubAPIError, GitHubClient
from clabot_api.github.factory import get_github_client
from clabot_api.github.types import GitHubActor, PullRequest
from clabot_api.models import Organization
from clabot_api.utils.metrics import webhook_deliveries, webhook_duration
from clabot_api.webhooks.payloads import (
    Account,
    Installation,
    InstallationEvent,
    InstallationRepositoriesEvent,
    IssueCommentEvent,
    MergeGroupEvent,
    PingEvent,
    PullRequestEvent,
)

logger = logging.getLogger(__name__)

PR_ACTIONS = {"opened", "reopened", "synchronize"}
RECHECK_COMMAND = "/recheck"
RECHECK_PERMISSIONS = {"admin", "maintain", "write"}


def actor_from_account(account: Account) -> GitHubActor:
    return GitHubActor(login=account.login, id=account.id, account_type=account.type)


def account_type_for(account: Account) -> str:
    return "user" if account.type == "User" else "organization"


def is_recheck_command(body: str) -> bool:
    return body.strip().lower().startswith(RECHECK_COMMAND)


class WebhookHandler:
    """Handle verified GitHub webhook deliveries."""

    def __init__(
        self,
        db: Session,
        github_factory: Callable[[Optional[int]], GitHubClient] = get_github_client,
        scheduler: Optional[ConvergenceScheduler] = None,
    ):
        self.db = db
        self.store = ComplianceStore(db)
        self.github_factory = github_factory
        self.scheduler = scheduler or ConvergenceScheduler(self.store)
        self._handlers = {
            "ping": self._handle_ping,
            "installation": self._handle_installation,
            "installation_repositories": self._handle_installation_repositories,
            "pull_request": self._handle_pull_request,
            "issue_comment": self._handle_issue_comment,
            "merge_group": self._handle_merge_group,
        }

    def handle(self, delivery_id: Optional[str], event: Optional[str], payload: dict) -> dict:
        if not delivery_id or not event:
            raise InvalidRequestError("Missing X-GitHub-Delivery or X-GitHub-Event header")

        log_extra = {"delivery_id": delivery_id, "event": event}
        if not self.store.reserve_delivery(delivery_id, event):
            self.db.rollback()
            logger.info("Duplicate delivery ignored", extra=log_extra)
            webhook_deliveries.labels(event=event, outcome="duplicate").inc()
            return {"ok": True, "message": "Duplicate delivery ignored", "duplicate": True}
        self.db.commit()

        handler = self._handlers.get(event)
        if handler is None:
            webhook_deliveries.labels(event=event, outcome="ignored").inc()
            return {"ok": True, "message": f"Event {event} ignored"}

        started = time.monotonic()
        try:
            result = handler(payload)
            self.db.commit()
        except ValidationError as e:
            self.db.rollback()
            webhook_deliveries.labels(event=event, outcome="invalid").inc()
            errors = e.errors(include_url=False, include_context=False, include_input=False)
            raise InvalidRequestError(f"Malformed {event} payload", {"errors": errors}) from e
        except GitHubAPIError as e:
            self.db.rollback()
            webhook_deliveries.labels(event=event, outcome="upstream_error").inc()
            logger.error(f"GitHub API error handling delivery: {e}", extra=log_extra)
            raise UpstreamError(str(e)) from e
        except ClaError as e:
            self.db.rollback()
            webhook_deliveries.labels(event=event, outcome=e.code.lower()).inc()
            raise
        finally:
            webhook_duration.labels(event=event).observe(time.monotonic() - started)

        webhook_deliveries.labels(event=event, outcome="processed").inc()
        logger.info(result.get("message", "Delivery processed"), extra=log_extra)
        return result

    # Helpers

    def _organization_for(self, owner: Account, installation: Optional[Installation]) -> Organization:
        organization = self.store.get_organization_by_slug(owner.login)
        if organization is None:
            raise NotFoundError(f'Organization "{owner.login}" not found')
        if installation and installation.id != organization.installation_id:
            logger.info(
                "Updating installation id",
                extra={"organization": organization.slug, "installation_id": installation.id},
            )
            self.store.update_installation(organization, installation.id)
        return organization

    def _reconciler(self, organization: Organization) -> PullRequestReconciler:
        return PullRequestReconciler(self.store, self.github_factory(organization.installation_id))

    def _is_recheck_authorized(
        self, github: GitHubClient, organization: Organization, repo: str,
        pull_request: PullRequest, requester: GitHubActor,
    ) -> bool:
        author = pull_request.author
        if requester.login.lower() == author.login.lower():
            return True
        if requester.id is not None and author.id is not None and requester.id == author.id:
            return True
        if is_personal_account_owner(organization, requester):
            return True
        if organization.account_type != "user":
            if github.check_org_membership(organization.slug, requester.login) == "active":
                return True
        permission = github.get_repository_permission(organization.slug, repo, requester.login)
        return permission in RECHECK_PERMISSIONS

    # Event handlers

    def _handle_ping(self, payload: dict) -> dict:
        event = PingEvent.model_validate(payload)
        return {"ok": True, "message": "pong", "zen": event.zen, "hook_id": event.hook_id}

    def _handle_installation(self, payload: dict) -> dict:
        event = InstallationEvent.model_validate(payload)
        account = event.installation.account
        if account is None:
            raise InvalidRequestError("Installation payload has no account")

        if event.action in ("created", "unsuspend"):
            return self._register_installation(event, account)

        if event.action in ("deleted", "suspend"):
            organization = self.store.get_organization_by_slug(account.login)
            if organization is None:
                raise NotFoundError(f'Organization "{account.login}" not found')
            self.store.set_organization_active(organization, False)
            self.store.update_installation(organization, None)
            self.store.append_audit_event(
                f"installation.{event.action}",
                organization_id=organization.id,
                actor_github_id=event.sender.id if event.sender else None,
                actor_github_login=event.sender.login if event.sender else None,
                payload={"installation_id": event.installation.id},
            )
            return {"ok": True, "message": f"Installation {event.action}: {organization.slug} deactivated"}

        return {"ok": True, "message": f"Installation action {event.action} ignored"}

    def _register_installation(self, event: InstallationEvent, account: Account) -> dict:
        admin_user = None
        if event.sender and event.sender.id is not None:
            admin_user = self.store.upsert_user(
                event.sender.id,
                event.sender.login,
                avatar_url=event.sender.avatar_url,
                role="admin",
            )

        organization = self.store.get_organization_by_slug(account.login)
        if organization is None:
            organization = self.store.create_organization(
                slug=account.login,
                account_type=account_type_for(account),
                account_id=str(account.id) if account.id is not None else None,
                name=account.name or account.login,
                avatar_url=account.avatar_url,
                installation_id=event.installation.id,
                admin_user_id=admin_user.id if admin_user else None,
            )
            reactivated = False
        else:
            reactivated = not organization.is_active
            self.store.update_installation(
                organization,
                event.installation.id,
                account_type=account_type_for(account),
                account_id=str(account.id) if account.id is not None else None,
            )
            self.store.set_organization_active(organization, True)
            if organization.admin_user_id is None and admin_user is not None:
                organization.admin_user_id = admin_user.id

        self.store.append_audit_event(
            f"installation.{event.action}",
            organization_id=organization.id,
            user_id=admin_user.id if admin_user else None,
            actor_github_id=event.sender.id if event.sender else None,
            actor_github_login=event.sender.login if event.sender else None,
            payload={"installation_id": event.installation.id, "reactivated": reactivated},
        )
        self.db.commit()

        result = {"ok": True, "message": f"Installation {event.action}: {organization.slug} active"}
        if reactivated:
            result["convergence"] = self.scheduler.schedule(organization, Trigger.ACTIVATION).to_dict()
        return result

    def _handle_installation_repositories(self, payload: dict) -> dict:
        event = InstallationRepositoriesEvent.model_validate(payload)
        account = event.installation.account
        if account is None:
            raise InvalidRequestError("Installation payload has no account")
        organization = self.store.get_organization_by_slug(account.login)
        if organization is None:
            raise NotFoundError(f'Organization "{account.login}" not found')

        account_type = account_type_for(account)
        account_id = str(account.id) if account.id is not None else None
        avatar_url = account.avatar_url
        try:
            installation = self.github_factory(event.installation.id).get_installation(event.installation.id)
        except GitHubAPIError as e:
            logger.warning(
                f"Could not refresh installation {event.installation.id}, using payload account: {e}",
                extra={"organization": organization.slug},
            )
        else:
            account_type = "user" if installation.account_type == "User" else "organization"
            if installation.account_id is not None:
                account_id = str(installation.account_id)
            avatar_url = installation.avatar_url or avatar_url

        self.store.update_installation(
            organization, event.installation.id, account_type=account_type, account_id=account_id
        )
        if avatar_url:
            organization.avatar_url = avatar_url
        return {
            "ok": True,
            "message": f"Installation repositories {event.action} for {organization.slug}",
            "added": len(event.repositories_added),
            "removed": len(event.repositories_removed),
        }

    def _handle_pull_request(self, payload: dict) -> dict:
        event = PullRequestEvent.model_validate(payload)
        if event.action not in PR_ACTIONS:
            return {"ok": True, "message": f"Pull request action {event.action} ignored"}

        organization = self._organization_for(event.repository.owner, event.installation)
        pull_request = PullRequest(
            repo=event.repository.name,
            number=event.pull_request.number,
            head_sha=event.pull_request.head.sha,
            author=actor_from_account(event.pull_request.user),
            state=event.pull_request.state,
        )
        result = self._reconciler(organization).reconcile(organization, pull_request)
        return {"ok": True, "message": f"Check updated: {result.decision}", "result": result.to_dict()}

    def _handle_issue_comment(self, payload: dict) -> dict:
        event = IssueCommentEvent.model_validate(payload)
        if event.action != "created" or not is_recheck_command(event.comment.body):
            return {"ok": True, "message": "Comment ignored"}
        if event.issue.pull_request is None:
            return {"ok": True, "message": "Recheck ignored: issue is not a pull request"}

        organization = self._organization_for(event.repository.owner, event.installation)
        owner = organization.slug
        repo = event.repository.name
        number = event.issue.number
        requester = actor_from_account(event.comment.user)

        github = self.github_factory(organization.installation_id)
        pull_request = github.get_pull_request(owner, repo, number)
        if pull_request is None:
            raise NotFoundError(f"Pull request {owner}/{repo}#{number} not found")
        if not self._is_recheck_authorized(github, organization, repo, pull_request, requester):
            raise ForbiddenError(
                f"@{requester.login} is not allowed to recheck {owner}/{repo}#{number}"
            )

        reconciler = PullRequestReconciler(self.store, github)
        result = reconciler.reconcile(organization, pull_request)
        return {"ok": True, "message": f"Recheck complete: {result.decision}", "result": result.to_dict()}

    def _handle_merge_group(self, payload: dict) -> dict:
        event = MergeGroupEvent.model_validate(payload)
        if event.action != "checks_requested":
            return {"ok": True, "message": f"Merge group action {event.action} ignored"}

        organization = self._organization_for(event.repository.owner, event.installation)
        run, _ = self._reconciler(organization).report_merge_queue(
            organization.slug, event.repository.name, event.merge_group.head_sha
        )
        return {"ok": True, "message": "Merge queue check passed", "check_run_id": run.id}
