"""In-memory GitHub client for development mode and tests."""

import itertools
import threading
from functools import lru_cache
from typing import Optional

from clabot_api.github.client import GitHubAPIError, GitHubClient
from clabot_api.github.types import (
    CheckRun,
    GitHubActor,
    InstallationAccount,
    IssueComment,
    PullRequest,
)

BOT_LOGIN = "clabot[bot]"


def _key(value: str) -> str:
    return value.strip().lower()


class InMemoryGitHubClient(GitHubClient):
    """Keeps pull requests, members, check runs and comments in dictionaries."""

    def __init__(self):
        self._lock = threading.RLock()
        self._ids = itertools.count(1)
        self.pull_requests: dict[tuple[str, str, int], PullRequest] = {}
        self.members: dict[str, set[str]] = {}
        self.permissions: dict[tuple[str, str, str], str] = {}
        self.check_runs: dict[tuple[str, str], list[CheckRun]] = {}
        self.comments: dict[tuple[str, str, int], list[IssueComment]] = {}
        self.installations: dict[int, InstallationAccount] = {}

    # Fixture helpers

    def add_pull_request(
        self, owner: str, repo: str, number: int, head_sha: str, author: GitHubActor, state: str = "open"
    ) -> PullRequest:
        pull_request = PullRequest(repo=repo, number=number, head_sha=head_sha, author=author, state=state)
        with self._lock:
            self.pull_requests[(_key(owner), repo, number)] = pull_request
        return pull_request

    def add_member(self, org: str, login: str) -> None:
        with self._lock:
            self.members.setdefault(_key(org), set()).add(_key(login))

    def set_permission(self, owner: str, repo: str, login: str, permission: str) -> None:
        with self._lock:
            self.permissions[(_key(owner), repo, _key(login))] = permission

    def add_installation(self, account: InstallationAccount) -> None:
        with self._lock:
            self.installations[account.installation_id] = account

    def check_runs_for(self, owner: str, head_sha: str) -> list[CheckRun]:
        with self._lock:
            return list(self.check_runs.get((_key(owner), head_sha), []))

    def comments_for(self, owner: str, repo: str, number: int) -> list[IssueComment]:
        with self._lock:
            return list(self.comments.get((_key(owner), repo, number), []))

    def reset(self) -> None:
        with self._lock:
            self.pull_requests.clear()
            self.members.clear()
            self.permissions.clear()
            self.check_runs.clear()
            self.comments.clear()
            self.installations.clear()

    # GitHubClient

    def get_pull_request(self, owner: str, repo: str, number: int) -> Optional[PullRequest]:
        with self._lock:
            return self.pull_requests.get((_key(owner), repo, number))

    def list_open_pull_requests(self, owner: str) -> list[PullRequest]:
        with self._lock:
            return [
                pull_request
                for (pr_owner, _, _), pull_request in sorted(
                    self.pull_requests.items(), key=lambda item: (item[0][1], item[0][2])
                )
                if pr_owner == _key(owner) and pull_request.state == "open"
            ]

    def check_org_membership(self, org: str, login: str) -> str:
        with self._lock:
            return "active" if _key(login) in self.members.get(_key(org), set()) else "not_member"

    def get_repository_permission(self, owner: str, repo: str, login: str) -> str:
        with self._lock:
            return self.permissions.get((_key(owner), repo, _key(login)), "none")

    def find_check_run(self, owner: str, repo: str, head_sha: str, name: str) -> Optional[CheckRun]:
        matching = [run for run in self.check_runs_for(owner, head_sha) if run.name == name]
        return max(matching, key=lambda run: run.id) if matching else None

    def create_check_run(
        self, owner: str, repo: str, name: str, head_sha: str, conclusion: str, title: str, summary: str
    ) -> CheckRun:
        with self._lock:
            run = CheckRun(
                id=next(self._ids),
                name=name,
                head_sha=head_sha,
                status="completed",
                conclusion=conclusion,
                title=title,
                summary=summary,
            )
            self.check_runs.setdefault((_key(owner), head_sha), []).append(run)
            return run

    def update_check_run(
        self, owner: str, repo: str, check_run_id: int, conclusion: str, title: str, summary: str
    ) -> CheckRun:
        with self._lock:
            for runs in self.check_runs.values():
                for run in runs:
                    if run.id == check_run_id:
                        run.status = "completed"
                        run.conclusion = conclusion
                        run.title = title
                        run.summary = summary
                        return run
        raise GitHubAPIError(f"Check run {check_run_id} not found", status_code=404)

    def list_issue_comments(self, owner: str, repo: str, number: int) -> list[IssueComment]:
        return self.comments_for(owner, repo, number)

    def create_comment(self, owner: str, repo: str, number: int, body: str) -> IssueComment:
        with self._lock:
            comment = IssueComment(id=next(self._ids), body=body, author_login=BOT_LOGIN)
            self.comments.setdefault((_key(owner), repo, number), []).append(comment)
            return comment

    def update_comment(self, owner: str, repo: str, comment_id: int, body: str) -> IssueComment:
        with self._lock:
            for (comment_owner, comment_repo, _), comments in self.comments.items():
                if comment_owner != _key(owner) or comment_repo != repo:
                    continue
                for comment in comments:
                    if comment.id == comment_id:
                        comment.body = body
                        return comment
        raise GitHubAPIError(f"Comment {comment_id} not found", status_code=404)

    def delete_comment(self, owner: str, repo: str, comment_id: int) -> None:
        with self._lock:
            for (comment_owner, comment_repo, _), comments in self.comments.items():
                if comment_owner != _key(owner) or comment_repo != repo:
                    continue
                comments[:] = [comment for comment in comments if comment.id != comment_id]

    def get_installation(self, installation_id: int) -> InstallationAccount:
        with self._lock:
            account = self.installations.get(installation_id)
        if account is None:
            raise GitHubAPIError(f"Installation {installation_id} not found", status_code=404)
        return account


@lru_cache()
def get_memory_github_client() -> InMemoryGitHubClient:
    """Process-wide in-memory client used when GITHUB_CLIENT_MODE=memory."""
    return InMemoryGitHubClient()
