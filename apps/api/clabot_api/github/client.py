"""GitHub capability interface consumed by the compliance engine.

Production uses ``GitHubAppClient``; development and tests use
``InMemoryGitHubClient``. Callers only depend on this interface.
"""

from abc import ABC, abstractmethod
from typing import Optional

from clabot_api.github.comments import find_latest_managed_comment
from clabot_api.github.types import CheckRun, InstallationAccount, IssueComment, PullRequest


class GitHubAPIError(RuntimeError):
    """Raised when a GitHub API request fails."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class GitHubClient(ABC):
    """Installation-scoped GitHub operations."""

    # Pull requests

    @abstractmethod
    def get_pull_request(self, owner: str, repo: str, number: int) -> Optional[PullRequest]:
        """Pull request metadata by number, or None if it does not exist."""

    @abstractmethod
    def list_open_pull_requests(self, owner: str) -> list[PullRequest]:
        """Open pull requests across the installation's repositories."""

    # Membership

    @abstractmethod
    def check_org_membership(self, org: str, login: str) -> str:
        """One of ``active``, ``pending`` or ``not_member``."""

    @abstractmethod
    def get_repository_permission(self, owner: str, repo: str, login: str) -> str:
        """Collaborator permission: admin, maintain, write, triage, read or none."""

    # Check runs

    @abstractmethod
    def find_check_run(self, owner: str, repo: str, head_sha: str, name: str) -> Optional[CheckRun]:
        """Latest check run with ``name`` on ``head_sha``."""

    @abstractmethod
    def create_check_run(
        self, owner: str, repo: str, name: str, head_sha: str, conclusion: str, title: str, summary: str
    ) -> CheckRun:
        """Create a completed check run."""

    @abstractmethod
    def update_check_run(
        self, owner: str, repo: str, check_run_id: int, conclusion: str, title: str, summary: str
    ) -> CheckRun:
        """Complete an existing check run with a new conclusion."""

    # Comments

    @abstractmethod
    def list_issue_comments(self, owner: str, repo: str, number: int) -> list[IssueComment]:
        """All comments on an issue or pull request, oldest first."""

    @abstractmethod
    def create_comment(self, owner: str, repo: str, number: int, body: str) -> IssueComment:
        """Post a comment."""

    @abstractmethod
    def update_comment(self, owner: str, repo: str, comment_id: int, body: str) -> IssueComment:
        """Replace a comment's body."""

    @abstractmethod
    def delete_comment(self, owner: str, repo: str, comment_id: int) -> None:
        """Delete a comment; deleting a missing comment is not an error."""

    # Installations

    @abstractmethod
    def get_installation(self, installation_id: int) -> InstallationAccount:
        """Account metadata for an installation."""

    def find_bot_comment(self, owner: str, repo: str, number: int) -> Optional[IssueComment]:
        """The bot's own status comment on a pull request, found by its marker."""
        return find_latest_managed_comment(self.list_issue_comments(owner, repo, number))
