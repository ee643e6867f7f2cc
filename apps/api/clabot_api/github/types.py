"""GitHub API shapes used by the CLA bot.

Only the fields the compliance engine reads are kept, so the real client and
the in-memory client stay interchangeable.
"""

from dataclasses import dataclass
from typing import Optional


@dataclass(slots=True)
class GitHubActor:
    """A GitHub account as seen on a pull request or comment."""

    login: str
    id: Optional[int] = None
    account_type: str = "User"  # User, Bot, Organization


@dataclass(slots=True)
class PullRequest:
    repo: str
    number: int
    head_sha: str
    author: GitHubActor
    state: str = "open"


@dataclass(slots=True)
class CheckRun:
    id: int
    name: str
    head_sha: str
    status: str
    conclusion: Optional[str]
    title: str = ""
    summary: str = ""
    html_url: str = ""


@dataclass(slots=True)
class IssueComment:
    id: int
    body: str
    author_login: str = ""
    html_url: str = ""


@dataclass(slots=True)
class InstallationAccount:
    """Account metadata for an app installation."""

    installation_id: int
    login: str
    account_id: Optional[int] = None
    account_type: str = "Organization"
    avatar_url: str = ""
