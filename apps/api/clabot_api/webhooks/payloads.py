"""Pydantic models for the parts of GitHub webhook payloads we read."""

from typing import Optional

from pydantic import BaseModel, Field


class Account(BaseModel):
    """User, organization or bot account."""

    login: str
    id: Optional[int] = None
    type: str = "User"
    avatar_url: str = ""
    name: Optional[str] = None


class Installation(BaseModel):
    id: int
    account: Optional[Account] = None


class Repository(BaseModel):
    name: str
    owner: Account


class Head(BaseModel):
    sha: str


class PullRequestData(BaseModel):
    number: int
    state: str = "open"
    head: Head
    user: Account


class PullRequestEvent(BaseModel):
    action: str
    pull_request: PullRequestData
    repository: Repository
    installation: Optional[Installation] = None


class IssueData(BaseModel):
    number: int
    pull_request: Optional[dict] = None  # present only when the issue is a PR
    user: Optional[Account] = None


class CommentData(BaseModel):
    body: str = ""
    user: Account


class IssueCommentEvent(BaseModel):
    action: str
    issue: IssueData
    comment: CommentData
    repository: Repository
    installation: Optional[Installation] = None


class MergeGroupData(BaseModel):
    head_sha: str


class MergeGroupEvent(BaseModel):
    action: str
    merge_group: MergeGroupData
    repository: Repository
    installation: Optional[Installation] = None


class InstallationEvent(BaseModel):
    action: str
    installation: Installation
    sender: Optional[Account] = None


class InstallationRepositoriesEvent(BaseModel):
    action: str
    installation: Installation
    repositories_added: list[dict] = Field(default_factory=list)
    repositories_removed: list[dict] = Field(default_factory=list)
    sender: Optional[Account] = None


class PingEvent(BaseModel):
    zen: Optional[str] = None
    hook_id: Optional[int] = None
