"""GitHub App client.

Authenticates as the app with a short-lived RS256 JWT, exchanges it for an
installation token, and talks to the REST API with ``httpx``. Installation
tokens are cached per installation until shortly before they expire.
"""

import base64
import logging
import threading
import time
from datetime import datetime, timedelta, timezone
from typing import Any, Optional, Sequence

import httpx
from jose import jwt

from clabot_api.github.client import GitHubAPIError, GitHubClient
from clabot_api.github.types import (
    CheckRun,
    GitHubActor,
    InstallationAccount,
    IssueComment,
    PullRequest,
)
from clabot_api.settings import Settings, get_settings

logger = logging.getLogger(__name__)

USER_AGENT = "clabot-api"
PER_PAGE = 100

_token_cache: dict[int, tuple[str, float]] = {}
_token_lock = threading.Lock()


def normalize_private_key(raw: str) -> str:
    """Return the PEM key with escaped newlines restored, decoding base64 if needed."""
    key = raw.strip()
    if "\\n" in key:
        key = key.replace("\\n", "\n")
    if "-----BEGIN" not in key:
        try:
            decoded = base64.b64decode(key).decode("utf-8")
        except ValueError:
            decoded = ""
        if "-----BEGIN" in decoded:
            key = decoded
    return key


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _pull_request_from_json(repo: str, data: dict) -> PullRequest:
    user = data.get("user") or {}
    return PullRequest(
        repo=repo,
        number=data["number"],
        head_sha=(data.get("head") or {}).get("sha", ""),
        author=GitHubActor(
            login=user.get("login", ""),
            id=user.get("id"),
            account_type=user.get("type", "User"),
        ),
        state=data.get("state", "open"),
    )


def _check_run_from_json(data: dict) -> CheckRun:
    output = data.get("output") or {}
    return CheckRun(
        id=data["id"],
        name=data.get("name", ""),
        head_sha=data.get("head_sha", ""),
        status=data.get("status", ""),
        conclusion=data.get("conclusion"),
        title=output.get("title") or "",
        summary=output.get("summary") or "",
        html_url=data.get("html_url", ""),
    )


def _comment_from_json(data: dict) -> IssueComment:
    return IssueComment(
        id=data["id"],
        body=data.get("body") or "",
        author_login=(data.get("user") or {}).get("login", ""),
        html_url=data.get("html_url", ""),
    )


class GitHubAppClient(GitHubClient):
    """Installation-scoped REST client for the GitHub App."""

    def __init__(
        self,
        installation_id: int,
        settings: Optional[Settings] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.settings = settings or get_settings()
        if not self.settings.github_app_id or not self.settings.github_app_private_key:
            raise GitHubAPIError("GitHub App credentials are not configured")
        self.installation_id = installation_id
        self._private_key = normalize_private_key(self.settings.github_app_private_key)
        self._transport = transport

    # Authentication

    def _app_jwt(self) -> str:
        issued_at = datetime.now(timezone.utc)
        payload = {
            "iat": int(issued_at.timestamp()) - 60,
            "exp": int((issued_at + timedelta(minutes=9)).timestamp()),
            "iss": self.settings.github_app_id,
        }
        return jwt.encode(payload, self._private_key, algorithm="RS256")

    def _installation_token(self) -> str:
        with _token_lock:
            cached = _token_cache.get(self.installation_id)
            if cached and time.time() < cached[1] - 60:
                return cached[0]

        response = self._request(
            "POST",
            f"/app/installations/{self.installation_id}/access_tokens",
            token=self._app_jwt(),
            token_is_app=True,
        )
        data = response.json()
        token = data.get("token")
        expires_at_raw = data.get("expires_at")
        if not isinstance(token, str) or not isinstance(expires_at_raw, str):
            raise GitHubAPIError("GitHub did not return an installation token")
        expires_at = datetime.fromisoformat(expires_at_raw.replace("Z", "+00:00")).timestamp()

        with _token_lock:
            _token_cache[self.installation_id] = (token, expires_at)
        return token

    # Transport

    def _request(
        self,
        method: str,
        path: str,
        *,
        token: Optional[str] = None,
        token_is_app: bool = False,
        allowed_status: Sequence[int] = (),
        **kwargs: Any,
    ) -> httpx.Response:
        if token is None:
            token = self._installation_token()
        headers = {
            "Accept": "application/vnd.github+json",
            "User-Agent": USER_AGENT,
            "X-GitHub-Api-Version": "2022-11-28",
            "Authorization": f"Bearer {token}" if token_is_app else f"token {token}",
        }
        url = path if path.startswith("http") else f"{self.settings.github_api_base_url}{path}"
        try:
            with httpx.Client(
                timeout=self.settings.github_timeout_seconds, transport=self._transport
            ) as client:
                response = client.request(method, url, headers=headers, **kwargs)
        except httpx.HTTPError as e:
            raise GitHubAPIError(f"GitHub API request to {path} failed: {e}") from e

        if response.status_code in allowed_status:
            return response
        if response.status_code >= 400:
            raise GitHubAPIError(
                f"GitHub API request to {path} failed with {response.status_code}: {response.text[:500]}",
                status_code=response.status_code,
            )
        return response

    def _paginate(self, path: str, params: Optional[dict] = None, item_key: Optional[str] = None) -> list:
        items: list = []
        url: Optional[str] = path
        query = dict(params or {}, per_page=PER_PAGE)
        while url:
            response = self._request("GET", url, params=query)
            data = response.json()
            items.extend(data.get(item_key, []) if item_key else data)
            url = response.links.get("next", {}).get("url")
            query = None  # the next link already carries the query string
        return items

    # Pull requests

    def get_pull_request(self, owner: str, repo: str, number: int) -> Optional[PullRequest]:
        response = self._request("GET", f"/repos/{owner}/{repo}/pulls/{number}", allowed_status=(404,))
        if response.status_code == 404:
            return None
        return _pull_request_from_json(repo, response.json())

    def list_open_pull_requests(self, owner: str) -> list[PullRequest]:
        repositories = self._paginate("/installation/repositories", item_key="repositories")
        pull_requests: list[PullRequest] = []
        for repository in repositories:
            repo_owner = (repository.get("owner") or {}).get("login", "")
            if repo_owner.lower() != owner.lower() or repository.get("archived"):
                continue
            name = repository["name"]
            for data in self._paginate(f"/repos/{owner}/{name}/pulls", params={"state": "open"}):
                pull_requests.append(_pull_request_from_json(name, data))
        return pull_requests

    # Membership

    def check_org_membership(self, org: str, login: str) -> str:
        response = self._request(
            "GET", f"/orgs/{org}/members/{login}", allowed_status=(302, 404), follow_redirects=False
        )
        return "active" if response.status_code == 204 else "not_member"

    def get_repository_permission(self, owner: str, repo: str, login: str) -> str:
        response = self._request(
            "GET", f"/repos/{owner}/{repo}/collaborators/{login}/permission", allowed_status=(404,)
        )
        if response.status_code == 404:
            return "none"
        data = response.json()
        return data.get("role_name") or data.get("permission") or "none"

    # Check runs

    def find_check_run(self, owner: str, repo: str, head_sha: str, name: str) -> Optional[CheckRun]:
        runs = self._paginate(
            f"/repos/{owner}/{repo}/commits/{head_sha}/check-runs",
            params={"check_name": name, "filter": "latest"},
            item_key="check_runs",
        )
        matching = [_check_run_from_json(run) for run in runs if run.get("name") == name]
        if not matching:
            return None
        return max(matching, key=lambda run: run.id)

    def create_check_run(
        self, owner: str, repo: str, name: str, head_sha: str, conclusion: str, title: str, summary: str
    ) -> CheckRun:
        now = _now_iso()
        response = self._request(
            "POST",
            f"/repos/{owner}/{repo}/check-runs",
            json={
                "name": name,
                "head_sha": head_sha,
                "status": "completed",
                "conclusion": conclusion,
                "started_at": now,
                "completed_at": now,
                "output": {"title": title, "summary": summary},
            },
        )
        return _check_run_from_json(response.json())

    def update_check_run(
        self, owner: str, repo: str, check_run_id: int, conclusion: str, title: str, summary: str
    ) -> CheckRun:
        response = self._request(
            "PATCH",
            f"/repos/{owner}/{repo}/check-runs/{check_run_id}",
            json={
                "status": "completed",
                "conclusion": conclusion,
                "completed_at": _now_iso(),
                "output": {"title": title, "summary": summary},
            },
        )
        return _check_run_from_json(response.json())

    # Comments

    def list_issue_comments(self, owner: str, repo: str, number: int) -> list[IssueComment]:
        return [
            _comment_from_json(item)
            for item in self._paginate(f"/repos/{owner}/{repo}/issues/{number}/comments")
        ]

    def create_comment(self, owner: str, repo: str, number: int, body: str) -> IssueComment:
        response = self._request(
            "POST", f"/repos/{owner}/{repo}/issues/{number}/comments", json={"body": body}
        )
        return _comment_from_json(response.json())

    def update_comment(self, owner: str, repo: str, comment_id: int, body: str) -> IssueComment:
        response = self._request(
            "PATCH", f"/repos/{owner}/{repo}/issues/comments/{comment_id}", json={"body": body}
        )
        return _comment_from_json(response.json())

    def delete_comment(self, owner: str, repo: str, comment_id: int) -> None:
        self._request(
            "DELETE", f"/repos/{owner}/{repo}/issues/comments/{comment_id}", allowed_status=(404,)
        )

    # Installations

    def get_installation(self, installation_id: int) -> InstallationAccount:
        response = self._request(
            "GET", f"/app/installations/{installation_id}", token=self._app_jwt(), token_is_app=True
        )
        data = response.json()
        account = data.get("account") or {}
        return InstallationAccount(
            installation_id=data.get("id", installation_id),
            login=account.get("login", ""),
            account_id=account.get("id"),
            account_type=account.get("type", "Organization"),
            avatar_url=account.get("avatar_url", ""),
        )
