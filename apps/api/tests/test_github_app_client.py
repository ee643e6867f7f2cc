"""Tests for the GitHub App REST client against a mocked transport."""

import httpx
import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from jose import jwt

from clabot_api.github import app_client
from clabot_api.github.app_client import GitHubAppClient, normalize_private_key
from clabot_api.github.client import GitHubAPIError
from clabot_api.settings import Settings

API = "https://api.github.test"


@pytest.fixture(scope="module")
def rsa_key():
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    private_pem = key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.PKCS8,
        serialization.NoEncryption(),
    ).decode()
    public_pem = key.public_key().public_bytes(
        serialization.Encoding.PEM,
        serialization.PublicFormat.SubjectPublicKeyInfo,
    ).decode()
    return private_pem, public_pem


@pytest.fixture
def settings(rsa_key):
    return Settings(
        github_app_id="4242",
        github_app_private_key=rsa_key[0],
        github_api_base_url=API,
        github_client_mode="app",
    )


@pytest.fixture(autouse=True)
def clear_token_cache():
    app_client._token_cache.clear()
    yield
    app_client._token_cache.clear()


class FakeGitHub:
    """Routes requests to canned responses and records what was sent."""

    def __init__(self, routes):
        self.routes = routes
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.path == "/app/installations/42/access_tokens":
            return httpx.Response(201, json={"token": "ghs_installation", "expires_at": "2099-01-01T00:00:00Z"})
        key = (request.method, request.url.path, request.url.params.get("page"))
        if key not in self.routes:
            key = (request.method, request.url.path, None)
        status, body, headers = self.routes.get(key, (404, {"message": "Not Found"}, {}))
        if status == 204:
            return httpx.Response(204, headers=headers)
        return httpx.Response(status, json=body, headers=headers)


def make_client(settings, routes):
    fake = FakeGitHub(routes)
    return GitHubAppClient(42, settings=settings, transport=httpx.MockTransport(fake)), fake


def pr_json(number, login, sha):
    return {"number": number, "state": "open", "head": {"sha": sha}, "user": {"login": login, "id": number * 10, "type": "User"}}


def test_lists_open_pull_requests_across_pages(settings):
    next_link = f'<{API}/installation/repositories?per_page=100&page=2>; rel="next"'
    client, _ = make_client(settings, {
        ("GET", "/installation/repositories", None): (
            200,
            {"repositories": [{"name": "widgets", "owner": {"login": "acme"}}]},
            {"Link": next_link},
        ),
        ("GET", "/installation/repositories", "2"): (
            200,
            {"repositories": [
                {"name": "legacy", "owner": {"login": "acme"}, "archived": True},
                {"name": "fork", "owner": {"login": "someone-else"}},
            ]},
            {},
        ),
        ("GET", "/repos/acme/widgets/pulls", None): (200, [pr_json(1, "alice", "sha-1"), pr_json(2, "bob", "sha-2")], {}),
    })

    pull_requests = client.list_open_pull_requests("acme")

    assert [(pr.repo, pr.number, pr.head_sha) for pr in pull_requests] == [
        ("widgets", 1, "sha-1"),
        ("widgets", 2, "sha-2"),
    ]
    assert pull_requests[0].author.login == "alice"


def test_authenticates_as_app_then_installation(settings, rsa_key):
    client, fake = make_client(settings, {
        ("GET", "/repos/acme/widgets/pulls/1", None): (200, pr_json(1, "alice", "sha-1"), {}),
    })

    client.get_pull_request("acme", "widgets", 1)
    client.get_pull_request("acme", "widgets", 1)

    token_requests = [r for r in fake.requests if r.url.path.endswith("/access_tokens")]
    assert len(token_requests) == 1
    app_token = token_requests[0].headers["Authorization"].removeprefix("Bearer ")
    claims = jwt.decode(app_token, rsa_key[1], algorithms=["RS256"])
    assert claims["iss"] == "4242"
    assert fake.requests[-1].headers["Authorization"] == "token ghs_installation"


def test_get_installation_authenticates_as_app(settings, rsa_key):
    client, fake = make_client(settings, {
        ("GET", "/app/installations/42", None): (
            200,
            {"id": 42, "account": {"login": "acme", "id": 9001, "type": "User", "avatar_url": "https://a.test/acme"}},
            {},
        ),
    })

    installation = client.get_installation(42)

    assert (installation.login, installation.account_id, installation.account_type) == ("acme", 9001, "User")
    assert installation.avatar_url == "https://a.test/acme"
    [request] = fake.requests
    claims = jwt.decode(request.headers["Authorization"].removeprefix("Bearer "), rsa_key[1], algorithms=["RS256"])
    assert claims["iss"] == "4242"


def test_missing_pull_request_is_none(settings):
    client, _ = make_client(settings, {})
    assert client.get_pull_request("acme", "widgets", 99) is None


def test_membership_and_permission(settings):
    client, _ = make_client(settings, {
        ("GET", "/orgs/acme/members/alice", None): (204, None, {}),
        ("GET", "/repos/acme/widgets/collaborators/bob/permission", None): (200, {"permission": "write", "role_name": "maintain"}, {}),
    })

    assert client.check_org_membership("acme", "alice") == "active"
    assert client.check_org_membership("acme", "mallory") == "not_member"
    assert client.get_repository_permission("acme", "widgets", "bob") == "maintain"
    assert client.get_repository_permission("acme", "widgets", "mallory") == "none"


def test_find_check_run_picks_latest(settings):
    client, _ = make_client(settings, {
        ("GET", "/repos/acme/widgets/commits/sha-1/check-runs", None): (
            200,
            {"check_runs": [
                {"id": 5, "name": "CLA", "head_sha": "sha-1", "status": "completed", "conclusion": "failure"},
                {"id": 9, "name": "CLA", "head_sha": "sha-1", "status": "completed", "conclusion": "success"},
                {"id": 11, "name": "lint", "head_sha": "sha-1", "status": "completed", "conclusion": "success"},
            ]},
            {},
        ),
    })

    run = client.find_check_run("acme", "widgets", "sha-1", "CLA")

    assert run.id == 9
    assert run.conclusion == "success"


def test_server_error_raises(settings):
    client, _ = make_client(settings, {
        ("POST", "/repos/acme/widgets/issues/1/comments", None): (502, {"message": "Bad Gateway"}, {}),
    })

    with pytest.raises(GitHubAPIError) as exc_info:
        client.create_comment("acme", "widgets", 1, "hello")
    assert exc_info.value.status_code == 502


def test_missing_credentials(settings):
    settings.github_app_private_key = None
    with pytest.raises(GitHubAPIError):
        GitHubAppClient(42, settings=settings)


def test_normalize_private_key_restores_newlines(rsa_key):
    escaped = rsa_key[0].replace("\n", "\\n")
    assert normalize_private_key(escaped) == rsa_key[0]
