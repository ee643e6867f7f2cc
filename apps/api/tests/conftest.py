"""Pytest configuration and fixtures."""

import hashlib
import hmac
import json
import os

# Must be set before clabot_api reads its settings
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["ENVIRONMENT"] = "test"
os.environ["GITHUB_CLIENT_MODE"] = "memory"
os.environ["GITHUB_WEBHOOK_SECRET"] = "test-webhook-secret"
os.environ["APP_BASE_URL"] = "https://cla.example.com"

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from clabot_api.cla.store import ComplianceStore
from clabot_api.db.base import Base
from clabot_api.db.session import enable_sqlite_savepoints
from clabot_api.github.memory import get_memory_github_client
from clabot_api.github.types import GitHubActor
from clabot_api.models import Organization, User

import clabot_api.models  # noqa: F401

WEBHOOK_SECRET = "test-webhook-secret"

CLA_V1 = "Contributor License Agreement v1\n\nYou grant us a license to your contributions.\n"
CLA_V2 = "Contributor License Agreement v2\n\nYou grant us a license and a patent grant.\n"


@pytest.fixture(scope="function")
def db():
    """Create a test database session on in-memory SQLite."""
    engine = enable_sqlite_savepoints(
        create_engine(
            "sqlite://",
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    )
    Base.metadata.create_all(engine)
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(engine)
        engine.dispose()


@pytest.fixture
def store(db: Session) -> ComplianceStore:
    return ComplianceStore(db)


@pytest.fixture
def github():
    """The process-wide in-memory GitHub client, emptied around each test."""
    client = get_memory_github_client()
    client.reset()
    yield client
    client.reset()


@pytest.fixture(autouse=True)
def dispatched(monkeypatch):
    """Capture convergence dispatches instead of sending them to Celery."""
    requests = []
    monkeypatch.setattr(
        "clabot_api.convergence.scheduler.celery_dispatch", requests.append
    )
    return requests


@pytest.fixture
def admin_user(store: ComplianceStore) -> User:
    user = store.upsert_user(1001, "org-admin", role="admin")
    store.db.commit()
    return user


@pytest.fixture
def contributor(store: ComplianceStore) -> User:
    user = store.upsert_user(
        5001,
        "contributor",
        email="contributor@example.com",
        email_verified=True,
        email_source="primary_verified",
    )
    store.db.commit()
    return user


@pytest.fixture
def contributor_actor(contributor: User) -> GitHubActor:
    return GitHubActor(login=contributor.github_login, id=int(contributor.github_id))


@pytest.fixture
def organization(store: ComplianceStore, admin_user: User) -> Organization:
    """Active organization with CLA v1 published."""
    organization = store.create_organization(
        slug="acme",
        account_type="organization",
        account_id="9001",
        name="Acme Corp",
        installation_id=42,
        admin_user_id=admin_user.id,
    )
    store.update_cla_text(organization, CLA_V1)
    store.db.commit()
    return organization


def sign_body(body: bytes, secret: str = WEBHOOK_SECRET) -> str:
    return "sha256=" + hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()


def webhook_headers(event: str, delivery_id: str, body: bytes) -> dict:
    return {
        "Content-Type": "application/json",
        "X-GitHub-Event": event,
        "X-GitHub-Delivery": delivery_id,
        "X-Hub-Signature-256": sign_body(body),
    }


def pull_request_payload(
    owner: str, repo: str, number: int, author: GitHubActor, head_sha: str,
    action: str = "opened", installation_id: int = 42,
) -> dict:
    return {
        "action": action,
        "installation": {"id": installation_id},
        "repository": {"name": repo, "owner": {"login": owner, "type": "Organization"}},
        "pull_request": {
            "number": number,
            "state": "open",
            "head": {"sha": head_sha},
            "user": {"login": author.login, "id": author.id, "type": author.account_type},
        },
    }


def recheck_payload(
    owner: str, repo: str, number: int, requester: GitHubActor,
    body: str = "/recheck", is_pull_request: bool = True, installation_id: int = 42,
) -> dict:
    issue = {"number": number}
    if is_pull_request:
        issue["pull_request"] = {"url": f"https://api.github.com/repos/{owner}/{repo}/pulls/{number}"}
    return {
        "action": "created",
        "installation": {"id": installation_id},
        "repository": {"name": repo, "owner": {"login": owner, "type": "Organization"}},
        "issue": issue,
        "comment": {
            "body": body,
            "user": {"login": requester.login, "id": requester.id, "type": requester.account_type},
        },
    }


def dumps(payload: dict) -> bytes:
    return json.dumps(payload).encode("utf-8")
