"""HTTP tests for the webhook, signing and admin routes."""

import pytest
from fastapi.testclient import TestClient

from clabot_api.auth.session import create_session_token
from clabot_api.db.session import get_db
from clabot_api.main import app
from clabot_api.models import ClaSignature

from conftest import CLA_V1, CLA_V2, dumps, pull_request_payload, webhook_headers


@pytest.fixture
def client(db):
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def bearer(user) -> dict:
    token, _ = create_session_token(user)
    return {"Authorization": f"Bearer {token}"}


class TestWebhookRoute:
    def test_rejects_bad_signature(self, client, organization, github, contributor_actor):
        body = dumps(pull_request_payload("acme", "widgets", 1, contributor_actor, "sha-1"))
        headers = webhook_headers("pull_request", "d-1", body)
        headers["X-Hub-Signature-256"] = "sha256=" + "0" * 64

        response = client.post("/webhooks/github", content=body, headers=headers)

        assert response.status_code == 401
        assert response.json()["error"]["code"] == "UNAUTHORIZED"
        assert github.check_runs_for("acme", "sha-1") == []

    def test_signed_delivery_is_processed(self, client, organization, github, contributor_actor):
        body = dumps(pull_request_payload("acme", "widgets", 1, contributor_actor, "sha-1"))

        response = client.post("/webhooks/github", content=body, headers=webhook_headers("pull_request", "d-2", body))

        assert response.status_code == 200
        assert response.json()["result"]["conclusion"] == "failure"
        [run] = github.check_runs_for("acme", "sha-1")
        assert run.conclusion == "failure"

    def test_redelivery_is_acknowledged(self, client, organization, github, contributor_actor):
        body = dumps(pull_request_payload("acme", "widgets", 1, contributor_actor, "sha-1"))
        headers = webhook_headers("pull_request", "d-3", body)

        client.post("/webhooks/github", content=body, headers=headers)
        response = client.post("/webhooks/github", content=body, headers=headers)

        assert response.json()["duplicate"] is True
        assert len(github.check_runs_for("acme", "sha-1")) == 1

    def test_invalid_json(self, client):
        body = b"{not json"
        response = client.post("/webhooks/github", content=body, headers=webhook_headers("ping", "d-4", body))
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "BAD_REQUEST"


class TestSignRoute:
    def test_sign_requires_session(self, client, organization):
        response = client.post("/v1/orgs/acme/sign", json={})
        assert response.status_code == 401
        assert response.json()["error"]["code"] == "UNAUTHORIZED"

    def test_sign_and_schedule(self, client, db, organization, contributor, dispatched):
        response = client.post(
            "/v1/orgs/acme/sign",
            json={"acceptedDigest": organization.cla_digest},
            headers={**bearer(contributor), "X-Forwarded-For": "203.0.113.9"},
        )

        assert response.status_code == 201
        data = response.json()
        assert data["signature"]["signed_digest"] == organization.cla_digest
        assert data["label"] == organization.cla_digest[:7]
        assert data["convergence"]["scheduled"] is True
        [request] = dispatched
        assert request.trigger == "signature"
        assert request.actor_github_login == "contributor"
        signature = db.query(ClaSignature).one()
        assert signature.session_id is not None
        assert signature.ip_hash and signature.ip_hash != "203.0.113.9"

    def test_sign_from_pull_request_targets_it(self, client, organization, contributor, dispatched):
        response = client.post(
            "/v1/orgs/acme/sign",
            json={"repoName": "widgets", "prNumber": 12},
            headers=bearer(contributor),
        )

        assert response.status_code == 201
        [request] = dispatched
        assert (request.target_repo, request.target_pr_number) == ("widgets", 12)

    def test_stale_digest_conflicts(self, client, organization, contributor):
        response = client.post(
            "/v1/orgs/acme/sign", json={"acceptedDigest": "0" * 64}, headers=bearer(contributor)
        )
        assert response.status_code == 409
        error = response.json()["error"]
        assert error["code"] == "VERSION_MISMATCH"
        assert error["details"]["current_digest"] == organization.cla_digest

    def test_second_signature_conflicts(self, client, organization, contributor):
        headers = bearer(contributor)
        client.post("/v1/orgs/acme/sign", json={}, headers=headers)
        response = client.post("/v1/orgs/acme/sign", json={}, headers=headers)
        assert response.status_code == 409
        assert response.json()["error"]["code"] == "ALREADY_SIGNED"

    def test_expired_session(self, client, organization, contributor):
        from datetime import timedelta

        token, _ = create_session_token(contributor, ttl=timedelta(seconds=-1))
        response = client.post("/v1/orgs/acme/sign", json={}, headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 401

    def test_compliance_lookup(self, client, organization, contributor, github):
        assert client.get("/v1/orgs/acme/compliance/contributor").json()["decision"] == "signature_required"
        client.post("/v1/orgs/acme/sign", json={}, headers=bearer(contributor))

        data = client.get("/v1/orgs/acme/compliance/contributor").json()
        assert data["decision"] == "signed"
        assert data["passing"] is True

    def test_unknown_org(self, client):
        response = client.get("/v1/orgs/nobody")
        assert response.status_code == 404
        assert response.json()["error"]["code"] == "NOT_FOUND"

    def test_get_org(self, client, organization):
        data = client.get("/v1/orgs/acme").json()
        assert data["cla_digest"] == organization.cla_digest
        assert data["is_active"] is True


class TestAdminRoutes:
    def test_requires_admin(self, client, organization, contributor):
        response = client.put("/admin/orgs/acme/cla", json={"claText": CLA_V2}, headers=bearer(contributor))
        assert response.status_code == 403

    def test_update_cla(self, client, organization, admin_user, dispatched):
        response = client.put("/admin/orgs/acme/cla", json={"claText": CLA_V2}, headers=bearer(admin_user))

        assert response.status_code == 200
        data = response.json()
        assert data["convergence"]["scheduled"] is True
        assert dispatched[0].expected_digest == data["cla_digest"]

    def test_bypass_lifecycle(self, client, organization, admin_user, dispatched):
        headers = bearer(admin_user)
        created = client.post(
            "/admin/orgs/acme/bypass", json={"kind": "app_bot", "login": "renovate[bot]"}, headers=headers
        )
        assert created.status_code == 201
        entry = created.json()["entry"]
        assert entry["subject_key"] == "renovate"

        listed = client.get("/admin/orgs/acme/bypass", headers=headers).json()
        assert [row["id"] for row in listed] == [entry["id"]]

        removed = client.delete(f"/admin/orgs/acme/bypass/{entry['id']}", headers=headers)
        assert removed.json()["removed"] == entry["id"]
        missing = client.delete(f"/admin/orgs/acme/bypass/{entry['id']}", headers=headers)
        assert missing.status_code == 404
        assert [request.trigger for request in dispatched] == ["bypass_added", "bypass_removed"]

    def test_bad_bypass_kind(self, client, organization, admin_user):
        response = client.post(
            "/admin/orgs/acme/bypass", json={"kind": "team", "login": "core"}, headers=bearer(admin_user)
        )
        assert response.status_code == 400

    def test_convergence_run_lookup(self, client, organization, admin_user, dispatched):
        client.patch("/admin/orgs/acme/active", json={"isActive": False}, headers=bearer(admin_user))
        run_id = dispatched[0].run_id

        data = client.get(f"/admin/convergence/{run_id}", headers=bearer(admin_user)).json()

        assert data["status"] == "queued"
        assert data["trigger"] == "activation"
        assert client.get("/admin/convergence/missing", headers=bearer(admin_user)).status_code == 404

    def test_convergence_run_for_missing_organization(self, client, store, db, organization, admin_user):
        store.create_convergence_run("run-orphan", "activation", organization_id=organization.id + 100)
        db.commit()

        response = client.get("/admin/convergence/run-orphan", headers=bearer(admin_user))

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "NOT_FOUND"

    def test_signature_and_archive_listings(self, client, organization, admin_user, contributor):
        client.post("/v1/orgs/acme/sign", json={}, headers=bearer(contributor))
        headers = bearer(admin_user)

        [signature] = client.get("/admin/orgs/acme/signatures", headers=headers).json()
        assert signature["github_login_at_signature"] == "contributor"
        assert signature["signed_digest"] == organization.cla_digest

        [archive] = client.get("/admin/orgs/acme/archives", headers=headers).json()
        assert archive["digest"] == organization.cla_digest
        assert archive["label"] == organization.cla_digest[:7]
        assert archive["current"] is True

    def test_listings_require_admin(self, client, organization, contributor):
        response = client.get("/admin/orgs/acme/signatures", headers=bearer(contributor))
        assert response.status_code == 403


class TestContributorRoutes:
    def test_my_signatures_flag_outdated_versions(self, client, organization, admin_user, contributor):
        client.post("/v1/orgs/acme/sign", json={}, headers=bearer(contributor))
        client.put("/admin/orgs/acme/cla", json={"claText": CLA_V2}, headers=bearer(admin_user))

        data = client.get("/v1/me/signatures", headers=bearer(contributor)).json()

        [signature] = data["signatures"]
        assert signature["organization"] == "acme"
        assert signature["is_current_version"] is False
        assert signature["is_latest_for_org"] is True
        assert signature["org_needs_resign"] is True
        assert (data["signed_org_count"], data["outdated_org_count"]) == (1, 1)

    def test_download_returns_signed_version(self, client, organization, admin_user, contributor):
        signed = client.post("/v1/orgs/acme/sign", json={}, headers=bearer(contributor)).json()
        client.put("/admin/orgs/acme/cla", json={"claText": CLA_V2}, headers=bearer(admin_user))
        signature_id = signed["signature"]["id"]

        response = client.get(f"/v1/me/signatures/{signature_id}/download", headers=bearer(contributor))

        assert response.status_code == 200
        assert response.text == CLA_V1
        assert response.headers["content-type"].startswith("text/markdown")
        disposition = response.headers["content-disposition"]
        assert disposition.startswith(f'attachment; filename="acme-cla-{signed["label"]}-')

    def test_download_is_private_to_signer(self, client, organization, admin_user, contributor):
        signed = client.post("/v1/orgs/acme/sign", json={}, headers=bearer(contributor)).json()
        signature_id = signed["signature"]["id"]

        response = client.get(f"/v1/me/signatures/{signature_id}/download", headers=bearer(admin_user))

        assert response.status_code == 404

    def test_requires_session(self, client):
        assert client.get("/v1/me/signatures").status_code == 401
