"""Tests for the signing service."""

import hashlib
import hmac

import pytest

from clabot_api.cla.digest import content_address
from clabot_api.compliance.resolver import Compliant, NeedsResign
from clabot_api.compliance.service import ComplianceService
from clabot_api.errors import (
    AlreadySignedError,
    ForbiddenError,
    InvalidRequestError,
    NotFoundError,
    UnauthorizedError,
    VersionMismatchError,
)
from clabot_api.models import AuditEvent, ClaArchive, ClaSignature
from clabot_api.signing.evidence import RequestEvidence, resolve_request_evidence
from clabot_api.signing.service import SigningService

from conftest import CLA_V1, CLA_V2


@pytest.fixture
def service(store):
    return SigningService(store)


class TestPreconditions:
    """Each failed precondition raises its own error."""

    def test_requires_identity(self, service, organization):
        with pytest.raises(UnauthorizedError):
            service.sign("acme", None, "session")

    def test_requires_assent(self, service, organization, contributor):
        with pytest.raises(InvalidRequestError):
            service.sign("acme", contributor, "session", assented=False)

    def test_repo_and_pr_go_together(self, service, organization, contributor):
        with pytest.raises(InvalidRequestError):
            service.sign("acme", contributor, "session", repo_name="widgets")

    def test_unknown_organization(self, service, contributor):
        with pytest.raises(NotFoundError):
            service.sign("missing", contributor, "session")

    def test_inactive_organization(self, service, store, organization, contributor):
        store.set_organization_active(organization, False)
        with pytest.raises(ForbiddenError):
            service.sign("acme", contributor, "session")

    def test_cla_not_configured(self, service, store, contributor):
        store.create_organization(slug="fresh", installation_id=7)
        with pytest.raises(InvalidRequestError):
            service.sign("fresh", contributor, "session")

    def test_version_mismatch_carries_current_digest(self, service, organization, contributor):
        with pytest.raises(VersionMismatchError) as exc_info:
            service.sign("acme", contributor, "session", accepted_digest=content_address("stale"))
        assert exc_info.value.current_digest == organization.cla_digest
        assert exc_info.value.status_code == 409

    def test_missing_session_checked_after_already_signed(self, service, organization, contributor):
        with pytest.raises(UnauthorizedError):
            service.sign("acme", contributor, None)

        service.sign("acme", contributor, "session")
        with pytest.raises(AlreadySignedError):
            service.sign("acme", contributor, None)


class TestSigning:
    def test_sign_records_signature_archive_and_audit(self, service, db, organization, contributor):
        signature = service.sign(
            "acme",
            contributor,
            "session-123",
            repo_name="widgets",
            pr_number=7,
            evidence=RequestEvidence(ip="203.0.113.9", user_agent="pytest"),
        )

        assert signature.signed_digest == organization.cla_digest
        assert signature.accepted_digest == organization.cla_digest
        assert signature.consent_version == "v1"
        assert signature.session_id == "session-123"
        assert signature.email == "contributor@example.com"
        assert signature.email_verified is True
        assert signature.ip_hash != "203.0.113.9"
        assert len(signature.ip_hash) == 64

        archive = db.query(ClaArchive).one()
        assert archive.digest == organization.cla_digest
        assert archive.cla_text == CLA_V1

        audit = db.query(AuditEvent).filter(AuditEvent.event_type == "signature.created").one()
        assert audit.payload_json["pr_number"] == 7

    def test_sign_is_idempotent(self, service, db, organization, contributor):
        first = service.sign("acme", contributor, "session")
        with pytest.raises(AlreadySignedError) as exc_info:
            service.sign("acme", contributor, "session")
        assert exc_info.value.details["signature_id"] == first.id
        assert db.query(ClaSignature).count() == 1

    def test_noreply_email_fallback(self, service, store, organization):
        user = store.upsert_user(7001, "no-email")
        signature = service.sign("acme", user, "session")
        assert signature.email == "no-email@users.noreply.github.com"
        assert signature.email_verified is False
        assert signature.email_source == "none"

    def test_sign_edit_resign_round_trip(self, service, store, db, organization, contributor, contributor_actor):
        compliance = ComplianceService(store)
        d1 = organization.cla_digest
        service.sign("acme", contributor, "session")
        assert compliance.resolve_for_actor(organization, contributor_actor, None) == Compliant(d1)

        store.update_cla_text(organization, CLA_V2)
        db.commit()
        outcome = compliance.resolve_for_actor(organization, contributor_actor, None)
        assert isinstance(outcome, NeedsResign)
        assert outcome.current_digest_label == organization.cla_digest[:7]

        service.sign("acme", contributor, "session")
        assert compliance.resolve_for_actor(organization, contributor_actor, None) == Compliant(organization.cla_digest)
        assert db.query(ClaArchive).count() == 2
        assert store.get_archive(organization.id, d1).cla_text == CLA_V1
        assert store.get_archive(organization.id, organization.cla_digest).cla_text == CLA_V2

    def test_lost_race_reports_already_signed(self, service, store, db, organization, contributor, monkeypatch):
        first = service.sign("acme", contributor, "session-1")

        # The pre-check misses the concurrent insert; the unique constraint catches it
        original = store.get_signature_for_digest
        calls = []

        def stale_lookup(*args):
            calls.append(args)
            return None if len(calls) == 1 else original(*args)

        monkeypatch.setattr(store, "get_signature_for_digest", stale_lookup)

        with pytest.raises(AlreadySignedError) as exc_info:
            service.sign("acme", contributor, "session-2")

        assert exc_info.value.details["signature_id"] == first.id
        assert db.query(ClaSignature).count() == 1
        assert db.query(AuditEvent).filter(AuditEvent.event_type == "signature.created").count() == 1


class TestEvidence:
    def test_first_forwarded_hop_wins(self):
        evidence = resolve_request_evidence(
            {"x-forwarded-for": "198.51.100.1, 10.0.0.1", "x-real-ip": "10.0.0.2", "user-agent": "ua"}
        )
        assert evidence.ip == "198.51.100.1"
        assert evidence.user_agent == "ua"

    def test_real_ip_then_client_host(self):
        assert resolve_request_evidence({"x-real-ip": "10.0.0.2"}).ip == "10.0.0.2"
        assert resolve_request_evidence({}, client_host="127.0.0.1").ip == "127.0.0.1"

    def test_ip_hash_is_keyed(self, service, organization, contributor):
        signature = service.sign("acme", contributor, "session", evidence=RequestEvidence(ip="203.0.113.9"))
        expected = hmac.new(
            service.settings.session_secret.encode(), b"203.0.113.9", hashlib.sha256
        ).hexdigest()
        assert signature.ip_hash == expected
