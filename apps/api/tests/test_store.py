"""Tests for the compliance store."""

from clabot_api.bypass.entries import AppBotBypass, UserBypass
from clabot_api.cla.digest import content_address
from clabot_api.models import AuditEvent, ClaArchive, WebhookDelivery

from conftest import CLA_V1, CLA_V2


class TestOrganizations:
    def test_slug_lookup_is_case_insensitive(self, store, organization):
        assert store.get_organization_by_slug("ACME").id == organization.id
        assert store.get_organization_by_slug("missing") is None

    def test_cla_text_digest(self, store, organization):
        assert organization.cla_digest == content_address(CLA_V1)
        store.update_cla_text(organization, CLA_V2)
        assert organization.cla_digest == content_address(CLA_V2)

    def test_new_organization_has_no_cla(self, store):
        organization = store.create_organization(slug="fresh", installation_id=7)
        assert organization.cla_digest is None
        assert organization.cla_text == ""

    def test_edits_without_signatures_create_no_archives(self, store, organization, db):
        for text in (CLA_V2, CLA_V1, CLA_V2 + "more"):
            store.update_cla_text(organization, text)
        db.commit()
        assert db.query(ClaArchive).count() == 0


class TestArchives:
    def test_get_or_create_is_idempotent(self, store, organization, db):
        digest = organization.cla_digest
        first = store.get_or_create_archive(organization.id, digest, CLA_V1)
        second = store.get_or_create_archive(organization.id, digest, CLA_V1)
        assert first.id == second.id
        assert db.query(ClaArchive).count() == 1


class TestDeliveryLedger:
    def test_reserve_once(self, store, db):
        assert store.reserve_delivery("delivery-1", "pull_request") is True
        db.commit()
        assert store.reserve_delivery("delivery-1", "pull_request") is False
        assert db.query(WebhookDelivery).count() == 1

    def test_failed_reservation_keeps_transaction_usable(self, store, db):
        store.reserve_delivery("delivery-1", "ping")
        store.reserve_delivery("delivery-1", "ping")
        store.append_audit_event("test.event", payload={"ok": True})
        db.commit()
        assert db.query(AuditEvent).filter(AuditEvent.event_type == "test.event").count() == 1


class TestSignatures:
    def test_duplicate_signature_returns_existing(self, store, organization, contributor):
        fields = dict(
            organization_id=organization.id,
            user_id=contributor.id,
            signed_digest=organization.cla_digest,
            accepted_digest=organization.cla_digest,
            consent_version="v1",
            github_id_at_signature=contributor.github_id,
            github_login_at_signature=contributor.github_login,
            email=contributor.email,
            session_id="session-1",
        )
        first, created = store.create_signature(**fields)
        assert created
        second, created_again = store.create_signature(**dict(fields, session_id="session-2"))
        assert not created_again
        assert second.id == first.id


class TestBypassAccounts:
    def test_add_is_idempotent(self, store, organization):
        row, created = store.add_bypass_account(organization.id, AppBotBypass(slug="renovate"))
        again, created_again = store.add_bypass_account(organization.id, AppBotBypass(slug="renovate"))
        assert created and not created_again
        assert again.id == row.id
        assert store.count_bypass_accounts(organization.id) == 1

    def test_remove(self, store, organization):
        row, _ = store.add_bypass_account(organization.id, UserBypass(github_user_id=5, login="five"))
        assert store.remove_bypass_account(organization.id, row.id) is not None
        assert store.remove_bypass_account(organization.id, row.id) is None
        assert store.list_bypass_accounts(organization.id) == []


class TestUsers:
    def test_find_user_prefers_github_id(self, store, contributor):
        assert store.find_user_for_actor(5001, "someone-else").id == contributor.id
        assert store.find_user_for_actor(None, "CONTRIBUTOR").id == contributor.id
        assert store.find_user_for_actor(9999, "nobody") is None

    def test_upsert_updates_login(self, store, contributor):
        user = store.upsert_user(5001, "renamed-contributor")
        assert user.id == contributor.id
        assert user.github_login == "renamed-contributor"
