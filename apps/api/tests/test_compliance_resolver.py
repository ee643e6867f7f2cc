"""Tests for compliance resolution precedence."""

from types import SimpleNamespace

import pytest

from clabot_api.cla.digest import content_address, short_label
from clabot_api.compliance.resolver import (
    ActorFacts,
    Compliant,
    ConfigRequired,
    Exempt,
    NeedsResign,
    NeverSigned,
    resolve,
)
from clabot_api.compliance.service import ComplianceService, is_personal_account_owner
from clabot_api.errors import NotFoundError
from clabot_api.github.types import GitHubActor

D1 = content_address("v1")
D2 = content_address("v2")


def org(is_active=True, cla_digest=D1):
    return SimpleNamespace(is_active=is_active, cla_digest=cla_digest)


def signature(digest):
    return SimpleNamespace(signed_digest=digest)


class TestResolve:
    """Pure precedence rules."""

    def test_inactive_wins_over_everything(self):
        assert resolve(org(is_active=False, cla_digest=None), ActorFacts(), False, None) == Exempt("inactive")

    @pytest.mark.parametrize("sig", [None, signature(D1), signature(D2)])
    def test_membership_exempt_regardless_of_signature(self, sig):
        outcome = resolve(org(), ActorFacts(is_org_member=True), False, sig)
        assert outcome == Exempt("membership")
        assert outcome.passing

    def test_account_owner_exempt(self):
        assert resolve(org(), ActorFacts(is_account_owner=True), False, None) == Exempt("membership")

    @pytest.mark.parametrize("sig", [None, signature(D2)])
    def test_bypass_exempt_regardless_of_signature(self, sig):
        assert resolve(org(), ActorFacts(), True, sig) == Exempt("bypass")

    def test_members_pass_without_cla(self):
        assert resolve(org(cla_digest=None), ActorFacts(is_org_member=True), False, None).passing

    def test_config_required(self):
        outcome = resolve(org(cla_digest=None), ActorFacts(), False, signature(D1))
        assert outcome == ConfigRequired()
        assert not outcome.passing

    def test_never_signed(self):
        assert resolve(org(), ActorFacts(), False, None) == NeverSigned(short_label(D1))

    def test_needs_resign(self):
        outcome = resolve(org(cla_digest=D2), ActorFacts(), False, signature(D1))
        assert outcome == NeedsResign(short_label(D1), short_label(D2))
        assert outcome.decision == "resign_required"

    def test_compliant(self):
        outcome = resolve(org(), ActorFacts(), False, signature(D1))
        assert outcome == Compliant(D1)
        assert outcome.decision == "signed"


class TestComplianceService:
    """Fact gathering against the store and GitHub."""

    def test_personal_account_owner(self):
        personal = SimpleNamespace(account_type="user", slug="octocat", account_id="583231")
        assert is_personal_account_owner(personal, GitHubActor(login="OctoCat"))
        assert is_personal_account_owner(personal, GitHubActor(login="renamed", id=583231))
        assert not is_personal_account_owner(personal, GitHubActor(login="someone", id=1))

    def test_org_member_is_exempt(self, store, organization, github):
        github.add_member("acme", "insider")
        outcome = ComplianceService(store).resolve_compliance(
            "acme", GitHubActor(login="insider", id=9), github
        )
        assert outcome == Exempt("membership")

    def test_signature_on_current_digest_is_preferred(self, store, organization, contributor, contributor_actor):
        # Signed v1, then v2, then the CLA reverted to v1
        for digest in (organization.cla_digest, content_address("v2")):
            store.create_signature(
                organization_id=organization.id,
                user_id=contributor.id,
                signed_digest=digest,
                accepted_digest=digest,
                consent_version="v1",
                github_id_at_signature=contributor.github_id,
                github_login_at_signature=contributor.github_login,
                email=contributor.email,
                session_id="session",
            )
        outcome = ComplianceService(store).resolve_for_actor(organization, contributor_actor, None)
        assert outcome == Compliant(organization.cla_digest)

    def test_inactive_org_skips_github(self, store, organization, contributor_actor):
        store.set_organization_active(organization, False)
        broken = SimpleNamespace(check_org_membership=lambda *args: pytest.fail("GitHub was called"))
        outcome = ComplianceService(store).resolve_for_actor(organization, contributor_actor, broken)
        assert outcome == Exempt("inactive")

    def test_unknown_organization(self, store):
        with pytest.raises(NotFoundError):
            ComplianceService(store).resolve_compliance("nope", GitHubActor(login="x"), None)
