"""Tests for bypass list entries and resolution."""

import pytest

from clabot_api.bypass.entries import (
    AppBotBypass,
    BypassKind,
    UserBypass,
    actor_login_candidates,
    build_entry,
    format_actor_login,
    is_likely_app_bot,
    normalize_actor_slug,
    parse_bypass_kind,
)
from clabot_api.bypass.resolver import BypassResolver
from clabot_api.github.types import GitHubActor


class TestEntries:
    """Entry construction and normalization."""

    def test_slug_normalization(self):
        assert normalize_actor_slug("@Dependabot[bot]") == "dependabot"
        assert normalize_actor_slug(" renovate ") == "renovate"
        assert format_actor_login("Renovate") == "renovate[bot]"
        assert actor_login_candidates("renovate[bot]") == ["renovate", "renovate[bot]"]
        assert actor_login_candidates("  ") == []

    def test_parse_kind(self):
        assert parse_bypass_kind("user") is BypassKind.USER
        assert parse_bypass_kind("app_bot") is BypassKind.APP_BOT
        assert parse_bypass_kind("team") is None

    def test_user_entry_requires_id(self):
        with pytest.raises(ValueError):
            build_entry(BypassKind.USER, "someone")
        entry = build_entry(BypassKind.USER, "@SomeOne", 77)
        assert entry == UserBypass(github_user_id=77, login="someone")
        assert entry.subject_key == "77"

    def test_app_bot_entry(self):
        entry = build_entry(BypassKind.APP_BOT, "Dependabot[bot]")
        assert entry == AppBotBypass(slug="dependabot")
        assert entry.login == "dependabot[bot]"
        with pytest.raises(ValueError):
            build_entry(BypassKind.APP_BOT, "[bot]")

    def test_likely_app_bot(self):
        assert is_likely_app_bot("renovate[bot]")
        assert is_likely_app_bot("my-app", account_type="Bot")
        assert is_likely_app_bot("dependabot-preview")
        assert not is_likely_app_bot("octocat")


class TestResolver:
    """Resolution against stored entries."""

    def test_user_matched_by_id_not_login(self, store, organization):
        store.add_bypass_account(organization.id, UserBypass(github_user_id=77, login="renamed"))
        resolver = BypassResolver(store)

        assert resolver.is_bypassed(organization.id, GitHubActor(login="new-name", id=77))
        assert not resolver.is_bypassed(organization.id, GitHubActor(login="renamed", id=78))

    @pytest.mark.parametrize("login", ["dependabot", "dependabot[bot]", "Dependabot[BOT]"])
    def test_app_bot_matches_both_spellings(self, store, organization, login):
        store.add_bypass_account(organization.id, AppBotBypass(slug="dependabot"))
        actor = GitHubActor(login=login, id=49699333, account_type="Bot")

        assert BypassResolver(store).is_bypassed(organization.id, actor)

    def test_no_match(self, store, organization):
        assert not BypassResolver(store).is_bypassed(organization.id, GitHubActor(login="octocat", id=1))

    def test_entries_scoped_to_organization(self, store, organization, admin_user):
        other = store.create_organization(slug="other-org", installation_id=43, admin_user_id=admin_user.id)
        store.add_bypass_account(other.id, UserBypass(github_user_id=77, login="someone"))

        assert not BypassResolver(store).is_bypassed(organization.id, GitHubActor(login="someone", id=77))
