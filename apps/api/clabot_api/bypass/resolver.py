"""Bypass list resolution."""

from typing import Optional

from clabot_api.bypass.entries import (
    BypassEntry,
    BypassKind,
    actor_login_candidates,
    entry_from_row,
    is_likely_app_bot,
)
from clabot_api.cla.store import ComplianceStore
from clabot_api.github.types import GitHubActor


class BypassResolver:
    """Decide whether an actor is exempt from signing for an organization."""

    def __init__(self, store: ComplianceStore):
        """Initialize resolver with the compliance store."""
        self.store = store

    def find_entry(self, organization_id: int, actor: GitHubActor) -> Optional[BypassEntry]:
        """Return the matching bypass entry, users by id first, then app/bot slugs."""
        if actor.id is not None:
            row = self.store.find_bypass_account(organization_id, BypassKind.USER, [str(actor.id)])
            if row:
                return entry_from_row(row)

        if is_likely_app_bot(actor.login, actor.account_type):
            row = self.store.find_bypass_account(
                organization_id, BypassKind.APP_BOT, actor_login_candidates(actor.login)
            )
            if row:
                return entry_from_row(row)

        return None

    def is_bypassed(self, organization_id: int, actor: GitHubActor) -> bool:
        return self.find_entry(organization_id, actor) is not None
