"""Gather compliance facts and resolve an outcome for an actor."""

import logging
from typing import Optional

from clabot_api.bypass.resolver import BypassResolver
from clabot_api.cla.store import ComplianceStore
from clabot_api.compliance.resolver import ActorFacts, Outcome, resolve
from clabot_api.errors import NotFoundError
from clabot_api.github.client import GitHubClient
from clabot_api.github.types import GitHubActor
from clabot_api.models import Organization

logger = logging.getLogger(__name__)


def is_personal_account_owner(organization: Organization, actor: GitHubActor) -> bool:
    """True when the app is installed on ``actor``'s own personal account."""
    if organization.account_type != "user":
        return False
    if actor.login.strip().lower() == organization.slug.lower():
        return True
    if actor.id is None or not organization.account_id:
        return False
    return str(actor.id) == str(organization.account_id)


class ComplianceService:
    """Collect the facts ``resolve`` needs from the store and GitHub."""

    def __init__(self, store: ComplianceStore):
        """Initialize service with the compliance store."""
        self.store = store
        self.bypass_resolver = BypassResolver(store)

    def actor_facts(
        self, organization: Organization, actor: GitHubActor, github: Optional[GitHubClient]
    ) -> ActorFacts:
        if is_personal_account_owner(organization, actor):
            return ActorFacts(is_account_owner=True)
        if organization.account_type == "user" or github is None:
            return ActorFacts()
        membership = github.check_org_membership(organization.slug, actor.login)
        return ActorFacts(is_org_member=membership == "active")

    def signature_for_actor(self, organization: Organization, actor: GitHubActor):
        user = self.store.find_user_for_actor(actor.id, actor.login)
        if user is None:
            return None
        return self.store.get_signature_for_compliance(
            organization.id, user.id, organization.cla_digest
        )

    def resolve_for_actor(
        self, organization: Organization, actor: GitHubActor, github: Optional[GitHubClient]
    ) -> Outcome:
        """Resolve compliance, skipping GitHub lookups for inactive organizations."""
        if not organization.is_active:
            facts = ActorFacts()
        else:
            facts = self.actor_facts(organization, actor, github)
        bypassed = self.bypass_resolver.is_bypassed(organization.id, actor)
        signature = self.signature_for_actor(organization, actor)
        outcome = resolve(organization, facts, bypassed, signature)
        logger.debug(
            "Resolved compliance",
            extra={"organization": organization.slug, "actor": actor.login, "decision": outcome.decision},
        )
        return outcome

    def resolve_compliance(
        self, org_slug: str, actor: GitHubActor, github: Optional[GitHubClient]
    ) -> Outcome:
        organization = self.store.get_organization_by_slug(org_slug)
        if organization is None:
            raise NotFoundError(f'Organization "{org_slug}" not found')
        return self.resolve_for_actor(organization, actor, github)
