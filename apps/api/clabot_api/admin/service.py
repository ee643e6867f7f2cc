"""Organization administration: CLA text, activation and the bypass list.

Each change is committed first and then schedules convergence, so open pull
requests pick up the new state.
"""

import logging
from typing import Optional

from clabot_api.bypass.entries import build_entry, parse_bypass_kind
from clabot_api.cla.digest import short_label
from clabot_api.cla.store import ComplianceStore
from clabot_api.convergence.request import ScheduleResult, Trigger
from clabot_api.convergence.scheduler import ConvergenceScheduler
from clabot_api.errors import ForbiddenError, InvalidRequestError, NotFoundError
from clabot_api.models import BypassAccount, ClaArchive, ClaSignature, Organization, User
from clabot_api.settings import get_settings

logger = logging.getLogger(__name__)


class OrganizationAdminService:
    """Admin operations on a single organization."""

    def __init__(self, store: ComplianceStore, scheduler: Optional[ConvergenceScheduler] = None):
        self.store = store
        self.scheduler = scheduler or ConvergenceScheduler(store)
        self.settings = get_settings()

    def get_organization(self, slug: str) -> Organization:
        organization = self.store.get_organization_by_slug(slug)
        if organization is None:
            raise NotFoundError(f'Organization "{slug}" not found')
        return organization

    def require_admin(self, slug: str, user: User) -> Organization:
        """Return the organization if ``user`` administers it."""
        organization = self.get_organization(slug)
        if organization.admin_user_id is None or organization.admin_user_id != user.id:
            raise ForbiddenError(f"@{user.github_login} is not an admin of {organization.slug}")
        return organization

    def _audit(self, event_type: str, organization: Organization, user: Optional[User], payload: dict):
        self.store.append_audit_event(
            event_type,
            organization_id=organization.id,
            user_id=user.id if user else None,
            actor_github_id=user.github_id if user else None,
            actor_github_login=user.github_login if user else None,
            payload=payload,
        )

    def update_cla_text(
        self, organization: Organization, cla_text: str, user: Optional[User] = None
    ) -> tuple[Organization, Optional[ScheduleResult]]:
        """Replace the live CLA text. No archive is written until someone signs."""
        if not cla_text.strip():
            raise InvalidRequestError("CLA text cannot be empty")
        previous_digest = organization.cla_digest
        self.store.update_cla_text(organization, cla_text)
        changed = organization.cla_digest != previous_digest
        self._audit(
            "cla.updated",
            organization,
            user,
            {
                "previous_digest": previous_digest,
                "digest": organization.cla_digest,
                "label": short_label(organization.cla_digest),
                "changed": changed,
            },
        )
        self.store.db.commit()

        if not changed:
            return organization, None
        logger.info(
            f"CLA updated for {organization.slug}: {short_label(organization.cla_digest)}",
            extra={"organization": organization.slug},
        )
        result = self.scheduler.schedule(
            organization, Trigger.CLA_UPDATED, expected_digest=organization.cla_digest
        )
        return organization, result

    def set_active(
        self, organization: Organization, is_active: bool, user: Optional[User] = None
    ) -> tuple[Organization, Optional[ScheduleResult]]:
        changed = bool(organization.is_active) != is_active
        self.store.set_organization_active(organization, is_active)
        self._audit(
            "organization.activated" if is_active else "organization.deactivated",
            organization,
            user,
            {"changed": changed},
        )
        self.store.db.commit()
        if not changed:
            return organization, None
        return organization, self.scheduler.schedule(organization, Trigger.ACTIVATION)

    def list_bypass(self, organization: Organization) -> list[BypassAccount]:
        return self.store.list_bypass_accounts(organization.id)

    def list_signatures(self, organization: Organization) -> list[ClaSignature]:
        return self.store.list_signatures(organization.id)

    def list_archives(self, organization: Organization) -> list[ClaArchive]:
        return self.store.list_archives(organization.id)

    def add_bypass(
        self,
        organization: Organization,
        kind: str,
        login: str,
        github_user_id: Optional[int] = None,
        user: Optional[User] = None,
    ) -> tuple[BypassAccount, bool, Optional[ScheduleResult]]:
        """Add a bypass entry; returns ``(row, created, convergence)``."""
        parsed_kind = parse_bypass_kind(kind)
        if parsed_kind is None:
            raise InvalidRequestError(f"Unknown bypass kind: {kind}")

        if github_user_id is None and parsed_kind.value == "user":
            known = self.store.get_user_by_login(login.lstrip("@"))
            github_user_id = int(known.github_id) if known else None
        try:
            entry = build_entry(parsed_kind, login, github_user_id)
        except ValueError as e:
            raise InvalidRequestError(str(e)) from e

        existing = self.store.find_bypass_account(organization.id, entry.kind, [entry.subject_key])
        if existing:
            return existing, False, None
        if self.store.count_bypass_accounts(organization.id) >= self.settings.bypass_max_entries:
            raise InvalidRequestError(
                f"Bypass list is limited to {self.settings.bypass_max_entries} entries"
            )

        row, created = self.store.add_bypass_account(
            organization.id, entry, created_by_user_id=user.id if user else None
        )
        if not created:
            self.store.db.rollback()
            return row, False, None
        self._audit(
            "bypass.added",
            organization,
            user,
            {"kind": entry.kind.value, "subject_key": entry.subject_key, "login": entry.login},
        )
        self.store.db.commit()
        return row, True, self.scheduler.schedule(organization, Trigger.BYPASS_ADDED)

    def remove_bypass(
        self, organization: Organization, entry_id: int, user: Optional[User] = None
    ) -> tuple[BypassAccount, Optional[ScheduleResult]]:
        row = self.store.remove_bypass_account(organization.id, entry_id)
        if row is None:
            raise NotFoundError(f"Bypass entry {entry_id} not found")
        self._audit(
            "bypass.removed",
            organization,
            user,
            {"kind": row.kind, "subject_key": row.subject_key, "login": row.github_login},
        )
        self.store.db.commit()
        return row, self.scheduler.schedule(organization, Trigger.BYPASS_REMOVED)
