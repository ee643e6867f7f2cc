"""Compliance store: the queries the CLA engine needs.

Methods flush but never commit; the calling service owns the transaction.
Inserts guarded by a unique constraint run inside a savepoint so a losing
racer sees ``IntegrityError`` without poisoning the outer transaction.
"""

import logging
from typing import Iterable, Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from clabot_api.bypass.entries import BypassEntry, BypassKind
from clabot_api.cla.digest import content_address
from clabot_api.models import (
    AuditEvent,
    BypassAccount,
    ClaArchive,
    ClaSignature,
    ConvergenceRun,
    Organization,
    User,
    WebhookDelivery,
)

logger = logging.getLogger(__name__)


class ComplianceStore:
    """Persistence operations for organizations, signatures and the ledgers."""

    def __init__(self, db: Session):
        """Initialize store with database session."""
        self.db = db

    def _insert_unique(self, row) -> bool:
        """Insert ``row``; return False if a unique constraint rejected it."""
        try:
            with self.db.begin_nested():
                self.db.add(row)
        except IntegrityError:
            return False
        return True

    # Organizations

    def get_organization(self, organization_id: int) -> Optional[Organization]:
        return self.db.get(Organization, organization_id)

    def get_organization_by_slug(self, slug: str) -> Optional[Organization]:
        return (
            self.db.query(Organization)
            .filter(func.lower(Organization.slug) == slug.strip().lower())
            .first()
        )

    def create_organization(
        self,
        slug: str,
        account_type: str = "organization",
        account_id: Optional[str] = None,
        name: Optional[str] = None,
        avatar_url: str = "",
        installation_id: Optional[int] = None,
        admin_user_id: Optional[int] = None,
    ) -> Organization:
        """Register an organization with no CLA configured."""
        organization = Organization(
            slug=slug,
            account_type=account_type,
            account_id=account_id,
            name=name or slug,
            avatar_url=avatar_url,
            installation_id=installation_id,
            admin_user_id=admin_user_id,
            is_active=True,
            cla_text="",
            cla_digest=None,
        )
        self.db.add(organization)
        self.db.flush()
        return organization

    def set_organization_active(self, organization: Organization, is_active: bool) -> Organization:
        organization.is_active = is_active
        self.db.flush()
        return organization

    def update_installation(
        self,
        organization: Organization,
        installation_id: Optional[int],
        account_type: Optional[str] = None,
        account_id: Optional[str] = None,
    ) -> Organization:
        organization.installation_id = installation_id
        if account_type:
            organization.account_type = account_type
        if account_id:
            organization.account_id = account_id
        self.db.flush()
        return organization

    def update_cla_text(self, organization: Organization, cla_text: str) -> Organization:
        """Overwrite the live CLA text and recompute its digest.

        No archive is written here.
        """
        organization.cla_text = cla_text
        organization.cla_digest = content_address(cla_text)
        self.db.flush()
        return organization

    # Users

    def get_user(self, user_id: int) -> Optional[User]:
        return self.db.get(User, user_id)

    def get_user_by_github_id(self, github_id) -> Optional[User]:
        return self.db.query(User).filter(User.github_id == str(github_id)).first()

    def get_user_by_login(self, login: str) -> Optional[User]:
        return (
            self.db.query(User)
            .filter(func.lower(User.github_login) == login.strip().lower())
            .first()
        )

    def find_user_for_actor(self, github_id: Optional[int], login: str) -> Optional[User]:
        """Map a GitHub actor to a stored user, preferring the immutable id."""
        if github_id is not None:
            user = self.get_user_by_github_id(github_id)
            if user:
                return user
        return self.get_user_by_login(login)

    def upsert_user(self, github_id, github_login: str, **fields) -> User:
        user = self.get_user_by_github_id(github_id)
        if user is None:
            user = User(github_id=str(github_id), github_login=github_login, **fields)
            self.db.add(user)
        else:
            user.github_login = github_login
            for key, value in fields.items():
                setattr(user, key, value)
        self.db.flush()
        return user

    # Archives

    def get_archive(self, organization_id: int, digest: str) -> Optional[ClaArchive]:
        return (
            self.db.query(ClaArchive)
            .filter(ClaArchive.organization_id == organization_id, ClaArchive.digest == digest)
            .first()
        )

    def get_or_create_archive(self, organization_id: int, digest: str, cla_text: str) -> ClaArchive:
        archive = self.get_archive(organization_id, digest)
        if archive:
            return archive
        archive = ClaArchive(organization_id=organization_id, digest=digest, cla_text=cla_text)
        if self._insert_unique(archive):
            return archive
        # Another signer created it first
        return self.get_archive(organization_id, digest)

    def list_archives(self, organization_id: int) -> list[ClaArchive]:
        return (
            self.db.query(ClaArchive)
            .filter(ClaArchive.organization_id == organization_id)
            .order_by(ClaArchive.created_at.asc(), ClaArchive.id.asc())
            .all()
        )

    # Signatures

    def get_signature_for_digest(
        self, organization_id: int, user_id: int, digest: str
    ) -> Optional[ClaSignature]:
        return (
            self.db.query(ClaSignature)
            .filter(
                ClaSignature.organization_id == organization_id,
                ClaSignature.user_id == user_id,
                ClaSignature.signed_digest == digest,
            )
            .first()
        )

    def get_latest_signature(self, organization_id: int, user_id: int) -> Optional[ClaSignature]:
        return (
            self.db.query(ClaSignature)
            .filter(
                ClaSignature.organization_id == organization_id,
                ClaSignature.user_id == user_id,
            )
            .order_by(ClaSignature.signed_at.desc(), ClaSignature.id.desc())
            .first()
        )

    def get_signature_for_compliance(
        self, organization_id: int, user_id: int, current_digest: Optional[str]
    ) -> Optional[ClaSignature]:
        """The signature on the current digest if any, else the most recent one."""
        if current_digest:
            signature = self.get_signature_for_digest(organization_id, user_id, current_digest)
            if signature:
                return signature
        return self.get_latest_signature(organization_id, user_id)

    def create_signature(self, **fields) -> tuple[ClaSignature, bool]:
        """Insert a signature; on a uniqueness collision return the existing row.

        Returns ``(signature, created)``.
        """
        signature = ClaSignature(**fields)
        if self._insert_unique(signature):
            return signature, True
        existing = self.get_signature_for_digest(
            fields["organization_id"], fields["user_id"], fields["signed_digest"]
        )
        return existing, False

    def get_signature(self, signature_id: int) -> Optional[ClaSignature]:
        return self.db.get(ClaSignature, signature_id)

    def list_signatures(self, organization_id: int) -> list[ClaSignature]:
        return (
            self.db.query(ClaSignature)
            .filter(ClaSignature.organization_id == organization_id)
            .order_by(ClaSignature.signed_at.desc(), ClaSignature.id.desc())
            .all()
        )

    def list_user_signatures(self, user_id: int) -> list[ClaSignature]:
        return (
            self.db.query(ClaSignature)
            .filter(ClaSignature.user_id == user_id)
            .order_by(ClaSignature.signed_at.desc(), ClaSignature.id.desc())
            .all()
        )

    # Bypass list

    def list_bypass_accounts(self, organization_id: int) -> list[BypassAccount]:
        return (
            self.db.query(BypassAccount)
            .filter(BypassAccount.organization_id == organization_id)
            .order_by(BypassAccount.created_at.asc(), BypassAccount.id.asc())
            .all()
        )

    def count_bypass_accounts(self, organization_id: int) -> int:
        return (
            self.db.query(func.count(BypassAccount.id))
            .filter(BypassAccount.organization_id == organization_id)
            .scalar()
        )

    def find_bypass_account(
        self, organization_id: int, kind: BypassKind, subject_keys: Iterable[str]
    ) -> Optional[BypassAccount]:
        keys = [key.lower() for key in subject_keys if key]
        if not keys:
            return None
        return (
            self.db.query(BypassAccount)
            .filter(
                BypassAccount.organization_id == organization_id,
                BypassAccount.kind == kind.value,
                func.lower(BypassAccount.subject_key).in_(keys),
            )
            .first()
        )

    def add_bypass_account(
        self, organization_id: int, entry: BypassEntry, created_by_user_id: Optional[int] = None
    ) -> tuple[BypassAccount, bool]:
        """Add an entry; returns ``(row, created)`` and is idempotent per subject."""
        row = BypassAccount(
            organization_id=organization_id,
            kind=entry.kind.value,
            subject_key=entry.subject_key,
            github_login=entry.login,
            created_by_user_id=created_by_user_id,
        )
        if self._insert_unique(row):
            return row, True
        existing = self.find_bypass_account(organization_id, entry.kind, [entry.subject_key])
        return existing, False

    def remove_bypass_account(self, organization_id: int, entry_id: int) -> Optional[BypassAccount]:
        row = (
            self.db.query(BypassAccount)
            .filter(BypassAccount.organization_id == organization_id, BypassAccount.id == entry_id)
            .first()
        )
        if row is None:
            return None
        self.db.delete(row)
        self.db.flush()
        return row

    # Webhook delivery ledger

    def reserve_delivery(self, delivery_id: str, event: str) -> bool:
        """Claim a delivery id. False means it was already processed."""
        if self.db.get(WebhookDelivery, delivery_id) is not None:
            return False
        return self._insert_unique(WebhookDelivery(delivery_id=delivery_id, event=event))

    # Audit log

    def append_audit_event(
        self,
        event_type: str,
        organization_id: Optional[int] = None,
        user_id: Optional[int] = None,
        actor_github_id=None,
        actor_github_login: Optional[str] = None,
        payload: Optional[dict] = None,
    ) -> AuditEvent:
        event = AuditEvent(
            event_type=event_type,
            organization_id=organization_id,
            user_id=user_id,
            actor_github_id=str(actor_github_id) if actor_github_id is not None else None,
            actor_github_login=actor_github_login,
            payload_json=payload or {},
        )
        self.db.add(event)
        self.db.flush()
        return event

    # Convergence runs

    def create_convergence_run(self, run_id: str, trigger: str, **fields) -> ConvergenceRun:
        run = ConvergenceRun(run_id=run_id, trigger=trigger, status="queued", **fields)
        self.db.add(run)
        self.db.flush()
        return run

    def get_convergence_run(self, run_id: str) -> Optional[ConvergenceRun]:
        return self.db.get(ConvergenceRun, run_id)
