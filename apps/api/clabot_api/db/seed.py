"""Seed data for development and testing."""

from sqlalchemy.orm import Session

from clabot_api.cla.store import ComplianceStore
from clabot_api.models import Organization, User

DEMO_CLA_TEXT = """Individual Contributor License Agreement

By signing, you grant the project a perpetual, worldwide, non-exclusive,
royalty-free license to your contributions, and you confirm you have the
right to submit them.
"""


def seed_admin(db: Session) -> User:
    """Seed the demo organization admin."""
    store = ComplianceStore(db)
    return store.upsert_user(
        1001,
        "demo-admin",
        email="admin@example.com",
        email_verified=True,
        email_source="primary_verified",
        name="Demo Admin",
        role="admin",
    )


def seed_organization(db: Session, admin: User) -> Organization:
    """Seed the demo organization with a published CLA."""
    store = ComplianceStore(db)
    organization = store.get_organization_by_slug("demo-org")
    if organization is None:
        organization = store.create_organization(
            slug="demo-org",
            account_type="organization",
            account_id="2001",
            name="Demo Org",
            installation_id=3001,
            admin_user_id=admin.id,
        )
        store.update_cla_text(organization, DEMO_CLA_TEXT)
    return organization


def seed_all(db: Session) -> Organization:
    """Seed all initial data."""
    admin = seed_admin(db)
    organization = seed_organization(db, admin)
    db.commit()
    return organization
