"""Public organization routes."""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from clabot_api.cla.digest import short_label
from clabot_api.cla.store import ComplianceStore
from clabot_api.db.session import get_db
from clabot_api.errors import NotFoundError

router = APIRouter(prefix="/v1", tags=["orgs"])


@router.get("/orgs/{slug}")
async def get_organization(slug: str, db: Session = Depends(get_db)):
    """CLA text and version shown on the signing page."""
    organization = ComplianceStore(db).get_organization_by_slug(slug)
    if organization is None:
        raise NotFoundError(f'Organization "{slug}" not found')
    return {
        "slug": organization.slug,
        "name": organization.name,
        "avatar_url": organization.avatar_url,
        "account_type": organization.account_type,
        "is_active": organization.is_active,
        "cla_text": organization.cla_text,
        "cla_digest": organization.cla_digest,
        "cla_label": short_label(organization.cla_digest) if organization.cla_digest else None,
    }
