"""Organization admin routes."""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.orm import Session

from clabot_api.admin.service import OrganizationAdminService
from clabot_api.auth.session import SessionContext, get_current_session
from clabot_api.cla.digest import short_label
from clabot_api.cla.store import ComplianceStore
from clabot_api.db.session import get_db
from clabot_api.errors import NotFoundError

router = APIRouter(prefix="/admin", tags=["admin"])


class ClaUpdate(BaseModel):
    """CLA text update."""

    cla_text: str = Field(alias="claText")

    model_config = ConfigDict(populate_by_name=True)


class ActiveUpdate(BaseModel):
    """Activation toggle."""

    is_active: bool = Field(alias="isActive")

    model_config = ConfigDict(populate_by_name=True)


class BypassCreate(BaseModel):
    """Bypass entry creation request."""

    kind: str  # user, app_bot
    login: str
    github_user_id: Optional[int] = Field(default=None, alias="githubUserId")

    model_config = ConfigDict(populate_by_name=True)


class BypassResponse(BaseModel):
    """Bypass entry response."""

    id: int
    kind: str
    subject_key: str
    github_login: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class SignatureRecord(BaseModel):
    """Signature as listed to organization admins."""

    id: int
    user_id: int
    github_login_at_signature: str
    signed_digest: str
    consent_version: str
    email: str
    email_verified: bool
    signed_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ArchiveRecord(BaseModel):
    """Archived CLA version."""

    digest: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


def _convergence(result) -> Optional[dict]:
    return result.to_dict() if result else None


@router.put("/orgs/{slug}/cla")
async def update_cla(
    slug: str,
    body: ClaUpdate,
    session: SessionContext = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    """Replace the organization's CLA text."""
    service = OrganizationAdminService(ComplianceStore(db))
    organization = service.require_admin(slug, session.user)
    organization, convergence = service.update_cla_text(organization, body.cla_text, session.user)
    return {
        "slug": organization.slug,
        "cla_digest": organization.cla_digest,
        "cla_label": short_label(organization.cla_digest) if organization.cla_digest else None,
        "convergence": _convergence(convergence),
    }


@router.patch("/orgs/{slug}/active")
async def set_active(
    slug: str,
    body: ActiveUpdate,
    session: SessionContext = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    """Activate or deactivate CLA enforcement."""
    service = OrganizationAdminService(ComplianceStore(db))
    organization = service.require_admin(slug, session.user)
    organization, convergence = service.set_active(organization, body.is_active, session.user)
    return {
        "slug": organization.slug,
        "is_active": organization.is_active,
        "convergence": _convergence(convergence),
    }


@router.get("/orgs/{slug}/bypass", response_model=list[BypassResponse])
async def list_bypass(
    slug: str,
    session: SessionContext = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    """List bypass entries."""
    service = OrganizationAdminService(ComplianceStore(db))
    organization = service.require_admin(slug, session.user)
    return service.list_bypass(organization)


@router.post("/orgs/{slug}/bypass", status_code=status.HTTP_201_CREATED)
async def add_bypass(
    slug: str,
    body: BypassCreate,
    session: SessionContext = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    """Add a user or app/bot to the bypass list."""
    service = OrganizationAdminService(ComplianceStore(db))
    organization = service.require_admin(slug, session.user)
    row, created, convergence = service.add_bypass(
        organization, body.kind, body.login, body.github_user_id, session.user
    )
    return {
        "entry": BypassResponse.model_validate(row).model_dump(mode="json"),
        "created": created,
        "convergence": _convergence(convergence),
    }


@router.delete("/orgs/{slug}/bypass/{entry_id}")
async def remove_bypass(
    slug: str,
    entry_id: int,
    session: SessionContext = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    """Remove a bypass entry."""
    service = OrganizationAdminService(ComplianceStore(db))
    organization = service.require_admin(slug, session.user)
    _, convergence = service.remove_bypass(organization, entry_id, session.user)
    return {"removed": entry_id, "convergence": _convergence(convergence)}


@router.get("/orgs/{slug}/signatures", response_model=list[SignatureRecord])
async def list_signatures(
    slug: str,
    session: SessionContext = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    """List every signature on the organization's CLA, newest first."""
    service = OrganizationAdminService(ComplianceStore(db))
    organization = service.require_admin(slug, session.user)
    return service.list_signatures(organization)


@router.get("/orgs/{slug}/archives")
async def list_archives(
    slug: str,
    session: SessionContext = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    """List archived CLA versions, oldest first."""
    service = OrganizationAdminService(ComplianceStore(db))
    organization = service.require_admin(slug, session.user)
    return [
        {
            **ArchiveRecord.model_validate(archive).model_dump(mode="json"),
            "label": short_label(archive.digest),
            "current": archive.digest == organization.cla_digest,
        }
        for archive in service.list_archives(organization)
    ]


@router.get("/convergence/{run_id}")
async def get_convergence_run(
    run_id: str,
    session: SessionContext = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    """Look up a convergence run's state."""
    store = ComplianceStore(db)
    run = store.get_convergence_run(run_id)
    if run is None:
        raise NotFoundError(f"Convergence run {run_id} not found")
    if run.organization_id is not None:
        organization = store.get_organization(run.organization_id)
        if organization is None:
            raise NotFoundError(f"Organization for convergence run {run_id} not found")
        OrganizationAdminService(store).require_admin(organization.slug, session.user)
    return {
        "runId": run.run_id,
        "trigger": run.trigger,
        "status": run.status,
        "summary": run.summary_json,
        "error": run.error,
        "createdAt": run.created_at.isoformat() if run.created_at else None,
        "finishedAt": run.finished_at.isoformat() if run.finished_at else None,
    }
