"""Contributor-facing signing and compliance routes."""

import re
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Request, Response
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.orm import Session

from clabot_api.auth.session import SessionContext, get_current_session, get_optional_session
from clabot_api.cla.digest import short_label
from clabot_api.cla.store import ComplianceStore
from clabot_api.compliance.service import ComplianceService
from clabot_api.convergence.request import Trigger
from clabot_api.convergence.scheduler import ConvergenceScheduler
from clabot_api.db.session import get_db
from clabot_api.errors import NotFoundError, UpstreamError
from clabot_api.github.client import GitHubAPIError
from clabot_api.github.factory import get_github_client
from clabot_api.github.types import GitHubActor
from clabot_api.signing.evidence import resolve_request_evidence
from clabot_api.signing.service import SigningService

router = APIRouter(prefix="/v1", tags=["cla"])


class SignRequest(BaseModel):
    """CLA signing request."""

    model_config = ConfigDict(populate_by_name=True)

    accepted_digest: Optional[str] = Field(default=None, alias="acceptedDigest")
    consent_version: Optional[str] = Field(default=None, alias="consentVersion")
    assented: Optional[bool] = True
    repo_name: Optional[str] = Field(default=None, alias="repoName")
    pr_number: Optional[int] = Field(default=None, alias="prNumber")


class SignatureResponse(BaseModel):
    """Signature response."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    organization_id: int
    signed_digest: str
    consent_version: str
    signed_at: datetime
    github_login_at_signature: str
    email_source: str


@router.post("/orgs/{slug}/sign", status_code=201)
async def sign_cla(
    slug: str,
    request: Request,
    body: Optional[SignRequest] = None,
    session: Optional[SessionContext] = Depends(get_optional_session),
    db: Session = Depends(get_db),
):
    """Sign the organization's current CLA as the signed-in user."""
    body = body or SignRequest()
    store = ComplianceStore(db)
    client_host = request.client.host if request.client else None

    signature = SigningService(store).sign(
        slug,
        session.user if session else None,
        session.session_id if session else None,
        accepted_digest=body.accepted_digest,
        consent_version=body.consent_version,
        assented=body.assented,
        repo_name=body.repo_name,
        pr_number=body.pr_number,
        evidence=resolve_request_evidence(request.headers, client_host),
    )

    user = session.user
    organization = store.get_organization(signature.organization_id)
    actor = GitHubActor(login=user.github_login, id=int(user.github_id))
    convergence = ConvergenceScheduler(store).schedule(
        organization,
        Trigger.SIGNATURE,
        actor=actor,
        target_repo=body.repo_name,
        target_pr_number=body.pr_number,
    )

    return {
        "signature": SignatureResponse.model_validate(signature).model_dump(mode="json"),
        "label": short_label(signature.signed_digest),
        "convergence": convergence.to_dict(),
    }


@router.get("/orgs/{slug}/compliance/{login}")
async def get_compliance(slug: str, login: str, db: Session = Depends(get_db)):
    """Resolve CLA compliance for a GitHub login."""
    store = ComplianceStore(db)
    organization = store.get_organization_by_slug(slug)
    if organization is None:
        raise NotFoundError(f'Organization "{slug}" not found')

    user = store.get_user_by_login(login)
    actor = GitHubActor(login=login, id=int(user.github_id) if user else None)
    try:
        github = get_github_client(organization.installation_id) if organization.installation_id else None
        outcome = ComplianceService(store).resolve_for_actor(organization, actor, github)
    except GitHubAPIError as e:
        raise UpstreamError(str(e)) from e
    return {
        "organization": organization.slug,
        "login": login,
        "decision": outcome.decision,
        "passing": outcome.passing,
        "current_digest": organization.cla_digest,
        "current_label": short_label(organization.cla_digest) if organization.cla_digest else None,
    }


def _file_part(value: str) -> str:
    return re.sub(r"[^a-z0-9._-]+", "-", value.lower())


@router.get("/me/signatures")
async def list_my_signatures(
    session: SessionContext = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    """The signed-in user's signatures, newest first, with per-organization status."""
    store = ComplianceStore(db)
    organizations = {}
    latest_by_org = {}
    current_orgs = set()
    signatures = []
    for signature in store.list_user_signatures(session.user.id):
        organization_id = signature.organization_id
        if organization_id not in organizations:
            organizations[organization_id] = store.get_organization(organization_id)
        organization = organizations[organization_id]
        latest_by_org.setdefault(organization_id, signature.id)
        is_current = organization is not None and signature.signed_digest == organization.cla_digest
        if is_current:
            current_orgs.add(organization_id)
        signatures.append(
            {
                **SignatureResponse.model_validate(signature).model_dump(mode="json"),
                "organization": organization.slug if organization else None,
                "label": short_label(signature.signed_digest),
                "is_current_version": is_current,
                "is_latest_for_org": latest_by_org[organization_id] == signature.id,
            }
        )
    for entry in signatures:
        entry["org_needs_resign"] = entry["organization_id"] not in current_orgs
    return {
        "signatures": signatures,
        "signed_org_count": len(latest_by_org),
        "outdated_org_count": len(set(latest_by_org) - current_orgs),
    }


@router.get("/me/signatures/{signature_id}/download")
async def download_signed_cla(
    signature_id: int,
    session: SessionContext = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    """Download the exact CLA text a signature was made against."""
    store = ComplianceStore(db)
    signature = store.get_signature(signature_id)
    if signature is None or signature.user_id != session.user.id:
        raise NotFoundError("Signature not found")
    organization = store.get_organization(signature.organization_id)
    if organization is None:
        raise NotFoundError("Organization not found")

    archive = store.get_archive(organization.id, signature.signed_digest)
    if archive is not None:
        text = archive.cla_text
    elif organization.cla_digest == signature.signed_digest:
        text = organization.cla_text
    else:
        raise NotFoundError("CLA archive not found")

    file_name = "{}-cla-{}-{}.md".format(
        _file_part(organization.slug),
        _file_part(short_label(signature.signed_digest)),
        _file_part(signature.signed_at.date().isoformat()),
    )
    return Response(
        content=text,
        media_type="text/markdown; charset=utf-8",
        headers={
            "Content-Disposition": f'attachment; filename="{file_name}"',
            "Cache-Control": "private, max-age=0, no-cache",
        },
    )
