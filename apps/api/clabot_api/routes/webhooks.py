"""GitHub webhook receiver."""

import json
import logging

from fastapi import APIRouter, Depends, Request
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.orm import Session

from clabot_api.db.session import get_db
from clabot_api.errors import ClaError, InvalidRequestError, UnauthorizedError
from clabot_api.github.signature import normalize_webhook_secret, verify_github_signature
from clabot_api.settings import get_settings
from clabot_api.webhooks.handler import WebhookHandler

logger = logging.getLogger(__name__)

router = APIRouter(tags=["webhooks"])


def verify_delivery(raw_body: bytes, signature_header) -> None:
    """Reject deliveries that are not signed with the configured secret.

    Without a secret, development environments accept unsigned deliveries and
    every other environment refuses them.
    """
    settings = get_settings()
    secret = normalize_webhook_secret(settings.github_webhook_secret or "")
    if not secret:
        if settings.is_development:
            logger.warning("GITHUB_WEBHOOK_SECRET not set; skipping signature verification")
            return
        raise ClaError("Webhook secret is not configured")
    if not verify_github_signature(secret, raw_body, signature_header):
        raise UnauthorizedError("Invalid webhook signature")


@router.post("/webhooks/github")
async def github_webhook(request: Request, db: Session = Depends(get_db)):
    """Receive a GitHub App webhook delivery."""
    raw_body = await request.body()
    verify_delivery(raw_body, request.headers.get("x-hub-signature-256"))

    try:
        payload = json.loads(raw_body)
    except ValueError as e:
        raise InvalidRequestError("Webhook body is not valid JSON") from e
    if not isinstance(payload, dict):
        raise InvalidRequestError("Webhook body must be a JSON object")

    handler = WebhookHandler(db)
    return await run_in_threadpool(
        handler.handle,
        request.headers.get("x-github-delivery"),
        request.headers.get("x-github-event"),
        payload,
    )
