# leadsync/routes/webhooks.py
from __future__ import annotations

import hashlib
import hmac
import json
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Header, Query, Request
from fastapi.responses import PlainTextResponse

from leadsync.core.config import settings
from leadsync.core.exceptions import AuthorizationError
from leadsync.core.logging import get_structlog_logger
from leadsync.services.factory import build_webhook_ingestor
from leadsync.services.webhook_ingest import WebhookIngestor, extract_leadgen_events

logger = get_structlog_logger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


def verify_signature(payload: bytes, signature: Optional[str], secret: str) -> bool:
    """Verify an X-Hub-Signature-256 header."""
    if not signature or not signature.startswith("sha256="):
        return False

    expected = hmac.new(secret.encode(), payload, hashlib.sha256).hexdigest()
    return hmac.compare_digest(f"sha256={expected}", signature)


@router.get("/meta", response_class=PlainTextResponse)
async def verify_webhook(
    hub_mode: Optional[str] = Query(None, alias="hub.mode"),
    hub_verify_token: Optional[str] = Query(None, alias="hub.verify_token"),
    hub_challenge: Optional[str] = Query(None, alias="hub.challenge"),
) -> str:
    """Subscription handshake: echo the challenge when the verify token matches."""
    expected = settings.meta_verify_token
    if (
        hub_mode == "subscribe"
        and expected
        and hub_verify_token
        and hmac.compare_digest(hub_verify_token.encode(), expected.encode())
    ):
        logger.info("webhook.verified")
        return hub_challenge or ""

    logger.warning("webhook.verification_failed", mode=hub_mode)
    raise AuthorizationError(message="Webhook verification failed", code="webhook_verification_failed")


@router.post("/meta", response_class=PlainTextResponse)
async def receive_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    x_hub_signature_256: Optional[str] = Header(None),
    ingestor: WebhookIngestor = Depends(build_webhook_ingestor),
) -> str:
    """Acknowledge right away; ingestion runs after the response is sent."""
    body = await request.body()

    if settings.meta_app_secret and not verify_signature(body, x_hub_signature_256, settings.meta_app_secret):
        logger.warning("webhook.invalid_signature")
        raise AuthorizationError(message="Invalid webhook signature", code="invalid_signature")

    try:
        payload = json.loads(body) if body else None
    except (json.JSONDecodeError, UnicodeDecodeError):
        logger.warning("webhook.invalid_json", size=len(body))
        payload = None

    events = extract_leadgen_events(payload)
    if events:
        background_tasks.add_task(ingestor.handle_events, events)

    logger.info("webhook.received", events=len(events))
    return "EVENT_RECEIVED"
