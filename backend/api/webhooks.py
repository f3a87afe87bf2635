"""
Identity-provider webhook: POST /api/webhooks/clerk.

Signature problems are rejected (400 missing headers, 401 bad signature,
500 unconfigured secret). Once verified, a delivery is always acknowledged
with 200 so the sender does not retry forever; processing failures are
logged and reported in an "error" field.
"""
import json
import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Request

from backend.core.config import settings
from backend.core.errors import AppError
from backend.core.metrics import webhook_events_total
from backend.features.webhooks.clerk import handle_clerk_event
from backend.features.webhooks.verification import get_verifier, require_signature_headers

logger = logging.getLogger("vidify")

router = APIRouter(prefix="/api/webhooks", tags=["webhooks"])


@router.post("/clerk")
async def clerk_webhook(request: Request):
    body = await request.body()
    headers = require_signature_headers(request.headers)

    secret = settings.CLERK_WEBHOOK_SECRET
    if not secret:
        logger.error("clerk.webhook_secret_missing", extra={"error_code": "webhook_not_configured"})
        raise AppError(
            "Server configuration error",
            details="Webhook verification is not configured",
            code="webhook_not_configured",
            status_code=500,
        )

    get_verifier().verify(body, headers, secret)

    try:
        event = json.loads(body)
        sent_at = datetime.fromtimestamp(int(headers["svix-timestamp"]), tz=timezone.utc)
        outcome = handle_clerk_event(event, sent_at=sent_at)
    except Exception as e:
        if isinstance(e, AppError):
            message = e.details
        elif isinstance(e, ValueError):
            message = "Malformed JSON body"
        else:
            message = "Event could not be processed"
        logger.error("clerk.webhook_failed", exc_info=True, extra={"event_type": "clerk.webhook_failed"})
        webhook_events_total.inc(labels={"source": "clerk", "type": "unknown", "outcome": "error"})
        return {"received": True, "error": message}

    return {"received": True, "outcome": outcome}
