"""
Inbound receipt webhook.

Resend signs every webhook with Svix. The endpoint verifies the signature,
normalizes the event, schedules the receipt pipeline as a background task
and acknowledges immediately.

Responses
---------
400  signature headers missing, signature invalid, or the signed body
     is not a JSON object
200  everything else, including events that are ignored and pipeline
     runs that later fail; a non-2xx answer would make Resend redeliver.

Endpoints:
  POST /inbound    Resend `email.received` webhook (auth: Svix signature)
"""

import logging

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request
from svix.webhooks import Webhook, WebhookVerificationError

from app.config import Settings, get_settings
from app.models.inbound_email import InboundEvent
from app.services.inbound_email_adapter import UnsupportedEvent, normalize_resend_event
from app.services.receipt_pipeline import run_receipt_pipeline

logger = logging.getLogger(__name__)

router = APIRouter()

_SIGNATURE_HEADERS = ("svix-id", "svix-timestamp", "svix-signature")


# ---------------------------------------------------------------------------
# Webhook authentication dependency
# ---------------------------------------------------------------------------

async def _verified_event(
    request: Request,
    settings: Settings = Depends(get_settings),
) -> dict:
    """
    Verify the Svix signature over the raw body and return the parsed event.

    Raises 400 if any signature header is missing, verification fails, or
    the verified body is not a JSON object.
    """
    payload = await request.body()
    headers = {name: request.headers.get(name) for name in _SIGNATURE_HEADERS}

    missing = [name for name, value in headers.items() if not value]
    if missing:
        logger.warning(f"Rejected webhook without signature headers: {missing}")
        raise HTTPException(status_code=400, detail="Missing webhook signature headers")

    try:
        event = Webhook(settings.webhook_secret).verify(payload, headers)
    except (WebhookVerificationError, ValueError) as exc:
        logger.warning(f"Rejected webhook that failed verification: {exc}")
        raise HTTPException(status_code=400, detail="Error verifying webhook")

    if not isinstance(event, dict):
        logger.warning(f"Rejected verified webhook whose body is a {type(event).__name__}")
        raise HTTPException(status_code=400, detail="Webhook body must be a JSON object")
    return event


# ---------------------------------------------------------------------------
# Background runner
# ---------------------------------------------------------------------------

def _process_in_background(event: InboundEvent, settings: Settings) -> None:
    """
    Run the pipeline after the response has been sent.

    Failures are logged and swallowed; there is no caller left to report to.
    """
    try:
        run_receipt_pipeline(event, settings)
    except Exception:
        logger.exception(f"Receipt pipeline failed for email {event.message_id}")


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.post("/inbound")
async def receive_inbound_email(
    background_tasks: BackgroundTasks,
    event: dict = Depends(_verified_event),
    settings: Settings = Depends(get_settings),
) -> dict:
    """
    Resend inbound email webhook receiver.

    Accepts only verified `email.received` events for processing; other
    event types are acknowledged and ignored.
    """
    try:
        inbound = normalize_resend_event(event)
    except UnsupportedEvent as exc:
        if exc.reason == "missing_email_id":
            logger.error(f"Webhook event without email_id: {exc}")
        else:
            logger.info(str(exc))
        return {"received": True, "queued": False, "reason": exc.reason}

    logger.info(
        f"Accepted email {inbound.message_id} with {len(inbound.attachments)} inline attachment stub(s)"
    )
    background_tasks.add_task(_process_in_background, inbound, settings)
    return {"received": True, "queued": True, "email_id": inbound.message_id}
