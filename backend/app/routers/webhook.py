"""
Inbound email webhook router.

The endpoint answers the provider immediately and processes the email in a
background task, so the provider never waits on the extraction model.

Environment variables
---------------------
EMAIL_PROVIDER            Which normaliser to use (default: "postmark").
                          Supported values: "postmark", "resend".
INBOUND_WEBHOOK_SECRET    Shared secret checked in X-Webhook-Secret header.
POSTMARK_WEBHOOK_SECRET   Legacy alias, checked when INBOUND_WEBHOOK_SECRET
                          is not set.

Endpoints:
  POST /api/webhook   - provider webhook (auth: X-Webhook-Secret)
"""

import logging
import os
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Header, HTTPException
from pydantic import ValidationError

from app.dependencies import get_email_processor
from app.services.email_processor import EmailProcessor
from app.services.inbound_email_adapter import normalize_webhook

logger = logging.getLogger(__name__)

router = APIRouter()


# ---------------------------------------------------------------------------
# Webhook authentication dependency
# ---------------------------------------------------------------------------

def _get_webhook_secret() -> str:
    """
    Return the configured webhook secret.

    Checks INBOUND_WEBHOOK_SECRET first, then falls back to the legacy
    POSTMARK_WEBHOOK_SECRET.
    """
    return (
        os.getenv("INBOUND_WEBHOOK_SECRET")
        or os.getenv("POSTMARK_WEBHOOK_SECRET")
        or ""
    )


def _verify_webhook_secret(
    x_webhook_secret: Optional[str] = Header(None),
    x_postmark_secret: Optional[str] = Header(None),
) -> None:
    """
    Verify that the inbound webhook request carries the correct shared secret.

    Accepts the secret in either X-Webhook-Secret or X-Postmark-Secret.
    Raises 401 if the secret is missing, unconfigured, or does not match.
    """
    expected = _get_webhook_secret()
    if not expected:
        logger.warning(
            "No webhook secret configured (INBOUND_WEBHOOK_SECRET / "
            "POSTMARK_WEBHOOK_SECRET) - all inbound webhook requests will be rejected"
        )
        raise HTTPException(status_code=401, detail="Webhook secret not configured")

    provided = x_webhook_secret or x_postmark_secret
    if not provided or provided != expected:
        raise HTTPException(status_code=401, detail="Invalid webhook secret")


# ---------------------------------------------------------------------------
# Endpoint
# ---------------------------------------------------------------------------

@router.post("/webhook")
async def receive_inbound_email(
    payload: dict,
    background_tasks: BackgroundTasks,
    _: None = Depends(_verify_webhook_secret),
    processor: EmailProcessor = Depends(get_email_processor),
) -> dict:
    """
    Accept an inbound email and queue it for processing.

    Returns 200 {"status": "accepted"} as soon as the payload is validated;
    the processing outcome is only visible through the event record.
    """
    logger.info("Webhook received")
    try:
        email = normalize_webhook(payload)
    except ValidationError as exc:
        logger.warning(f"Invalid inbound webhook payload: {exc.error_count()} error(s)")
        raise HTTPException(status_code=400, detail="Invalid webhook payload")
    except ValueError as exc:
        logger.error(f"Webhook normalization failed: {exc}")
        return {"status": "rejected", "reason": "unsupported_provider"}

    background_tasks.add_task(processor.process_inbound_email, email)
    return {"status": "accepted"}
