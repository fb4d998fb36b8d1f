"""
Development-only diagnostics.

Both endpoints return 404 unless APP_ENV=development.

Endpoints:
  GET  /api/debug/env      - which settings are configured (secrets masked)
  POST /api/debug/extract  - run the extractor on a sample itinerary email
"""

import logging
import os
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException

from app.dependencies import get_event_extractor
from app.models.event_record import PreparedContent
from app.services.extractor import EventExtractor

logger = logging.getLogger(__name__)

router = APIRouter()

SAMPLE_SUBJECT = "Paris Trip Confirmation"
SAMPLE_BODY = """\
Hello! Here are your travel details:

Flight: UA123 departing LAX on March 15th at 2:30 PM, arriving CDG March 16th at 11:45 AM
Hotel: Le Marais Hotel check-in March 16th at 3:00 PM
Tour: Eiffel Tower guided tour March 17th at 10:00 AM
Dinner: Chez Pierre reservation March 17th at 7:30 PM
Return: Flight UA456 departing CDG March 19th at 6:15 PM

Have a great trip!"""


def _require_development() -> None:
    if os.getenv("APP_ENV", "production").lower() != "development":
        raise HTTPException(status_code=404, detail="Not found")


def _mask(value: str | None) -> str:
    if not value:
        return "NOT SET"
    return f"SET ({value[:8]}...)"


@router.get("/env", dependencies=[Depends(_require_development)])
async def debug_env() -> dict:
    return {
        "anthropic_api_key": _mask(os.getenv("ANTHROPIC_API_KEY")),
        "anthropic_text_model": os.getenv("ANTHROPIC_TEXT_MODEL") or "NOT SET",
        "anthropic_vision_model": os.getenv("ANTHROPIC_VISION_MODEL") or "NOT SET",
        "postmark_server_token": _mask(os.getenv("POSTMARK_SERVER_TOKEN")),
        "supabase_url": os.getenv("SUPABASE_URL") or "NOT SET",
        "email_provider": os.getenv("EMAIL_PROVIDER") or "postmark",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@router.post("/extract", dependencies=[Depends(_require_development)])
async def debug_extract(
    extractor: EventExtractor = Depends(get_event_extractor),
) -> dict:
    logger.info("Running sample extraction")
    try:
        events, token_usage = await extractor.extract_events(
            PreparedContent(text=SAMPLE_BODY), SAMPLE_SUBJECT
        )
    except Exception as exc:
        logger.exception(f"Sample extraction failed: {exc}")
        raise HTTPException(
            status_code=500,
            detail=f"{exc.__class__.__name__}: {str(exc) or 'Unknown error occurred'}",
        )

    return {
        "success": True,
        "extracted_events": [e.model_dump(mode="json", by_alias=True) for e in events],
        "events_count": len(events),
        "model_used": extractor.text_model,
        "token_usage": token_usage,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
