"""
Event record endpoints.

Endpoints:
  GET /api/events?email=...      - records for a sender, newest first
  GET /api/events/{event_id}     - one record (safe to poll)
  GET /api/events/{event_id}/ics - the generated calendar as event.ics
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Response
from pydantic import ValidationError

from app.dependencies import get_event_store
from app.models.event_record import EVENT_KEY_PREFIX, EventRecord, event_key
from app.services.event_store import EventStore

logger = logging.getLogger(__name__)

router = APIRouter()


def _get_record(store: EventStore, event_id: str) -> EventRecord:
    value = store.get(event_key(event_id))
    if value is None:
        raise HTTPException(status_code=404, detail="Event record not found")
    return EventRecord.model_validate(value)


@router.get("")
async def list_events(
    email: Optional[str] = None,
    store: EventStore = Depends(get_event_store),
) -> list[dict]:
    if not email:
        raise HTTPException(status_code=400, detail="Email query parameter is required")

    wanted = email.strip().lower()
    records: list[EventRecord] = []
    for value in store.scan(EVENT_KEY_PREFIX):
        try:
            record = EventRecord.model_validate(value)
        except ValidationError as e:
            logger.warning(f"Skipping malformed event record {value.get('id')!r}: {e.error_count()} error(s)")
            continue
        if record.user_email.lower() == wanted:
            records.append(record)

    records.sort(key=lambda r: r.created_at, reverse=True)
    return [r.to_store() for r in records]


@router.get("/{event_id}")
async def get_event(
    event_id: str,
    store: EventStore = Depends(get_event_store),
) -> dict:
    return _get_record(store, event_id).to_store()


@router.get("/{event_id}/ics")
async def download_ics(
    event_id: str,
    store: EventStore = Depends(get_event_store),
) -> Response:
    record = _get_record(store, event_id)
    if not record.ics_file:
        raise HTTPException(status_code=404, detail="No calendar file for this event record")
    return Response(
        content=record.ics_file,
        media_type="text/calendar",
        headers={"Content-Disposition": 'attachment; filename="event.ics"'},
    )
