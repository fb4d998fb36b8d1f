"""
Inbound email processing pipeline.

Runs prepare -> extract -> encode -> notify for one email and keeps an
EventRecord in the store up to date along the way.

Record lifecycle (one terminal transition per email):

    pending -> processed             events extracted, ICS built, reply attempted
            -> processed_no_events   extraction ran, zero events
            -> error_ics_generation  events extracted, none could be encoded
            -> error                 any stage raised

Store writes:
  - the initial pending record is written with set(); if that fails the
    email is dropped (nothing else can be tracked without it)
  - every later update goes through patch(), which re-reads the record right
    before merging; if the record has gone missing, it is rebuilt from the
    in-memory initial record plus the update
  - a failed reply email is logged but does not change a processed record

process_inbound_email() never raises: the webhook has already answered.
"""

import html
import logging
from datetime import datetime, timezone
from typing import Optional
from uuid import uuid4

from app.models.event_record import (
    EventRecord,
    EventStatus,
    ExtractedEvent,
    OriginalEmail,
    event_key,
)
from app.models.inbound_email import InboundEmail
from app.services.calendar_encoder import (
    format_local_time,
    generate_ics,
    get_zone,
    parse_event_datetime,
)
from app.services.content_preparer import prepare_content
from app.services.event_store import EventStore
from app.services.extractor import EventExtractor
from app.services.notifier import Notifier

logger = logging.getLogger(__name__)

ICS_EMPTY_ERROR = "ICS generation failed or produced no content"


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def generate_event_id() -> str:
    return f"evt_{uuid4()}"


def _format_when(value: str, tz_name: Optional[str]) -> str:
    """Render an event time in the event's zone (UTC when unknown), or the raw value."""
    moment = parse_event_datetime(value)
    if moment is None:
        return html.escape(value or "unknown time")
    zone = get_zone(tz_name)
    if zone is None:
        return moment.strftime("%A, %B %d, %Y at %I:%M %p UTC")
    return format_local_time(moment, zone)


def render_summary_html(subject: Optional[str], events: list[ExtractedEvent]) -> str:
    """HTML body of the reply email: one list item per extracted event."""
    subject_text = html.escape(subject or "your email")
    items = "".join(
        f"<li><b>{html.escape(event.title)}</b>: "
        f"{_format_when(event.start_date, event.timezone)} - "
        f"{_format_when(event.end_date, event.timezone)}</li>"
        for event in events
    )
    return (
        "<p>Hello,</p>"
        f"<p>We've processed your email \"{subject_text}\" and found the following event(s):</p>"
        f"<ul>{items}</ul>"
        "<p>Please find the .ics calendar file attached.</p>"
        "<p>Thank you!</p>"
    )


def reply_subject(subject: Optional[str]) -> str:
    return f"Calendar Events from \"{subject or 'your email'}\""


class EmailProcessor:
    """Pipeline coordinator. One instance serves every email in the process."""

    def __init__(self, store: EventStore, extractor: EventExtractor, notifier: Notifier):
        self.store = store
        self.extractor = extractor
        self.notifier = notifier

    def _build_initial_record(self, event_id: str, email: InboundEmail) -> EventRecord:
        return EventRecord(
            id=event_id,
            user_email=email.sender_email,
            original_email=OriginalEmail(
                from_=email.sender_email,
                subject=email.subject,
                text_body=email.text_body,
                html_body=email.html_body,
                received_at=email.received_at,
                message_id=email.message_id,
            ),
            extracted_events=[],
            ics_file=None,
            status=EventStatus.PENDING,
            created_at=_now_iso(),
            error=None,
        )

    def _merge_update(self, initial: EventRecord, update: dict) -> EventRecord:
        """
        Re-read and merge update into the stored record.

        update uses the stored (camelCase) keys. If the record is missing,
        it is rebuilt from the initial record instead of failing.
        """
        key = event_key(initial.id)
        merged = self.store.patch(key, update)
        if merged is None:
            logger.error(f"Event record {initial.id} missing at update time; rebuilding it")
            merged = {**initial.to_store(), **update}
            self.store.set(key, merged)
        return EventRecord.model_validate(merged)

    async def process_inbound_email(self, email: InboundEmail) -> Optional[EventRecord]:
        """
        Process one inbound email end to end.

        Returns the final record, or None when the email was skipped (no
        sender) or the initial record could not be stored.
        """
        if not email.sender_email:
            logger.error("No sender address in inbound email; skipping processing")
            return None

        logger.info(f"Processing inbound email from: {email.sender_email}")
        event_id = generate_event_id()
        initial = self._build_initial_record(event_id, email)

        try:
            self.store.set(event_key(event_id), initial.to_store())
            logger.info(f"Initial event record {event_id} stored.")
        except Exception as e:
            logger.error(f"Failed to store initial event record {event_id}: {e}")
            return None

        try:
            return await self._run_stages(initial, email)
        except Exception as e:
            logger.exception(f"Error during processing for event {event_id}: {e}")
            error_update = {
                "status": EventStatus.ERROR.value,
                "error": str(e) or e.__class__.__name__,
                "processedAt": _now_iso(),
            }
            try:
                return self._merge_update(initial, error_update)
            except Exception as db_error:
                logger.error(f"Failed to update event record {event_id} with error status: {db_error}")
                return EventRecord.model_validate({**initial.to_store(), **error_update})

    async def _run_stages(self, initial: EventRecord, email: InboundEmail) -> EventRecord:
        event_id = initial.id

        content = prepare_content(email)
        events, token_usage = await self.extractor.extract_events(content, email.subject)
        logger.info(f"Extraction for {event_id} used {token_usage.get('total_tokens', 0)} tokens")

        if not events:
            logger.info(f"No events extracted for {event_id}.")
            return self._merge_update(initial, {
                "status": EventStatus.PROCESSED_NO_EVENTS.value,
                "extractedEvents": [],
                "processedAt": _now_iso(),
            })

        logger.info(f"Extracted {len(events)} event(s) for {event_id}.")
        events_json = [e.model_dump(mode="json", by_alias=True) for e in events]

        ics_content = generate_ics(events)
        if not ics_content:
            logger.warning(f"ICS generation returned nothing for {event_id}.")
            return self._merge_update(initial, {
                "status": EventStatus.ERROR_ICS_GENERATION.value,
                "extractedEvents": events_json,
                "error": ICS_EMPTY_ERROR,
                "processedAt": _now_iso(),
            })

        record = self._merge_update(initial, {
            "status": EventStatus.PROCESSED.value,
            "extractedEvents": events_json,
            "icsFile": ics_content,
            "processedAt": _now_iso(),
        })
        logger.info(f"Event record {event_id} updated with processed data.")

        try:
            await self.notifier.send_email(
                email.sender_email,
                reply_subject(email.subject),
                render_summary_html(email.subject, events),
                ics_content,
            )
            logger.info(f"Response email sent for {event_id}.")
        except Exception as e:
            # The calendar exists; delivery failures stay out of the record status.
            logger.exception(f"Failed to send response email for {event_id}: {e}")

        return record
