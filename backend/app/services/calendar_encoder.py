"""
Calendar encoder: ICS generation for extracted events.

Encodes ExtractedEvent lists into a single RFC 5545 VCALENDAR using the
icalendar library. DTSTART/DTEND are always written in UTC; an event's
timezone only adds a human-readable local start time to its description.
"""

import logging
from datetime import datetime, timezone
from typing import Optional
from uuid import uuid4
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from icalendar import Calendar, Event

from app.models.event_record import ExtractedEvent

logger = logging.getLogger(__name__)

PRODID = "-//mail2cal//Email to Calendar//EN"
UID_DOMAIN = "mail2cal"


class CalendarGenerationError(Exception):
    """The calendar library could not encode the events."""


def parse_event_datetime(value: Optional[str]) -> Optional[datetime]:
    """
    Parse an ISO-8601 date or date-time into an aware UTC datetime.

    A trailing ``Z`` is accepted; values without an offset are taken as UTC.
    Returns None when the value cannot be parsed.
    """
    if not value or not isinstance(value, str):
        return None
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def get_zone(name: Optional[str]) -> Optional[ZoneInfo]:
    """Return the IANA zone for name, or None when it is empty or unknown."""
    if not name:
        return None
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning(f"Unknown timezone {name!r}; ignoring it")
        return None


def format_local_time(moment: datetime, zone: ZoneInfo) -> str:
    """e.g. ``Saturday, March 15, 2025 at 02:30 PM PDT``"""
    return moment.astimezone(zone).strftime("%A, %B %d, %Y at %I:%M %p %Z")


def _description_with_local_time(event: ExtractedEvent, start: datetime) -> Optional[str]:
    zone = get_zone(event.timezone)
    if zone is None:
        return event.description

    local_line = f"Local start time: {format_local_time(start, zone)} ({event.timezone})"
    if event.description:
        return f"{event.description}\n\n{local_line}"
    return local_line


def generate_ics(events: list[ExtractedEvent]) -> Optional[str]:
    """
    Encode events into one ICS document.

    Events whose start or end date does not parse are skipped with a warning.

    Returns:
        The calendar as text, or None when events is empty or every event
        was skipped.

    Raises:
        CalendarGenerationError: if the icalendar library fails to encode.
    """
    if not events:
        logger.info("No events provided to generate_ics, returning None.")
        return None

    dtstamp = datetime.now(timezone.utc)
    vevents: list[Event] = []

    try:
        for event in events:
            start = parse_event_datetime(event.start_date)
            end = parse_event_datetime(event.end_date)
            if start is None or end is None:
                logger.warning(f"Invalid date for event {event.title!r}. Skipping this event.")
                continue

            vevent = Event()
            vevent.add("uid", f"{uuid4()}@{UID_DOMAIN}")
            vevent.add("dtstamp", dtstamp)
            vevent.add("dtstart", start)
            vevent.add("dtend", end)
            vevent.add("summary", event.title)
            if event.location:
                vevent.add("location", event.location)
            description = _description_with_local_time(event, start)
            if description:
                vevent.add("description", description)
            vevent.add("status", "CONFIRMED")
            vevents.append(vevent)

        if not vevents:
            logger.info("No valid events to generate ICS, returning None.")
            return None

        cal = Calendar()
        cal.add("prodid", PRODID)
        cal.add("version", "2.0")
        cal.add("calscale", "GREGORIAN")
        cal.add("method", "PUBLISH")
        for vevent in vevents:
            cal.add_component(vevent)

        return cal.to_ical().decode("utf-8")
    except Exception as e:
        logger.error(f"ICS generation failed: {e}")
        raise CalendarGenerationError(f"ICS generation failed: {e}") from e
