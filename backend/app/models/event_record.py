"""
Pydantic models for extracted events and their status records.

EventRecord is persisted as JSON in the key-value store under
``event:<id>``. Field aliases are camelCase because the stored JSON is read
by the listing endpoints and other downstream consumers as-is.
"""

from enum import Enum
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator


EVENT_KEY_PREFIX = "event:"


def event_key(event_id: str) -> str:
    """Store key for a record id, e.g. ``event:evt_1234``."""
    return f"{EVENT_KEY_PREFIX}{event_id}"


class EventStatus(str, Enum):
    PENDING = "pending"
    PROCESSED = "processed"
    PROCESSED_NO_EVENTS = "processed_no_events"
    ERROR_ICS_GENERATION = "error_ics_generation"
    ERROR = "error"


class InlineImage(BaseModel):
    """An image attachment forwarded to the model as-is."""
    model_config = ConfigDict(frozen=True)

    content_type: str
    data: str  # base64, never re-encoded


class PreparedContent(BaseModel):
    """Email text (plus PDF text) and inline images, ready for the model."""
    model_config = ConfigDict(frozen=True)

    text: str = ""
    images: list[InlineImage] = []


class ExtractedEvent(BaseModel):
    """
    One calendar event as returned by the extraction model.

    start_date / end_date are kept as the raw strings the model produced.
    They are only parsed by the calendar encoder, which skips events whose
    dates do not parse, so an unparseable date is still a valid extraction.
    """
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    title: str
    start_date: str = Field("", alias="startDate")
    end_date: str = Field("", alias="endDate")
    location: Optional[str] = None
    description: Optional[str] = None
    timezone: Optional[str] = None

    @field_validator("title", mode="before")
    @classmethod
    def scalar_title_as_text(cls, v):
        if isinstance(v, (int, float)) and not isinstance(v, bool):
            return str(v)
        return v

    @field_validator("title")
    @classmethod
    def title_must_not_be_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("title must not be empty")
        return v

    @field_validator("start_date", "end_date", mode="before")
    @classmethod
    def date_as_text(cls, v):
        # Non-string dates are kept as text; the calendar encoder rejects them
        if v is None:
            return ""
        return v if isinstance(v, str) else str(v)

    @field_validator("location", "description", "timezone", mode="before")
    @classmethod
    def optional_text_or_none(cls, v):
        if v is None or isinstance(v, str):
            return v
        if isinstance(v, (int, float)) and not isinstance(v, bool):
            return str(v)
        return None


class OriginalEmail(BaseModel):
    """User-facing fields copied from the inbound email."""
    model_config = ConfigDict(populate_by_name=True)

    from_: str = Field(alias="from")
    subject: Optional[str] = None
    text_body: Optional[str] = Field(None, alias="textBody")
    html_body: Optional[str] = Field(None, alias="htmlBody")
    received_at: str = Field(alias="receivedAt")
    message_id: Optional[str] = Field(None, alias="messageId")


class EventRecord(BaseModel):
    """Persisted progress/result object for one inbound email."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str
    user_email: str = Field(alias="userEmail")
    original_email: Optional[OriginalEmail] = Field(None, alias="originalEmail")
    extracted_events: list[ExtractedEvent] = Field(default_factory=list, alias="extractedEvents")
    ics_file: Optional[str] = Field(None, alias="icsFile")
    status: EventStatus = EventStatus.PENDING
    created_at: str = Field(alias="createdAt")
    processed_at: Optional[str] = Field(None, alias="processedAt")
    error: Optional[str] = None

    def to_store(self) -> dict:
        """JSON-compatible dict with camelCase keys, as written to the store."""
        return self.model_dump(mode="json", by_alias=True)
