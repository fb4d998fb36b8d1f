"""
Pydantic models for the extraction model call.

ModelRequest / ModelResponse describe one chat-style model call independently
of the SDK that performs it (see app.services.model_client).

The *Payload classes form a closed set describing the JSON the model sent
back. classify_payload() is the only place that inspects raw JSON shapes.
"""

from typing import Annotated, Any, Literal, Optional, Union
from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Request
# ---------------------------------------------------------------------------

class TextPart(BaseModel):
    type: Literal["text"] = "text"
    text: str


class ImageUrl(BaseModel):
    url: str  # data:<mime>;base64,<payload> or a plain URL


class ImagePart(BaseModel):
    type: Literal["image_url"] = "image_url"
    image_url: ImageUrl


ContentPart = Annotated[Union[TextPart, ImagePart], Field(discriminator="type")]


class ChatMessage(BaseModel):
    role: Literal["system", "user", "assistant"]
    content: Union[str, list[ContentPart]]


class ModelRequest(BaseModel):
    model: str
    messages: list[ChatMessage]
    response_format: Literal["json_object", "text"] = "json_object"
    temperature: Optional[float] = None  # None = do not send the parameter
    max_tokens: int = 4096


# ---------------------------------------------------------------------------
# Response
# ---------------------------------------------------------------------------

class ModelChoice(BaseModel):
    role: str = "assistant"
    content: Optional[str] = None
    refusal: Optional[str] = None
    finish_reason: Optional[str] = None


class ModelUsage(BaseModel):
    input_tokens: int = 0
    output_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens


class ModelResponse(BaseModel):
    id: str
    model: str
    choices: list[ModelChoice] = []
    usage: ModelUsage = Field(default_factory=ModelUsage)


# ---------------------------------------------------------------------------
# Parsed payload shapes
# ---------------------------------------------------------------------------

class EventListPayload(BaseModel):
    """Bare JSON array: ``[{...}, {...}]``."""
    kind: Literal["list"] = "list"
    items: list[Any]


class EventEnvelopePayload(BaseModel):
    """Object with an ``events`` array: ``{"events": [...]}``."""
    kind: Literal["envelope"] = "envelope"
    items: list[Any]


class SingleEventPayload(BaseModel):
    """Object that is itself one event (has a non-empty title and startDate)."""
    kind: Literal["single"] = "single"
    item: dict[str, Any]


class UnrecognizedPayload(BaseModel):
    kind: Literal["unrecognized"] = "unrecognized"
    raw: Any = None


ModelPayload = Union[
    EventListPayload, EventEnvelopePayload, SingleEventPayload, UnrecognizedPayload
]


def classify_payload(parsed: Any) -> ModelPayload:
    """
    Map decoded JSON onto one of the accepted shapes.

    Priority: bare array, then object with an ``events`` array, then an
    object that looks like a single event. Anything else is unrecognized.
    """
    if isinstance(parsed, list):
        return EventListPayload(items=parsed)

    if isinstance(parsed, dict):
        events = parsed.get("events")
        if isinstance(events, list):
            return EventEnvelopePayload(items=events)

        title = parsed.get("title")
        start = parsed.get("startDate")
        if isinstance(title, str) and title.strip() and start not in (None, ""):
            return SingleEventPayload(item=parsed)

    return UnrecognizedPayload(raw=parsed)


def payload_items(payload: ModelPayload) -> list[Any]:
    """Candidate event objects carried by a classified payload."""
    if isinstance(payload, (EventListPayload, EventEnvelopePayload)):
        return payload.items
    if isinstance(payload, SingleEventPayload):
        return [payload.item]
    return []
