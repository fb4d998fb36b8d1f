"""
Event extraction service.

Sends prepared email content to the extraction model and turns the reply
into ExtractedEvent objects.

Flow per email (exactly one model call, no retries):
  1. Pick the mode: multimodal when there are inline images, text otherwise.
  2. Resolve the model name for that mode, falling back to a known-good
     default when the configured name is empty or a placeholder.
  3. Build the prompt and call the model under a fixed timeout.
  4. Parse the reply. Unparseable JSON is an error; JSON of an unexpected
     shape just yields no events.
"""

import asyncio
import json
import logging
import os
from datetime import datetime, timezone
from typing import Optional, Tuple

from pydantic import ValidationError

from app.models.event_record import ExtractedEvent, PreparedContent
from app.models.extraction import (
    ChatMessage,
    ImagePart,
    ImageUrl,
    ModelRequest,
    ModelResponse,
    TextPart,
    classify_payload,
    payload_items,
)
from app.services.model_client import ModelClient

logger = logging.getLogger(__name__)

# Model configuration
DEFAULT_TEXT_MODEL = "claude-haiku-4-5-20251001"
DEFAULT_VISION_MODEL = "claude-sonnet-4-5-20250929"
MAX_TOKENS = 4096
TEMPERATURE = 0.1
MODEL_TIMEOUT_SECONDS = 90.0
MAX_BODY_CHARS = 4000
TRUNCATION_MARKER = "\n\n[Content truncated]"

# Values people leave in .env files instead of a real model name
_PLACEHOLDER_MODEL_NAMES = frozenset({"not set", "changeme", "your-model-here"})

# Model names containing one of these reject the temperature parameter
DEFAULT_NO_TEMPERATURE_MARKERS = ("-thinking",)

SYSTEM_PROMPT = """\
You extract calendar events from emails. You are precise about dates and times \
and never invent events that are not described in the content."""

TEXT_PROMPT = """\
Extract calendar events from this email content.

Return a JSON object with an "events" array. Each element of "events" is an object with these fields:
- title (string)
- startDate (string, ISO 8601 format, e.g. YYYY-MM-DDTHH:mm:ssZ)
- endDate (string, ISO 8601 format, e.g. YYYY-MM-DDTHH:mm:ssZ)
- location (string, optional)
- description (string, optional)
- timezone (string, IANA timezone name like 'America/New_York', optional, try to infer if possible)

If you cannot determine a field, omit it or set it to null. Ensure dates are fully qualified.
If the email describes no events, return {{"events": []}}.
Current time context for relative dates (e.g., "tomorrow"): {now}
Email Subject: {subject}
Email Body / PDF Text:
{body}
"""

VISION_PROMPT = """\
Extract calendar events from the provided email content and/or images.
Focus on identifying event details like title, start date, end date, location, and description.

Return a JSON object with an "events" array. Each element of "events" is an object with these fields:
title, startDate and endDate (ISO 8601, e.g. YYYY-MM-DDTHH:mm:ssZ), and optionally
location, description and timezone (IANA timezone name).
Current time context for relative dates (e.g., "tomorrow"): {now}
Email Subject: {subject}
"""


class ExtractionTimeoutError(Exception):
    """The model call did not finish within the allowed time."""


def resolve_model(configured: Optional[str], fallback: str) -> str:
    """Return the configured model name unless it is empty or a placeholder."""
    name = (configured or "").strip()
    if not name or name.lower() in _PLACEHOLDER_MODEL_NAMES:
        return fallback
    return name


def supports_temperature(model: str, no_temperature_markers=DEFAULT_NO_TEMPERATURE_MARKERS) -> bool:
    lowered = model.lower()
    return not any(marker and marker.lower() in lowered for marker in no_temperature_markers)


def truncate_body(text: str, limit: int = MAX_BODY_CHARS) -> str:
    if len(text) <= limit:
        return text
    return text[:limit] + TRUNCATION_MARKER


def _strip_code_fences(raw_text: str) -> str:
    json_text = raw_text.strip()
    if json_text.startswith("```"):
        lines = json_text.split("\n")
        lines = [l for l in lines if not l.strip().startswith("```")]
        json_text = "\n".join(lines)
    return json_text


def parse_events(raw_text: str) -> list[ExtractedEvent]:
    """
    Parse the model's reply text into events.

    Raises json.JSONDecodeError when the text is not JSON. Any JSON shape other
    than an event list, an {"events": [...]} object or a single event object
    yields an empty list. List items that are not valid events are dropped.
    """
    parsed = json.loads(_strip_code_fences(raw_text))
    payload = classify_payload(parsed)

    if payload.kind == "unrecognized":
        logger.warning(f"Model reply had an unexpected JSON shape; treating as no events: {parsed!r}")
        return []

    events: list[ExtractedEvent] = []
    for item in payload_items(payload):
        if not isinstance(item, dict):
            logger.warning(f"Dropping non-object event entry: {item!r}")
            continue
        try:
            events.append(ExtractedEvent.model_validate(item))
        except ValidationError as e:
            logger.warning(f"Dropping invalid event entry {item!r}: {e.error_count()} validation error(s)")
    return events


def _reply_text(response: ModelResponse) -> str:
    if not response.choices:
        return ""
    choice = response.choices[0]
    if choice.content:
        return choice.content
    if choice.refusal:
        logger.warning(f"Model returned a refusal instead of content: {choice.refusal}")
        return choice.refusal
    return ""


class EventExtractor:
    """
    Extraction orchestrator.

    Holds the model client and the per-mode model names. Construct once per
    process (see app.dependencies) and reuse across emails.
    """

    def __init__(
        self,
        client: ModelClient,
        text_model: Optional[str] = None,
        vision_model: Optional[str] = None,
        timeout_seconds: float = MODEL_TIMEOUT_SECONDS,
        no_temperature_markers: tuple[str, ...] = DEFAULT_NO_TEMPERATURE_MARKERS,
    ):
        self.client = client
        self.text_model = resolve_model(text_model, DEFAULT_TEXT_MODEL)
        self.vision_model = resolve_model(vision_model, DEFAULT_VISION_MODEL)
        self.timeout_seconds = timeout_seconds
        self.no_temperature_markers = no_temperature_markers

    @classmethod
    def from_env(cls, client: ModelClient) -> "EventExtractor":
        markers_env = os.getenv("ANTHROPIC_NO_TEMPERATURE_MODELS")
        markers = (
            tuple(m.strip() for m in markers_env.split(",") if m.strip())
            if markers_env is not None
            else DEFAULT_NO_TEMPERATURE_MARKERS
        )
        return cls(
            client,
            text_model=os.getenv("ANTHROPIC_TEXT_MODEL"),
            vision_model=os.getenv("ANTHROPIC_VISION_MODEL"),
            timeout_seconds=float(os.getenv("MODEL_TIMEOUT_SECONDS", MODEL_TIMEOUT_SECONDS)),
            no_temperature_markers=markers,
        )

    def build_request(
        self,
        content: PreparedContent,
        subject: Optional[str],
        now: Optional[datetime] = None,
    ) -> ModelRequest:
        now_iso = (now or datetime.now(timezone.utc)).isoformat()
        subject_line = subject or "N/A"

        if content.images:
            model = self.vision_model
            parts: list = [
                TextPart(text=VISION_PROMPT.format(now=now_iso, subject=subject_line))
            ]
            if content.text.strip():
                parts.append(TextPart(text=f"Email Body / PDF Text:\n{content.text}"))
            for image in content.images:
                parts.append(
                    ImagePart(image_url=ImageUrl(url=f"data:{image.content_type};base64,{image.data}"))
                )
            user_message = ChatMessage(role="user", content=parts)
            logger.info(f"Using vision model {model} with {len(content.images)} image(s)")
        else:
            model = self.text_model
            prompt = TEXT_PROMPT.format(
                now=now_iso, subject=subject_line, body=truncate_body(content.text)
            )
            user_message = ChatMessage(role="user", content=prompt)
            logger.info(f"Using text model {model}")

        return ModelRequest(
            model=model,
            messages=[ChatMessage(role="system", content=SYSTEM_PROMPT), user_message],
            response_format="json_object",
            temperature=TEMPERATURE if supports_temperature(model, self.no_temperature_markers) else None,
            max_tokens=MAX_TOKENS,
        )

    async def extract_events(
        self,
        content: PreparedContent,
        subject: Optional[str],
        now: Optional[datetime] = None,
    ) -> Tuple[list[ExtractedEvent], dict]:
        """
        Run one extraction call.

        Returns:
            (events, token_usage)

        Raises:
            ExtractionTimeoutError: the call exceeded timeout_seconds.
            json.JSONDecodeError: the reply was not JSON.
            anthropic.APIError (or any client error): the call itself failed.
        """
        request = self.build_request(content, subject, now)

        try:
            response = await asyncio.wait_for(
                self.client.complete(request), timeout=self.timeout_seconds
            )
        except asyncio.TimeoutError:
            raise ExtractionTimeoutError(
                f"Model call timed out after {self.timeout_seconds:g} seconds"
            ) from None

        token_usage = {
            "input_tokens": response.usage.input_tokens,
            "output_tokens": response.usage.output_tokens,
            "total_tokens": response.usage.total_tokens,
        }

        raw_text = _reply_text(response)
        if not raw_text:
            logger.warning("Model reply was empty; no events extracted")
            return [], token_usage

        logger.debug(f"Raw model reply: {raw_text}")
        return parse_events(raw_text), token_usage
