"""
Model client for event extraction.

The extractor speaks in ModelRequest / ModelResponse (app.models.extraction).
AnthropicModelClient translates those to and from the Anthropic Messages API:

  - system turns          -> the ``system`` parameter
  - data-URL image parts  -> base64 image blocks
  - response_format json  -> an extra system instruction (the Messages API
                             has no JSON mode)
  - stop_reason "refusal" -> ModelChoice.refusal instead of content

The client object is constructed explicitly (build_model_client) and handed
to the extractor; nothing here keeps module-level client state.
"""

import logging
import os
import re
from typing import Any, Optional, Protocol

import anthropic

from app.models.extraction import (
    ChatMessage,
    ImagePart,
    ModelChoice,
    ModelRequest,
    ModelResponse,
    ModelUsage,
    TextPart,
)

logger = logging.getLogger(__name__)

JSON_OBJECT_INSTRUCTION = (
    "Respond with ONLY a single valid JSON object. "
    "Do not wrap it in markdown code fences and do not add any commentary."
)

_DATA_URL_RE = re.compile(r"^data:(?P<media_type>[^;,]+);base64,(?P<data>.*)$", re.DOTALL)


class ModelClient(Protocol):
    async def complete(self, request: ModelRequest) -> ModelResponse:
        ...


def _image_block(part: ImagePart) -> dict:
    url = part.image_url.url
    match = _DATA_URL_RE.match(url)
    if match:
        return {
            "type": "image",
            "source": {
                "type": "base64",
                "media_type": match.group("media_type"),
                "data": match.group("data"),
            },
        }
    return {"type": "image", "source": {"type": "url", "url": url}}


def _content_blocks(message: ChatMessage) -> Any:
    if isinstance(message.content, str):
        return message.content

    blocks: list[dict] = []
    for part in message.content:
        if isinstance(part, TextPart):
            blocks.append({"type": "text", "text": part.text})
        else:
            blocks.append(_image_block(part))
    return blocks


def _system_text(message: ChatMessage) -> str:
    if isinstance(message.content, str):
        return message.content
    return "\n".join(p.text for p in message.content if isinstance(p, TextPart))


def to_anthropic_kwargs(request: ModelRequest) -> dict:
    """Build keyword arguments for ``client.messages.create``."""
    system_parts = [_system_text(m) for m in request.messages if m.role == "system"]
    if request.response_format == "json_object":
        system_parts.append(JSON_OBJECT_INSTRUCTION)

    kwargs: dict[str, Any] = {
        "model": request.model,
        "max_tokens": request.max_tokens,
        "messages": [
            {"role": m.role, "content": _content_blocks(m)}
            for m in request.messages
            if m.role != "system"
        ],
    }
    if system_parts:
        kwargs["system"] = "\n\n".join(p for p in system_parts if p)
    if request.temperature is not None:
        kwargs["temperature"] = request.temperature
    return kwargs


def from_anthropic_response(response: Any) -> ModelResponse:
    """Map an Anthropic ``Message`` onto ModelResponse (a single choice)."""
    text = "".join(
        getattr(block, "text", "") or ""
        for block in (response.content or [])
        if getattr(block, "type", "text") == "text"
    )
    stop_reason = getattr(response, "stop_reason", None)

    if stop_reason == "refusal":
        choice = ModelChoice(
            role=response.role or "assistant",
            content=None,
            refusal=text or "The model declined to respond.",
            finish_reason=stop_reason,
        )
    else:
        choice = ModelChoice(
            role=response.role or "assistant",
            content=text or None,
            finish_reason=stop_reason,
        )

    usage = getattr(response, "usage", None)
    return ModelResponse(
        id=response.id,
        model=response.model,
        choices=[choice],
        usage=ModelUsage(
            input_tokens=getattr(usage, "input_tokens", 0) or 0,
            output_tokens=getattr(usage, "output_tokens", 0) or 0,
        ),
    )


class AnthropicModelClient:
    """ModelClient backed by an ``anthropic.AsyncAnthropic`` instance."""

    def __init__(self, client: anthropic.AsyncAnthropic):
        self._client = client

    async def complete(self, request: ModelRequest) -> ModelResponse:
        response = await self._client.messages.create(**to_anthropic_kwargs(request))
        return from_anthropic_response(response)


def build_model_client(api_key: Optional[str] = None) -> AnthropicModelClient:
    """Create the process-wide model client. Reads ANTHROPIC_API_KEY by default."""
    if api_key is None:
        api_key = os.getenv("ANTHROPIC_API_KEY")
    if not api_key:
        logger.warning("ANTHROPIC_API_KEY is not set; extraction calls will fail")
    return AnthropicModelClient(anthropic.AsyncAnthropic(api_key=api_key))
