"""
Shared test fixtures.

Everything external (Supabase, Anthropic, Postmark) is replaced by the
in-memory fakes below. No real network calls are made.
"""

import base64
import os
from typing import Optional

import pytest

# Ensure env vars are set before importing anything that triggers app imports
os.environ.setdefault("SUPABASE_URL", "https://test.supabase.co")
os.environ.setdefault("SUPABASE_SERVICE_KEY", "test-service-key")
os.environ.setdefault("INBOUND_WEBHOOK_SECRET", "test-webhook-secret")

from app.models.extraction import ModelChoice, ModelRequest, ModelResponse, ModelUsage
from app.models.inbound_email import InboundAttachment, InboundEmail


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------

class FakeEventStore:
    """Dict-backed EventStore with optional failure injection."""

    def __init__(self):
        self.data: dict[str, dict] = {}
        self.fail_set = False
        self.calls: list[tuple] = []

    def set(self, key: str, value: dict) -> None:
        self.calls.append(("set", key))
        if self.fail_set:
            raise Exception("store unavailable")
        self.data[key] = dict(value)

    def get(self, key: str) -> Optional[dict]:
        self.calls.append(("get", key))
        value = self.data.get(key)
        return dict(value) if value is not None else None

    def patch(self, key: str, partial: dict) -> Optional[dict]:
        self.calls.append(("patch", key))
        current = self.get(key)
        if current is None:
            return None
        merged = {**current, **partial}
        self.set(key, merged)
        return merged

    def scan(self, prefix: str) -> list[dict]:
        return [dict(v) for k, v in self.data.items() if k.startswith(prefix)]


class FakeModelClient:
    """ModelClient returning canned text; records every request."""

    def __init__(self, content: Optional[str] = '{"events": []}', refusal: Optional[str] = None,
                 delay: float = 0.0, error: Optional[Exception] = None):
        self.content = content
        self.refusal = refusal
        self.delay = delay
        self.error = error
        self.requests: list[ModelRequest] = []

    async def complete(self, request: ModelRequest) -> ModelResponse:
        import asyncio

        self.requests.append(request)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return ModelResponse(
            id="msg_test",
            model=request.model,
            choices=[ModelChoice(content=self.content, refusal=self.refusal, finish_reason="end_turn")],
            usage=ModelUsage(input_tokens=100, output_tokens=50),
        )


class FakeNotifier:
    def __init__(self, error: Optional[Exception] = None):
        self.error = error
        self.sent: list[dict] = []

    async def send_email(self, to, subject, html_body, ics_content=None) -> str:
        self.sent.append(
            {"to": to, "subject": subject, "html_body": html_body, "ics_content": ics_content}
        )
        if self.error is not None:
            raise self.error
        return "postmark-message-id"


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------

def make_email(
    sender: str = "traveler@example.com",
    subject: Optional[str] = "Paris Trip",
    text_body: Optional[str] = "Flight: UA123 departing LAX on March 15th 2025 at 2:30 PM",
    attachments: Optional[list[InboundAttachment]] = None,
) -> InboundEmail:
    return InboundEmail(
        sender_email=sender,
        subject=subject,
        text_body=text_body,
        html_body=None,
        attachments=attachments or [],
        received_at="2025-03-01T09:00:00+00:00",
        message_id="msg-123",
    )


def make_attachment(filename: str, content_type: str, raw: bytes = b"data") -> InboundAttachment:
    return InboundAttachment(
        filename=filename,
        content_type=content_type,
        content=base64.b64encode(raw).decode(),
        content_length=len(raw),
    )


ONE_EVENT_JSON = (
    '{"events": [{"title": "Flight UA123", "startDate": "2025-03-15T21:30:00Z",'
    ' "endDate": "2025-03-16T10:45:00Z", "location": "LAX", "timezone": "America/Los_Angeles"}]}'
)


@pytest.fixture
def store():
    return FakeEventStore()


@pytest.fixture
def notifier():
    return FakeNotifier()
