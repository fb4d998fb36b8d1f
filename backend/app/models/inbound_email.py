"""
Provider-agnostic inbound email model plus the provider webhook payloads.

The webhook payload models validate the raw JSON once at the boundary.
The adapter layer (app.services.inbound_email_adapter) maps them onto
InboundEmail, which is the only shape the processing pipeline sees.
"""

from typing import Optional, Union
from pydantic import BaseModel, ConfigDict, Field


# ---------------------------------------------------------------------------
# Normalized email
# ---------------------------------------------------------------------------

class InboundAttachment(BaseModel):
    """A single file attachment, content kept base64-encoded as received."""
    model_config = ConfigDict(frozen=True)

    filename: str
    content_type: str
    content: str            # base64; images are forwarded to the model unchanged
    content_length: int = 0


class InboundEmail(BaseModel):
    """
    Normalized inbound email, provider-agnostic.

    Immutable after receipt. sender_email may be empty when the provider
    payload carried no usable From address; the processor skips such emails.
    """
    model_config = ConfigDict(frozen=True)

    sender_email: str
    sender_name: Optional[str] = None
    recipient_email: str = ""
    subject: Optional[str] = None
    text_body: Optional[str] = None
    html_body: Optional[str] = None
    attachments: list[InboundAttachment] = []
    received_at: str
    message_id: Optional[str] = None


# ---------------------------------------------------------------------------
# Postmark webhook payload
# ---------------------------------------------------------------------------

class PostmarkEmailAddress(BaseModel):
    model_config = ConfigDict(extra="ignore")

    Email: str = ""
    Name: str = ""
    MailboxHash: Optional[str] = None


class PostmarkAttachment(BaseModel):
    """A single file attachment in a Postmark inbound webhook payload."""
    model_config = ConfigDict(extra="ignore")

    Name: str = "attachment"
    Content: str = ""          # base64-encoded file content
    ContentType: str = "application/octet-stream"
    ContentLength: int = 0


class PostmarkWebhookPayload(BaseModel):
    """
    Subset of Postmark's inbound webhook JSON that we care about.

    Postmark sends many more fields (headers, Cc/Bcc, stripped reply...);
    unknown fields are ignored.
    """
    model_config = ConfigDict(extra="ignore")

    From: Optional[str] = None
    FromName: Optional[str] = None
    FromFull: Optional[PostmarkEmailAddress] = None
    To: str = ""
    Subject: Optional[str] = None
    TextBody: Optional[str] = None
    HtmlBody: Optional[str] = None
    Date: Optional[str] = None
    MessageID: Optional[str] = None
    Attachments: list[PostmarkAttachment] = []


# ---------------------------------------------------------------------------
# Resend webhook payload
# ---------------------------------------------------------------------------

class ResendAttachment(BaseModel):
    model_config = ConfigDict(extra="ignore")

    filename: str = "attachment"
    content: str = ""
    content_type: str = "application/octet-stream"
    size: int = 0


class ResendWebhookPayload(BaseModel):
    """Resend inbound email JSON (snake_case keys, `from` is a Python keyword)."""
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    from_: str = Field("", alias="from")
    to: Union[str, list[str]] = ""
    subject: Optional[str] = None
    text: Optional[str] = None
    html: Optional[str] = None
    created_at: Optional[str] = None
    message_id: Optional[str] = None
    attachments: list[ResendAttachment] = []
