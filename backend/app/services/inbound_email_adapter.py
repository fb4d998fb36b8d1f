"""
Inbound email adapter service.

Normalizes provider-specific inbound webhook payloads into a single
provider-agnostic InboundEmail model.

Supported providers:
  - postmark  (default)
  - resend    (set EMAIL_PROVIDER=resend or pass provider="resend")

Adding a new provider:
  1. Write a normalize_<provider>(payload: dict) -> InboundEmail function.
  2. Register it in _NORMALIZERS.
  3. Set EMAIL_PROVIDER=<provider> in the environment.

Attachment content stays base64-encoded: image attachments are forwarded to
the extraction model verbatim, and PDFs are decoded by the content preparer
where a decode failure can be handled per attachment.

Payload validation errors (pydantic.ValidationError) propagate; the webhook
route turns them into a 400.
"""

import os
import re
from datetime import datetime, timezone
from typing import Callable, Optional

from app.models.inbound_email import (
    InboundAttachment,
    InboundEmail,
    PostmarkWebhookPayload,
    ResendWebhookPayload,
)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _bare_address(value: Optional[str]) -> str:
    """Return ``alice@example.com`` from ``Alice <alice@example.com>``."""
    if not value:
        return ""
    match = re.search(r"<([^>]+)>", value)
    return (match.group(1) if match else value).strip()


# ---------------------------------------------------------------------------
# Postmark normalizer
# ---------------------------------------------------------------------------

def normalize_postmark(payload: dict) -> InboundEmail:
    """
    Convert a Postmark inbound webhook payload to InboundEmail.

    Postmark uses PascalCase keys. The structured FromFull.Email is preferred
    over the plain From header.
    """
    data = PostmarkWebhookPayload.model_validate(payload)

    sender = ""
    sender_name = data.FromName
    if data.FromFull and data.FromFull.Email:
        sender = data.FromFull.Email
        sender_name = data.FromFull.Name or sender_name
    if not sender:
        sender = _bare_address(data.From)

    attachments = [
        InboundAttachment(
            filename=att.Name,
            content_type=att.ContentType,
            content=att.Content,
            content_length=att.ContentLength,
        )
        for att in data.Attachments
    ]

    return InboundEmail(
        sender_email=sender,
        sender_name=sender_name or None,
        recipient_email=data.To,
        subject=data.Subject,
        text_body=data.TextBody,
        html_body=data.HtmlBody,
        attachments=attachments,
        received_at=data.Date or _now_iso(),
        message_id=data.MessageID,
    )


# ---------------------------------------------------------------------------
# Resend normalizer
# ---------------------------------------------------------------------------

def normalize_resend(payload: dict) -> InboundEmail:
    """
    Convert a Resend inbound webhook payload to InboundEmail.

    Resend uses snake_case keys; ``to`` may be a string or a list.
    """
    data = ResendWebhookPayload.model_validate(payload)

    to = data.to if isinstance(data.to, str) else ", ".join(data.to)
    attachments = [
        InboundAttachment(
            filename=att.filename,
            content_type=att.content_type,
            content=att.content,
            content_length=att.size,
        )
        for att in data.attachments
    ]

    return InboundEmail(
        sender_email=_bare_address(data.from_),
        recipient_email=to,
        subject=data.subject,
        text_body=data.text,
        html_body=data.html,
        attachments=attachments,
        received_at=data.created_at or _now_iso(),
        message_id=data.message_id,
    )


# ---------------------------------------------------------------------------
# Registry and dispatcher
# ---------------------------------------------------------------------------

_NORMALIZERS: dict[str, Callable[[dict], InboundEmail]] = {
    "postmark": normalize_postmark,
    "resend": normalize_resend,
}


def normalize_webhook(payload: dict, provider: str | None = None) -> InboundEmail:
    """
    Route to the correct normalizer based on the provider argument or the
    EMAIL_PROVIDER environment variable.

    Priority:
      1. provider argument
      2. EMAIL_PROVIDER env var
      3. Default: "postmark"

    Raises ValueError for unknown provider names.
    """
    resolved = provider or os.getenv("EMAIL_PROVIDER", "postmark")
    resolved = resolved.lower().strip()

    normalizer = _NORMALIZERS.get(resolved)
    if normalizer is None:
        raise ValueError(
            f"Unknown email provider {resolved!r}. "
            f"Supported providers: {sorted(_NORMALIZERS)}"
        )

    return normalizer(payload)
