"""
Outbound email via the Postmark HTTP API.

Sends the reply email carrying the generated calendar as ``event.ics``.
"""

import base64
import logging
import os
from typing import Optional, Protocol

import httpx

logger = logging.getLogger(__name__)

POSTMARK_API_URL = "https://api.postmarkapp.com/email"
DEFAULT_SENDER = "events@mail2cal.app"
ICS_ATTACHMENT_NAME = "event.ics"
ICS_CONTENT_TYPE = "text/calendar"


class NotificationError(Exception):
    """The reply email could not be sent."""


class Notifier(Protocol):
    async def send_email(
        self,
        to: str,
        subject: str,
        html_body: str,
        ics_content: Optional[str] = None,
    ) -> str:
        ...


class PostmarkNotifier:
    """Notifier backed by Postmark's /email endpoint."""

    def __init__(
        self,
        server_token: str,
        sender: str = DEFAULT_SENDER,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._server_token = server_token
        self._sender = sender
        self._timeout = timeout
        self._transport = transport

    @classmethod
    def from_env(cls) -> "PostmarkNotifier":
        token = os.getenv("POSTMARK_SERVER_TOKEN", "")
        if not token:
            logger.warning("POSTMARK_SERVER_TOKEN is not set; reply emails will fail")
        return cls(token, sender=os.getenv("SENDER_EMAIL_ADDRESS") or DEFAULT_SENDER)

    def build_message(
        self,
        to: str,
        subject: str,
        html_body: str,
        ics_content: Optional[str] = None,
    ) -> dict:
        message: dict = {
            "From": self._sender,
            "To": to,
            "Subject": subject,
            "HtmlBody": html_body,
        }
        if ics_content:
            message["Attachments"] = [
                {
                    "Name": ICS_ATTACHMENT_NAME,
                    "Content": base64.b64encode(ics_content.encode("utf-8")).decode("ascii"),
                    "ContentType": ICS_CONTENT_TYPE,
                }
            ]
        return message

    async def send_email(
        self,
        to: str,
        subject: str,
        html_body: str,
        ics_content: Optional[str] = None,
    ) -> str:
        """
        Send one email. Returns the Postmark MessageID.

        Raises:
            NotificationError: on transport errors, non-2xx responses, or a
                non-zero Postmark ErrorCode.
        """
        message = self.build_message(to, subject, html_body, ics_content)
        headers = {
            "Accept": "application/json",
            "Content-Type": "application/json",
            "X-Postmark-Server-Token": self._server_token,
        }

        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                response = await client.post(POSTMARK_API_URL, json=message, headers=headers)
        except httpx.HTTPError as e:
            raise NotificationError(f"Failed to reach Postmark: {e}") from e

        try:
            body = response.json()
        except ValueError:
            body = {}

        if response.status_code >= 300 or body.get("ErrorCode", 0) != 0:
            detail = body.get("Message") or response.text
            raise NotificationError(
                f"Postmark rejected email to {to} (HTTP {response.status_code}): {detail}"
            )

        message_id = body.get("MessageID", "")
        logger.info(f"Response email sent to {to}, MessageID={message_id}")
        return message_id
