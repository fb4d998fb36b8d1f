#!/usr/bin/env python3
"""
Dev helper: send a test inbound-email webhook to the local mail2cal backend.

Builds a webhook payload for the configured provider around a sample
itinerary (or your own text / attachment) and POSTs it to /api/webhook.
The backend answers {"status": "accepted"} immediately; poll
GET /api/events?email=<from> to watch the record move out of "pending".

Usage
-----
# Postmark payload with the sample itinerary, targeting localhost:8000
python scripts/send_test_email.py

# Attach a PDF or an image
python scripts/send_test_email.py --file boarding_pass.pdf

# Use your own body text
python scripts/send_test_email.py --body "Dentist appointment next Tuesday at 9am"

# Resend payload format, print only
python scripts/send_test_email.py --provider resend --dry-run

Environment / .env
------------------
INBOUND_WEBHOOK_SECRET   Shared webhook secret (required unless --dry-run).
                         Falls back to POSTMARK_WEBHOOK_SECRET.
EMAIL_PROVIDER           Payload format (default: postmark).
                         Overridden by --provider.
"""

import argparse
import base64
import json
import os
import sys
import textwrap
from datetime import datetime, timezone
from email.utils import format_datetime
from pathlib import Path
from typing import Optional

import httpx
from dotenv import load_dotenv


SAMPLE_SUBJECT = "Paris Trip"
SAMPLE_BODY = """\
Hello! Here are your travel details:

Flight: UA123 departing LAX on March 15th 2025 at 2:30 PM, arriving CDG March 16th at 11:45 AM
Hotel: Le Marais Hotel check-in March 16th at 3:00 PM
Dinner: Chez Pierre reservation March 17th at 7:30 PM

Have a great trip!"""


def _resolve_secret() -> str:
    return (
        os.getenv("INBOUND_WEBHOOK_SECRET")
        or os.getenv("POSTMARK_WEBHOOK_SECRET")
        or ""
    )


def _detect_content_type(filename: str) -> str:
    ext = Path(filename).suffix.lower()
    return {
        ".pdf": "application/pdf",
        ".png": "image/png",
        ".jpg": "image/jpeg",
        ".jpeg": "image/jpeg",
        ".gif": "image/gif",
        ".webp": "image/webp",
        ".txt": "text/plain",
    }.get(ext, "application/octet-stream")


# ---------------------------------------------------------------------------
# Payload builders
# ---------------------------------------------------------------------------

def _build_postmark_payload(
    from_email: str,
    to_address: str,
    subject: str,
    body: str,
    attachment: Optional[tuple[str, str, bytes]],
) -> dict:
    """Postmark inbound format (PascalCase keys)."""
    payload = {
        "From": from_email,
        "FromFull": {"Email": from_email, "Name": ""},
        "To": to_address,
        "Subject": subject,
        "TextBody": body,
        "HtmlBody": "",
        "Date": format_datetime(datetime.now(timezone.utc)),
        "MessageID": f"test-{int(datetime.now(timezone.utc).timestamp())}",
        "Attachments": [],
    }
    if attachment:
        filename, content_type, content = attachment
        payload["Attachments"].append(
            {
                "Name": filename,
                "Content": base64.b64encode(content).decode(),
                "ContentType": content_type,
                "ContentLength": len(content),
            }
        )
    return payload


def _build_resend_payload(
    from_email: str,
    to_address: str,
    subject: str,
    body: str,
    attachment: Optional[tuple[str, str, bytes]],
) -> dict:
    """Resend inbound format (snake_case keys)."""
    payload = {
        "from": from_email,
        "to": [to_address],
        "subject": subject,
        "text": body,
        "created_at": datetime.now(timezone.utc).isoformat(),
        "attachments": [],
    }
    if attachment:
        filename, content_type, content = attachment
        payload["attachments"].append(
            {
                "filename": filename,
                "content": base64.b64encode(content).decode(),
                "content_type": content_type,
                "size": len(content),
            }
        )
    return payload


_PAYLOAD_BUILDERS = {
    "postmark": _build_postmark_payload,
    "resend": _build_resend_payload,
}


def _redact_attachments(payload: dict) -> dict:
    """Copy of payload with base64 blobs replaced by their size."""
    display = dict(payload)
    for key, content_key in (("Attachments", "Content"), ("attachments", "content")):
        if display.get(key):
            display[key] = [
                {**a, content_key: f"<base64, {len(a[content_key])} chars>"}
                for a in display[key]
            ]
    return display


def _print_response(response: httpx.Response) -> None:
    status = response.status_code
    symbol = "OK" if status == 200 else "FAIL"
    print(f"\n[{symbol}] HTTP {status}")
    try:
        print(json.dumps(response.json(), indent=2))
    except ValueError:
        print(response.text)


def main() -> int:
    project_root = Path(__file__).resolve().parent.parent
    load_dotenv(project_root / ".env")
    load_dotenv(project_root / "backend" / ".env")

    parser = argparse.ArgumentParser(
        prog="send_test_email.py",
        description="Send a test inbound-email webhook to the mail2cal backend.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=textwrap.dedent("""\
            Examples:
              python scripts/send_test_email.py
              python scripts/send_test_email.py --file ticket.pdf
              python scripts/send_test_email.py --provider resend --dry-run
        """),
    )
    parser.add_argument("--url", default="http://localhost:8000",
                        help="Backend base URL (default: http://localhost:8000)")
    parser.add_argument("--provider", default=os.getenv("EMAIL_PROVIDER", "postmark"),
                        choices=list(_PAYLOAD_BUILDERS),
                        help="Webhook payload format (default: postmark)")
    parser.add_argument("--from", dest="from_email", default="traveler@example.com",
                        help="Sender address; the reply goes here")
    parser.add_argument("--to", dest="to_address", default="events@inbound.mail2cal.app")
    parser.add_argument("--subject", default=SAMPLE_SUBJECT)
    parser.add_argument("--body", default=SAMPLE_BODY, help="Plain-text body")
    parser.add_argument("--file", default=None, metavar="PATH",
                        help="File to attach (PDF or image)")
    parser.add_argument("--secret", default=None,
                        help="Override the webhook secret from the environment")
    parser.add_argument("--dry-run", action="store_true",
                        help="Print the payload JSON without sending it.")
    args = parser.parse_args()

    secret = args.secret or _resolve_secret()
    if not secret and not args.dry_run:
        print(
            "ERROR: No webhook secret found.\n"
            "Set INBOUND_WEBHOOK_SECRET in your environment or .env file, or pass --secret.",
            file=sys.stderr,
        )
        return 1

    attachment = None
    if args.file:
        file_path = Path(args.file)
        if not file_path.exists():
            print(f"ERROR: File not found: {file_path}", file=sys.stderr)
            return 1
        attachment = (file_path.name, _detect_content_type(file_path.name), file_path.read_bytes())
        print(f"Attaching file: {file_path} ({len(attachment[2]):,} bytes)")

    payload = _PAYLOAD_BUILDERS[args.provider](
        from_email=args.from_email,
        to_address=args.to_address,
        subject=args.subject,
        body=args.body,
        attachment=attachment,
    )
    endpoint = f"{args.url.rstrip('/')}/api/webhook"

    print(f"\nProvider : {args.provider}")
    print(f"Endpoint : {endpoint}")
    print(f"From     : {args.from_email}")
    print(f"Subject  : {args.subject}")

    if args.dry_run:
        print("\n[DRY RUN] Payload:")
        print(json.dumps(_redact_attachments(payload), indent=2))
        return 0

    try:
        response = httpx.post(
            endpoint,
            json=payload,
            headers={"X-Webhook-Secret": secret},
            timeout=30,
        )
    except httpx.ConnectError:
        print(
            f"\nERROR: Could not connect to {endpoint}\n"
            "Is the backend running? Start it with:\n"
            "  cd backend && uvicorn app.main:app --reload",
            file=sys.stderr,
        )
        return 1

    _print_response(response)
    if response.status_code == 200:
        print(f"\nPoll: {args.url.rstrip('/')}/api/events?email={args.from_email}")
        return 0
    return 1


if __name__ == "__main__":
    sys.exit(main())
