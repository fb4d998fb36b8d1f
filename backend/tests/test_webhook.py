"""
Tests for the inbound webhook endpoint.

The email processor is replaced via dependency_overrides; processing itself
is covered in test_email_processor.py.
"""

import pytest
from fastapi.testclient import TestClient

from app.dependencies import get_email_processor
from app.main import app

SECRET = "test-webhook-secret"


class RecordingProcessor:
    def __init__(self):
        self.emails = []

    async def process_inbound_email(self, email):
        self.emails.append(email)
        return None


def _postmark_payload(**overrides) -> dict:
    payload = {
        "From": "alice@example.com",
        "FromFull": {"Email": "alice@example.com", "Name": "Alice"},
        "To": "events@inbound.example.com",
        "Subject": "Paris Trip",
        "TextBody": "Flight UA123 on March 15th",
        "Date": "Sat, 01 Mar 2025 09:00:00 +0000",
        "MessageID": "pm-msg-1",
        "Attachments": [],
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def processor(monkeypatch):
    monkeypatch.setenv("INBOUND_WEBHOOK_SECRET", SECRET)
    monkeypatch.delenv("EMAIL_PROVIDER", raising=False)
    recorder = RecordingProcessor()
    app.dependency_overrides[get_email_processor] = lambda: recorder
    yield recorder
    app.dependency_overrides.clear()


@pytest.fixture
def client(processor):
    return TestClient(app)


class TestWebhookAuth:

    def test_missing_secret_is_401(self, client, processor):
        response = client.post("/api/webhook", json=_postmark_payload())
        assert response.status_code == 401
        assert processor.emails == []

    def test_wrong_secret_is_401(self, client):
        response = client.post(
            "/api/webhook", json=_postmark_payload(), headers={"X-Webhook-Secret": "nope"}
        )
        assert response.status_code == 401

    def test_unconfigured_secret_rejects_everything(self, client, monkeypatch):
        monkeypatch.delenv("INBOUND_WEBHOOK_SECRET", raising=False)
        monkeypatch.delenv("POSTMARK_WEBHOOK_SECRET", raising=False)
        response = client.post(
            "/api/webhook", json=_postmark_payload(), headers={"X-Webhook-Secret": SECRET}
        )
        assert response.status_code == 401
        assert response.json()["detail"] == "Webhook secret not configured"

    def test_legacy_postmark_header_and_secret(self, client, processor, monkeypatch):
        monkeypatch.delenv("INBOUND_WEBHOOK_SECRET", raising=False)
        monkeypatch.setenv("POSTMARK_WEBHOOK_SECRET", "legacy")
        response = client.post(
            "/api/webhook", json=_postmark_payload(), headers={"X-Postmark-Secret": "legacy"}
        )
        assert response.status_code == 200
        assert len(processor.emails) == 1


class TestWebhookIntake:

    def test_accepted_and_processed_in_background(self, client, processor):
        response = client.post(
            "/api/webhook", json=_postmark_payload(), headers={"X-Webhook-Secret": SECRET}
        )

        assert response.status_code == 200
        assert response.json() == {"status": "accepted"}
        # TestClient runs background tasks before returning
        assert len(processor.emails) == 1
        assert processor.emails[0].sender_email == "alice@example.com"
        assert processor.emails[0].subject == "Paris Trip"

    def test_resend_provider(self, client, processor, monkeypatch):
        monkeypatch.setenv("EMAIL_PROVIDER", "resend")
        response = client.post(
            "/api/webhook",
            json={"from": "Bob <bob@example.com>", "subject": "Dentist", "text": "Tue 9am"},
            headers={"X-Webhook-Secret": SECRET},
        )

        assert response.json() == {"status": "accepted"}
        assert processor.emails[0].sender_email == "bob@example.com"

    def test_invalid_payload_is_400(self, client, processor):
        response = client.post(
            "/api/webhook",
            json=_postmark_payload(Attachments="not-a-list"),
            headers={"X-Webhook-Secret": SECRET},
        )
        assert response.status_code == 400
        assert processor.emails == []

    def test_unknown_provider_is_rejected(self, client, processor, monkeypatch):
        monkeypatch.setenv("EMAIL_PROVIDER", "mailgun")
        response = client.post(
            "/api/webhook", json=_postmark_payload(), headers={"X-Webhook-Secret": SECRET}
        )
        assert response.status_code == 200
        assert response.json() == {"status": "rejected", "reason": "unsupported_provider"}
        assert processor.emails == []
