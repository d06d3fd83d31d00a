import asyncio
from urllib.parse import parse_qs

import aiosmtplib
import httpx
import pytest
from sqlmodel import select

from bites import email_service, sms_service
from bites.models import CustomerContact
from bites.settings import settings
from bites.sms_service import MessagingError


@pytest.fixture(name="twilio")
def twilio_fixture(monkeypatch):
    monkeypatch.setattr(settings, "twilio_account_sid", "AC123")
    monkeypatch.setattr(settings, "twilio_auth_token", "token")
    monkeypatch.setattr(settings, "twilio_from_number", "+15550001111")
    monkeypatch.setattr(settings, "sms_country_code", "+91")


@pytest.fixture(name="smtp")
def smtp_fixture(monkeypatch):
    monkeypatch.setattr(settings, "smtp_user", "bites@example.com")
    monkeypatch.setattr(settings, "smtp_password", "app-password")
    sent = []

    async def fake_send(message, **options):
        sent.append((message, options))

    monkeypatch.setattr(aiosmtplib, "send", fake_send)
    return sent


# ============ CONTACTS ============

def test_save_contact_and_dedup(client, admin, session):
    first = client.post("/api/v1/customercontact", json={"contactNo": "9876543210", "email": "Guest@Example.com"})
    assert first.status_code == 200
    contact = first.json()["contact"]
    assert contact["email"] == "guest@example.com"

    again = client.post("/api/v1/customercontact", json={"email": "guest@example.com"})
    assert again.json()["contact"]["id"] == contact["id"]
    assert len(session.exec(select(CustomerContact)).all()) == 1

    client.post("/api/v1/customercontact", json={"contactNo": "1112223333"})
    listed = admin.get("/api/v1/customercontact").json()
    assert [c["contactNo"] for c in listed] == ["1112223333", "9876543210"]


def test_save_contact_requires_something(client):
    response = client.post("/api/v1/customercontact", json={"contactNo": "  ", "email": ""})
    assert response.status_code == 400
    assert response.json()["detail"] == "Contact number or email is required"


def test_contact_list_requires_permission(client, login_as):
    assert client.get("/api/v1/customercontact").status_code == 401
    assert login_as("chef").get("/api/v1/customercontact").status_code == 403


# ============ SMS ============

def test_to_e164(twilio):
    assert sms_service.to_e164("98765 43210") == "+919876543210"
    assert sms_service.to_e164("+14155550123") == "+14155550123"


def test_send_sms_posts_to_twilio(twilio):
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(201, json={"sid": "SM42"})

    sid = asyncio.run(sms_service.send_sms("9876543210", "Table ready", transport=httpx.MockTransport(handler)))
    assert sid == "SM42"

    [request] = requests
    assert request.url.path == "/2010-04-01/Accounts/AC123/Messages.json"
    form = parse_qs(request.content.decode())
    assert form == {"To": ["+919876543210"], "From": ["+15550001111"], "Body": ["Table ready"]}
    assert request.headers["authorization"].startswith("Basic ")


def test_send_sms_provider_error(twilio):
    transport = httpx.MockTransport(lambda request: httpx.Response(400, json={"message": "bad number"}))
    with pytest.raises(MessagingError) as excinfo:
        asyncio.run(sms_service.send_sms("1", "hi", transport=transport))
    assert excinfo.value.configured is True


def test_send_sms_not_configured():
    with pytest.raises(MessagingError) as excinfo:
        asyncio.run(sms_service.send_sms("9876543210", "hi"))
    assert excinfo.value.configured is False


def test_sendmessage_endpoint(admin, monkeypatch):
    missing = admin.post("/api/v1/sendmessage", json={"contactNo": "9876543210"})
    assert missing.status_code == 400
    assert missing.json()["detail"] == "Contact number and message are required"

    not_configured = admin.post("/api/v1/sendmessage", json={"contactNo": "9876543210", "message": "hi"})
    assert not_configured.status_code == 503

    async def failing_send(contact_no, body):
        raise MessagingError("provider down")

    monkeypatch.setattr(sms_service, "send_sms", failing_send)
    failed = admin.post("/api/v1/sendmessage", json={"contactNo": "9876543210", "message": "hi"})
    assert failed.status_code == 502
    assert failed.json()["detail"] == "Failed to send message"

    async def working_send(contact_no, body):
        return "SM1"

    monkeypatch.setattr(sms_service, "send_sms", working_send)
    sent = admin.post("/api/v1/sendmessage", json={"contactNo": "9876543210", "message": "hi"})
    assert sent.json() == {"success": True, "sid": "SM1"}


# ============ EMAIL ============

def test_deliver_uses_starttls_on_587(smtp, monkeypatch):
    monkeypatch.setattr(settings, "smtp_port", 587)
    assert asyncio.run(email_service.send_email("guest@example.com", "Hi", "<p>Hi</p>", "Hi")) is True

    [(message, options)] = smtp
    assert options["start_tls"] is True
    assert "use_tls" not in options
    assert message["To"] == "guest@example.com"
    assert message["Subject"] == "Hi"


def test_deliver_uses_tls_on_465(smtp, monkeypatch):
    monkeypatch.setattr(settings, "smtp_port", 465)
    asyncio.run(email_service.send_email("guest@example.com", "Hi", "<p>Hi</p>"))
    [(_, options)] = smtp
    assert options["use_tls"] is True
    assert "start_tls" not in options


def test_send_email_with_attachment(smtp):
    asyncio.run(email_service.send_email(
        "guest@example.com", "Offer", "<p>20% off</p>", attachments=[("offer.png", b"png-bytes")],
    ))
    [(message, _)] = smtp
    assert message.get_content_subtype() == "mixed"
    filenames = [part.get_filename() for part in message.walk() if part.get_filename()]
    assert filenames == ["offer.png"]


def test_send_email_failure_returns_false(smtp, monkeypatch):
    async def broken_send(message, **options):
        raise aiosmtplib.SMTPException("connection refused")

    monkeypatch.setattr(aiosmtplib, "send", broken_send)
    assert asyncio.run(email_service.send_email("guest@example.com", "Hi", "<p>Hi</p>")) is False


def test_send_email_not_configured():
    assert asyncio.run(email_service.send_email("guest@example.com", "Hi", "<p>Hi</p>")) is False


def test_smtp_check(smtp, monkeypatch):
    assert asyncio.run(email_service.test_smtp_connection())["success"] is True

    async def refused(message, **options):
        raise aiosmtplib.SMTPAuthenticationError(535, "bad credentials")

    monkeypatch.setattr(aiosmtplib, "send", refused)
    result = asyncio.run(email_service.test_smtp_connection())
    assert result["success"] is False
    assert result["message"].startswith("Authentication failed")


def test_sendbulkmessage_validation(admin):
    def post(emails=(), **data):
        return admin.post("/api/v1/sendbulkmessage", data={**data, "emails[]": list(emails)})

    assert post(["a@example.com"], type="sms", message="hi").json()["detail"] == "Invalid type"
    assert post(["a@example.com"], type="email").json()["detail"] == "Message is required"
    assert post(type="email", message="hi").json()["detail"] == "At least one email is required"
    assert post(["  "], type="email", message="hi").json()["detail"] == "At least one email is required"

    not_configured = post(["a@example.com"], type="email", message="hi")
    assert not_configured.status_code == 503
    assert not_configured.json()["detail"] == "Email service is not configured"


def test_sendbulkmessage_reads_bracketed_field(admin, smtp):
    ignored = admin.post("/api/v1/sendbulkmessage", data={"type": "email", "message": "hi", "emails": ["a@example.com"]})
    assert ignored.json()["detail"] == "At least one email is required"

    response = admin.post(
        "/api/v1/sendbulkmessage",
        data={"type": "email", "message": "<p>hi</p>", "emails[]": ["a@example.com", "b@example.com"]},
    )
    assert response.status_code == 200
    assert [r["email"] for r in response.json()["results"]] == ["a@example.com", "b@example.com"]
    assert [message["To"] for message, _ in smtp] == ["a@example.com", "b@example.com"]


def test_sendbulkmessage_sends_each_recipient(admin, smtp):
    response = admin.post(
        "/api/v1/sendbulkmessage",
        data={"type": "email", "message": "<p>Weekend special</p>", "emails[]": ["a@example.com", "b@example.com"]},
        files={"image": ("special.jpg", b"jpeg-bytes", "image/jpeg")},
    )
    assert response.status_code == 200
    assert response.json()["results"] == [
        {"email": "a@example.com", "sent": True},
        {"email": "b@example.com", "sent": True},
    ]
    assert [message["To"] for message, _ in smtp] == ["a@example.com", "b@example.com"]
    assert all(message["Subject"] == email_service.BULK_SUBJECT for message, _ in smtp)
