"""
Tests for booking notification messages and transports.
"""

import json
from datetime import datetime, timezone

import httpx
import pytest

from campus_market.core.exceptions import NotificationError
from campus_market.schemas.booking import BookingItemResponse, BookingResponse
from campus_market.services import notification_service
from campus_market.services.interfaces.notifier import EmailMessage
from campus_market.services.notification_service import (
    BrevoNotifier,
    booking_cancelled_messages,
    booking_created_messages,
    send_safe,
)

from conftest import RecordingNotifier

ADMIN = "admin-alerts@brainwareuniversity.ac.in"


def item(title, seller, price=100.0, quantity=1):
    return BookingItemResponse(
        product_id=len(title),
        title=title,
        unit_price=price,
        quantity=quantity,
        seller_id=len(seller),
        seller_name=seller.title(),
        seller_email=f"{seller}@brainwareuniversity.ac.in",
    )


@pytest.fixture
def booking():
    return BookingResponse(
        id=42,
        buyer_id=1,
        buyer_name="Meera",
        buyer_email="meera@brainwareuniversity.ac.in",
        items=[item("Chair", "asha"), item("Table", "ravi", 500), item("Stool", "asha", 80, 2)],
        total_price=760,
        status="Booked",
        created_at=datetime.now(timezone.utc),
    )


def test_created_messages_one_per_seller(booking):
    messages = booking_created_messages(booking)

    assert [m.to for m in messages] == [
        "meera@brainwareuniversity.ac.in",
        "asha@brainwareuniversity.ac.in",
        "ravi@brainwareuniversity.ac.in",
        ADMIN,
    ]
    buyer_mail, asha_mail, ravi_mail, _ = messages
    assert buyer_mail.subject == "Booking confirmation #42"
    assert all(title in buyer_mail.html for title in ("Chair", "Table", "Stool"))
    assert "Chair" in asha_mail.html and "Stool" in asha_mail.html
    assert "Table" not in asha_mail.html
    assert "Table" in ravi_mail.html and "Chair" not in ravi_mail.html


def test_admin_alert_can_be_disabled(monkeypatch, booking):
    monkeypatch.setattr(notification_service.settings, "ADMIN_ALERTS", False)

    assert ADMIN not in [m.to for m in booking_created_messages(booking)]
    assert ADMIN not in [m.to for m in booking_cancelled_messages(booking)]


def test_cancelled_messages(booking):
    messages = booking_cancelled_messages(booking)

    assert {m.subject for m in messages} == {"Booking #42 cancelled"}
    assert len(messages) == 4


def test_buyer_name_is_escaped(booking):
    booking.buyer_name = "<script>x</script>"
    [buyer_mail, *_] = booking_created_messages(booking)
    assert "<script>" not in buyer_mail.html


@pytest.mark.asyncio
async def test_send_safe_swallows_failures():
    notifier = RecordingNotifier()
    notifier.fail_for = {"down@brainwareuniversity.ac.in"}

    assert await send_safe(notifier, EmailMessage("up@brainwareuniversity.ac.in", "s", "h"))
    assert not await send_safe(notifier, EmailMessage("down@brainwareuniversity.ac.in", "s", "h"))
    assert notifier.recipients() == ["up@brainwareuniversity.ac.in"]


@pytest.mark.asyncio
async def test_brevo_notifier_posts_payload():
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(201, json={"messageId": "<abc@smtp-relay>"})

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler), headers={"api-key": "key"})
    notifier = BrevoNotifier(
        api_key="key",
        sender_email="noreply@brainwareuniversity.ac.in",
        sender_name="Campus Marketplace",
        api_url="https://brevo.test/v3/smtp/email",
        client=client,
    )

    await notifier.send(EmailMessage("meera@brainwareuniversity.ac.in", "Hello", "<p>Hi</p>"))
    await notifier.close()

    [request] = requests
    assert request.url == "https://brevo.test/v3/smtp/email"
    assert request.headers["api-key"] == "key"
    assert json.loads(request.content) == {
        "sender": {"name": "Campus Marketplace", "email": "noreply@brainwareuniversity.ac.in"},
        "to": [{"email": "meera@brainwareuniversity.ac.in"}],
        "subject": "Hello",
        "htmlContent": "<p>Hi</p>",
    }


@pytest.mark.asyncio
async def test_brevo_notifier_raises_on_rejection():
    client = httpx.AsyncClient(
        transport=httpx.MockTransport(lambda request: httpx.Response(401, text="unauthorized"))
    )
    notifier = BrevoNotifier("bad", "noreply@brainwareuniversity.ac.in", "Campus Marketplace", client=client)

    with pytest.raises(NotificationError, match="401"):
        await notifier.send(EmailMessage("meera@brainwareuniversity.ac.in", "Hello", "<p>Hi</p>"))
    await notifier.close()
