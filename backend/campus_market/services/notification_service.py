"""
Booking notifications.

Everything here is best effort. Messages are sent after the booking
transaction has committed (FastAPI background tasks), and a failing send is
logged and counted but never raised: a booking or cancellation that has
committed is reported as successful regardless of mail delivery.

Per booking event:
  - the buyer gets one message with every line item
  - each distinct seller gets one message listing only their own items
  - the admin address gets an alert when ADMIN_ALERTS is on
"""

from collections import defaultdict
from html import escape
from typing import Iterable, Optional

import httpx

from campus_market.core.config import get_settings
from campus_market.core.exceptions import NotificationError
from campus_market.core.logging import get_logger
from campus_market.core.metrics import record_notification
from campus_market.schemas.booking import BookingItemResponse, BookingResponse
from campus_market.schemas.product import ProductResponse
from campus_market.services.interfaces.notifier import EmailMessage, Notifier

logger = get_logger(__name__)
settings = get_settings()


class LogNotifier(Notifier):
    """Writes messages to the structured log. Default for development."""

    async def send(self, message: EmailMessage) -> None:
        logger.info("notification_logged", to=message.to, subject=message.subject)


class BrevoNotifier(Notifier):
    """Brevo transactional e-mail API over a shared httpx client."""

    def __init__(
        self,
        api_key: str,
        sender_email: str,
        sender_name: str,
        api_url: str = "https://api.brevo.com/v3/smtp/email",
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.api_url = api_url
        self.sender = {"name": sender_name, "email": sender_email}
        self._client = client or httpx.AsyncClient(
            timeout=timeout,
            headers={"api-key": api_key, "Content-Type": "application/json"},
        )

    async def send(self, message: EmailMessage) -> None:
        payload = {
            "sender": self.sender,
            "to": [{"email": message.to}],
            "subject": message.subject,
            "htmlContent": message.html,
        }
        try:
            response = await self._client.post(self.api_url, json=payload)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise NotificationError(
                f"Brevo rejected message: {exc.response.status_code} {exc.response.text}"
            ) from exc
        except httpx.HTTPError as exc:
            raise NotificationError(f"Brevo request failed: {exc}") from exc

    async def close(self) -> None:
        await self._client.aclose()


async def send_safe(notifier: Notifier, message: EmailMessage) -> bool:
    """Send one message, logging instead of raising on failure."""
    try:
        await notifier.send(message)
    except Exception as e:
        record_notification(sent=False)
        logger.error(
            "notification_failed",
            to=message.to,
            subject=message.subject,
            error=str(e),
        )
        return False
    record_notification(sent=True)
    return True


def _items_table(items: Iterable[BookingItemResponse]) -> str:
    rows = "".join(
        f"<tr><td>{escape(item.title)}</td><td>{item.quantity}</td>"
        f"<td>{item.unit_price:.2f}</td></tr>"
        for item in items
    )
    return f"<table><tr><th>Item</th><th>Qty</th><th>Price</th></tr>{rows}</table>"


def _items_by_seller(booking: BookingResponse) -> dict[str, list[BookingItemResponse]]:
    grouped: dict[str, list[BookingItemResponse]] = defaultdict(list)
    for item in booking.items:
        grouped[item.seller_email].append(item)
    return grouped


def booking_created_messages(booking: BookingResponse) -> list[EmailMessage]:
    messages = [
        EmailMessage(
            to=booking.buyer_email,
            subject=f"Booking confirmation #{booking.id}",
            html=(
                f"<p>Hi {escape(booking.buyer_name)},</p>"
                f"<p>Your booking #{booking.id} is confirmed.</p>"
                f"{_items_table(booking.items)}"
                f"<p>Total: {booking.total_price:.2f}</p>"
            ),
        )
    ]

    for seller_email, items in _items_by_seller(booking).items():
        messages.append(
            EmailMessage(
                to=seller_email,
                subject=f"New booking #{booking.id} for your products",
                html=(
                    f"<p>Hi {escape(items[0].seller_name)},</p>"
                    f"<p>{escape(booking.buyer_name)} ({escape(booking.buyer_email)}) "
                    f"booked:</p>{_items_table(items)}"
                ),
            )
        )

    if settings.ADMIN_ALERTS and settings.ADMIN_EMAIL:
        messages.append(
            EmailMessage(
                to=settings.ADMIN_EMAIL,
                subject=f"New booking #{booking.id}",
                html=(
                    f"<p>Buyer: {escape(booking.buyer_name)} ({escape(booking.buyer_email)})</p>"
                    f"{_items_table(booking.items)}"
                    f"<p>Total: {booking.total_price:.2f}</p>"
                ),
            )
        )
    return messages


def booking_cancelled_messages(booking: BookingResponse) -> list[EmailMessage]:
    messages = [
        EmailMessage(
            to=booking.buyer_email,
            subject=f"Booking #{booking.id} cancelled",
            html=(
                f"<p>Hi {escape(booking.buyer_name)},</p>"
                f"<p>Your booking #{booking.id} was cancelled.</p>"
                f"{_items_table(booking.items)}"
            ),
        )
    ]

    for seller_email, items in _items_by_seller(booking).items():
        messages.append(
            EmailMessage(
                to=seller_email,
                subject=f"Booking #{booking.id} cancelled",
                html=(
                    f"<p>Hi {escape(items[0].seller_name)},</p>"
                    f"<p>{escape(booking.buyer_name)} cancelled these items, "
                    f"stock has been returned:</p>{_items_table(items)}"
                ),
            )
        )

    if settings.ADMIN_ALERTS and settings.ADMIN_EMAIL:
        messages.append(
            EmailMessage(
                to=settings.ADMIN_EMAIL,
                subject=f"Booking #{booking.id} cancelled",
                html=f"<p>Cancelled by {escape(booking.buyer_name)} ({escape(booking.buyer_email)})</p>",
            )
        )
    return messages


async def _dispatch(notifier: Notifier, event: str, booking_id: int, messages: list[EmailMessage]) -> None:
    sent = 0
    for message in messages:
        if await send_safe(notifier, message):
            sent += 1
    logger.info(event, booking_id=booking_id, sent=sent, failed=len(messages) - sent)


async def notify_booking_created(notifier: Notifier, booking: BookingResponse) -> None:
    await _dispatch(notifier, "booking_notifications_sent", booking.id, booking_created_messages(booking))


async def notify_booking_cancelled(notifier: Notifier, booking: BookingResponse) -> None:
    await _dispatch(notifier, "cancellation_notifications_sent", booking.id, booking_cancelled_messages(booking))


async def notify_product_submitted(notifier: Notifier, product: ProductResponse) -> None:
    """Tell the seller their listing is waiting for moderation."""
    await send_safe(
        notifier,
        EmailMessage(
            to=product.seller_email,
            subject="Product uploaded - under review",
            html=(
                f"<p>Hi {escape(product.seller_name)},</p>"
                f"<p>Your product <b>{escape(product.title)}</b> was uploaded and is "
                f"waiting for admin verification.</p>"
            ),
        ),
    )
