"""
Notification transport interface.
The booking flow only ever needs "send this message to this address".
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class EmailMessage:
    to: str
    subject: str
    html: str


class Notifier(ABC):
    """
    Interface for notification transports.

    Implementations:
    - LogNotifier: writes the message to the structured log only
    - BrevoNotifier: Brevo transactional e-mail HTTP API

    `send` may raise NotificationError; the dispatcher catches and logs it.
    """

    @abstractmethod
    async def send(self, message: EmailMessage) -> None:
        pass

    async def close(self) -> None:
        """Release transport resources on application shutdown."""
