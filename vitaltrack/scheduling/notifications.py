import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Callable, Optional
from zoneinfo import ZoneInfo

from twilio.base.exceptions import TwilioException
from twilio.http.http_client import TwilioHttpClient
from twilio.rest import Client

logger = logging.getLogger(__name__)


class NotificationSender(ABC):
    """Sends a text body to a patient identifier."""

    @abstractmethod
    def send(self, recipient_id: str, body: str) -> Optional[str]:
        """Return a delivery id, or None when nothing was sent."""


class LoggingNotificationSender(NotificationSender):
    """Used when no messaging credentials are configured."""

    def send(self, recipient_id: str, body: str) -> Optional[str]:
        logger.info("Notification for %s: %s", recipient_id, body)
        return None


class TwilioSmsSender(NotificationSender):
    """SMS through Twilio. ``resolve_phone`` maps a patient id to a phone number."""

    def __init__(self, account_sid: str, auth_token: str, from_number: str,
                 resolve_phone: Callable[[str], Optional[str]], timeout: float = 10.0,
                 client: Optional[Client] = None):
        self.from_number = from_number
        self.resolve_phone = resolve_phone
        self.client = client or Client(account_sid, auth_token,
                                       http_client=TwilioHttpClient(timeout=timeout))

    def send(self, recipient_id: str, body: str) -> Optional[str]:
        phone = self.resolve_phone(recipient_id)
        if not phone:
            logger.warning("No phone number for %s, SMS not sent", recipient_id)
            return None
        message = self.client.messages.create(
            from_=self.from_number,
            to=phone,
            body=body
        )
        return message.sid


def format_schedule(value: datetime, timezone_name: str = "UTC") -> str:
    return value.astimezone(ZoneInfo(timezone_name)).strftime("%B %d, %Y at %I:%M %p")


def confirmation_message(clinic_name: str, schedule: datetime, physician: str,
                         timezone_name: str = "UTC") -> str:
    return (f"Greetings from {clinic_name}. Your appointment is confirmed for "
            f"{format_schedule(schedule, timezone_name)} with Dr. {physician}.")


def cancellation_message(clinic_name: str, schedule: datetime, reason: Optional[str],
                         timezone_name: str = "UTC") -> str:
    return (f"Greetings from {clinic_name}. We regret to inform that your appointment for "
            f"{format_schedule(schedule, timezone_name)} is cancelled. Reason: {reason}.")


def notify(sender: NotificationSender, recipient_id: str, body: str) -> bool:
    """Fire-and-forget: delivery errors are logged, never raised."""
    try:
        sender.send(recipient_id, body)
        return True
    except TwilioException as e:
        logger.error("Error sending SMS to %s: %s", recipient_id, e)
    except Exception as e:
        logger.exception("Unexpected error sending notification to %s: %s", recipient_id, e)
    return False
