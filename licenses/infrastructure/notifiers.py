"""
Notifier adapters.
"""
import logging
import uuid

from asgiref.sync import sync_to_async
from django.core.mail import send_mail

from licenses.ports.notifier import Notification, NotificationResult, Notifier

logger = logging.getLogger(__name__)


class EmailNotifier(Notifier):
    """Delivers notifications through Django's email backend."""

    def __init__(self, from_email: str):
        self.from_email = from_email

    @staticmethod
    def render(notification: Notification) -> str:
        """Plain-text body listing the notification data."""
        lines = [notification.subject, ""]
        for key, value in notification.data.items():
            if value is not None:
                lines.append(f"{key.replace('_', ' ').capitalize()}: {value}")
        return "\n".join(lines)

    async def send(self, notification: Notification) -> NotificationResult:
        """
        Send the notification as an email.

        Args:
            notification: Notification to deliver

        Returns:
            NotificationResult with a generated message id
        """
        delivered = await sync_to_async(send_mail, thread_sensitive=False)(
            subject=notification.subject,
            message=self.render(notification),
            from_email=self.from_email,
            recipient_list=[notification.recipient],
            fail_silently=False,
        )
        if not delivered:
            return NotificationResult(
                success=False,
                error=f"Email to {notification.recipient} was not accepted",
                notification=notification,
            )
        message_id = f"email-{uuid.uuid4()}"
        logger.debug("Sent %s email %s to %s", notification.type, message_id, notification.recipient)
        return NotificationResult(success=True, message_id=message_id, notification=notification)
