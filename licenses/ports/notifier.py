"""
Notifier port (interface).

The transport that delivers lifecycle notifications. Implementations
live in the infrastructure layer.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from core.domain.value_objects import NotificationPriority


@dataclass(frozen=True)
class Notification:
    """A formatted lifecycle notification."""

    type: str
    priority: NotificationPriority
    recipient: str
    subject: str
    template: str
    data: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "priority": str(self.priority),
            "recipient": self.recipient,
            "subject": self.subject,
            "template": self.template,
            "data": self.data,
        }


@dataclass(frozen=True)
class NotificationResult:
    """Delivery outcome. Dispatchers return this instead of raising."""

    success: bool
    message_id: Optional[str] = None
    error: Optional[str] = None
    skipped: bool = False
    notification: Optional[Notification] = None


class Notifier(ABC):
    """Abstract notification transport."""

    @abstractmethod
    async def send(self, notification: Notification) -> NotificationResult:
        """
        Deliver a notification.

        Args:
            notification: Notification to deliver

        Returns:
            NotificationResult; implementations may also raise on transport errors
        """
        pass
