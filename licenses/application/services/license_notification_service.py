"""
License notification dispatcher.

Formats lifecycle notifications and hands them to the injected notifier.
Every ``send_*`` method returns a NotificationResult instead of raising,
so a failed delivery never interrupts the lifecycle operation it reports on.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence

from core.domain.value_objects import NotificationPriority
from core.metrics import notifications_total
from licenses.application.config import NotificationConfig
from licenses.domain.license import License
from licenses.domain.sync import LifecycleContext
from licenses.ports.notifier import Notification, NotificationResult, Notifier

logger = logging.getLogger(__name__)

RENEWAL_REMINDER = "license_renewal_reminder"
LICENSE_EXPIRED = "license_expired"
LICENSE_SUSPENDED = "license_suspended"
LICENSE_RENEWED = "license_renewed"
LICENSE_EXTENDED = "license_extended"
LICENSE_REACTIVATED = "license_reactivated"

REMINDER_PRIORITIES = {
    "1day": NotificationPriority.URGENT,
    "7days": NotificationPriority.HIGH,
    "30days": NotificationPriority.NORMAL,
}


def reminder_priority(reminder_type: str) -> NotificationPriority:
    """Priority for a reminder tier; unknown tiers are normal."""
    return REMINDER_PRIORITIES.get(reminder_type, NotificationPriority.NORMAL)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


@dataclass
class BulkNotificationResult:
    """Partition of a bulk dispatch."""

    successful: List[Dict[str, Any]] = field(default_factory=list)
    failed: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.successful) + len(self.failed)


class LicenseNotificationService:
    """Formats and dispatches lifecycle notifications."""

    def __init__(
        self,
        notifier: Optional[Notifier] = None,
        config: Optional[NotificationConfig] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """
        Initialize the dispatcher.

        Args:
            notifier: Transport; when None notifications are only logged
            config: Notification settings
            clock: Returns the current aware datetime
        """
        self.notifier = notifier
        self.config = config or NotificationConfig()
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    def recipient_for(self, license: License) -> str:
        """License contact email, else the configured default recipient."""
        return license.contact_email or self.config.default_recipient

    def _base_data(self, license: License) -> Dict[str, Any]:
        return {
            "license_id": license.id,
            "dba": license.dba,
            "plan": str(license.plan),
            "term": str(license.term),
            "expires_at": _iso(license.expiration_date),
            "appid": license.appid,
        }

    def _build(
        self,
        license: License,
        notification_type: str,
        priority: NotificationPriority,
        title: str,
        data: Dict[str, Any],
    ) -> Notification:
        return Notification(
            type=notification_type,
            priority=priority,
            recipient=self.recipient_for(license),
            subject=f"{title}: {license.dba}",
            template=notification_type.replace("_", "-"),
            data={**self._base_data(license), **data},
        )

    async def send_renewal_reminder(
        self, license: License, reminder_type: str, description: Optional[str] = None
    ) -> NotificationResult:
        """Send a renewal reminder for one tier."""
        now = self.clock()
        return await self._dispatch(
            self._build(
                license,
                RENEWAL_REMINDER,
                reminder_priority(reminder_type),
                "License Renewal Reminder",
                {
                    "reminder_type": reminder_type,
                    "description": description or f"{reminder_type} renewal reminder",
                    "days_until_expiry": license.days_until_expiration(now),
                    "renewal_due_date": _iso(license.calculate_renewal_due_date()),
                },
            )
        )

    async def send_license_expired(self, license: License) -> NotificationResult:
        now = self.clock()
        return await self._dispatch(
            self._build(
                license,
                LICENSE_EXPIRED,
                NotificationPriority.HIGH,
                "License Expired",
                {
                    "grace_period_end": _iso(license.effective_grace_period_end),
                    "days_until_grace_period_end": license.days_until_grace_period_end(now),
                },
            )
        )

    async def send_license_suspended(self, license: License, reason: str) -> NotificationResult:
        return await self._dispatch(
            self._build(
                license,
                LICENSE_SUSPENDED,
                NotificationPriority.HIGH,
                "License Suspended",
                {"reason": reason},
            )
        )

    async def send_license_renewed(
        self, license: License, context: LifecycleContext
    ) -> NotificationResult:
        return await self._dispatch(
            self._build(
                license,
                LICENSE_RENEWED,
                NotificationPriority.NORMAL,
                "License Renewed",
                {"renewed_by": context.actor},
            )
        )

    async def send_license_extended(
        self, license: License, context: LifecycleContext
    ) -> NotificationResult:
        return await self._dispatch(
            self._build(
                license,
                LICENSE_EXTENDED,
                NotificationPriority.NORMAL,
                "License Extended",
                {"extended_by": context.actor, "reason": context.reason},
            )
        )

    async def send_license_reactivated(
        self, license: License, context: LifecycleContext
    ) -> NotificationResult:
        return await self._dispatch(
            self._build(
                license,
                LICENSE_REACTIVATED,
                NotificationPriority.NORMAL,
                "License Reactivated",
                {"reactivated_by": context.actor, "reason": context.reason},
            )
        )

    async def send_bulk_notifications(
        self,
        licenses: Sequence[License],
        notification_type: str,
        reminder_type: Optional[str] = None,
        reason: Optional[str] = None,
    ) -> BulkNotificationResult:
        """
        Send one notification per license and partition the outcomes.

        Args:
            licenses: Licenses to notify about
            notification_type: renewal reminder, expired or suspended type
            reminder_type: Tier name, for renewal reminders
            reason: Suspension reason, for suspended notifications

        Returns:
            BulkNotificationResult with successful and failed entries

        Raises:
            ValueError: If the notification type is not supported in bulk
        """
        senders = {
            RENEWAL_REMINDER: lambda lic: self.send_renewal_reminder(lic, reminder_type or ""),
            LICENSE_EXPIRED: self.send_license_expired,
            LICENSE_SUSPENDED: lambda lic: self.send_license_suspended(lic, reason or ""),
        }
        if notification_type not in senders:
            raise ValueError(f"Unsupported notification type: {notification_type}")

        results = BulkNotificationResult()
        for license in licenses:
            result = await senders[notification_type](license)
            entry = {"license_id": license.id, "dba": license.dba}
            if result.success:
                results.successful.append({**entry, "message_id": result.message_id})
            else:
                results.failed.append({**entry, "error": result.error})
        logger.info(
            "Bulk %s notifications: %d sent, %d failed",
            notification_type,
            len(results.successful),
            len(results.failed),
        )
        return results

    async def _dispatch(self, notification: Notification) -> NotificationResult:
        if not self.config.enabled:
            logger.info(
                "Notifications disabled, skipping %s for %s",
                notification.type,
                notification.data.get("license_id"),
            )
            notifications_total.labels(notification_type=notification.type, result="skipped").inc()
            return NotificationResult(success=True, skipped=True, notification=notification)

        if self.notifier is None:
            logger.info(
                "No notifier configured, logging %s to %s",
                notification.type,
                notification.recipient,
                extra={"notification": notification.to_dict()},
            )
            notifications_total.labels(notification_type=notification.type, result="logged").inc()
            return NotificationResult(
                success=True,
                message_id=f"console-{int(self.clock().timestamp() * 1000)}",
                notification=notification,
            )

        try:
            result = await self.notifier.send(notification)
        except Exception as e:  # pylint: disable=broad-exception-caught
            logger.warning(
                "Failed to send %s to %s: %s",
                notification.type,
                notification.recipient,
                e,
                exc_info=True,
            )
            notifications_total.labels(notification_type=notification.type, result="failed").inc()
            return NotificationResult(success=False, error=str(e), notification=notification)

        if not result.success:
            logger.warning(
                "Notifier rejected %s to %s: %s",
                notification.type,
                notification.recipient,
                result.error,
            )
        notifications_total.labels(
            notification_type=notification.type,
            result="sent" if result.success else "failed",
        ).inc()
        return result
