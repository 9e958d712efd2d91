"""
Lifecycle and notification configuration.

Built from Django settings in production and constructed directly in tests.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from django.conf import settings
from django.core.exceptions import ImproperlyConfigured

from core.domain.value_objects import ReminderTier

DEFAULT_REMINDER_THRESHOLDS = {"30days": 30, "7days": 7, "1day": 1}
DEFAULT_SUSPEND_REASON = "Auto-suspended due to expiration and grace period end"


@dataclass(frozen=True)
class LifecycleConfig:
    """Thresholds and defaults for the lifecycle service."""

    reminder_thresholds: Mapping[str, int] = field(
        default_factory=lambda: dict(DEFAULT_REMINDER_THRESHOLDS)
    )
    default_grace_period_days: int = 30
    attention_days_threshold: int = 30
    auto_suspend_reason: str = DEFAULT_SUSPEND_REASON

    def __post_init__(self):
        if not self.reminder_thresholds:
            raise ImproperlyConfigured("At least one reminder threshold is required")
        days = list(self.reminder_thresholds.values())
        if len(set(days)) != len(days):
            raise ImproperlyConfigured("Reminder thresholds must be distinct")
        if any(d < 1 for d in days):
            raise ImproperlyConfigured("Reminder thresholds must be at least one day")
        if self.default_grace_period_days < 0:
            raise ImproperlyConfigured("Grace period cannot be negative")

    @property
    def reminder_tiers(self) -> List[ReminderTier]:
        """
        Tiers from the widest to the narrowest window.

        Each tier covers ``(next smaller threshold, threshold]``.
        """
        ordered = sorted(self.reminder_thresholds.items(), key=lambda item: -item[1])
        tiers = []
        for index, (name, days) in enumerate(ordered):
            floor = ordered[index + 1][1] if index + 1 < len(ordered) else 0
            tiers.append(ReminderTier(name=name, days=days, floor_days=floor))
        return tiers

    @classmethod
    def from_settings(cls, overrides: Optional[Dict[str, Any]] = None) -> "LifecycleConfig":
        """Build from ``settings.LICENSE_LIFECYCLE``."""
        values = dict(getattr(settings, "LICENSE_LIFECYCLE", {}))
        values.update(overrides or {})
        return cls(
            reminder_thresholds=values.get("REMINDER_THRESHOLDS", DEFAULT_REMINDER_THRESHOLDS),
            default_grace_period_days=int(values.get("DEFAULT_GRACE_PERIOD_DAYS", 30)),
            attention_days_threshold=int(values.get("ATTENTION_DAYS_THRESHOLD", 30)),
            auto_suspend_reason=values.get("AUTO_SUSPEND_REASON", DEFAULT_SUSPEND_REASON),
        )


@dataclass(frozen=True)
class NotificationConfig:
    """Notification dispatch settings."""

    enabled: bool = True
    default_recipient: str = "admin@example.com"
    from_email: str = "noreply@example.com"

    @classmethod
    def from_settings(cls) -> "NotificationConfig":
        """Build from ``settings.LICENSE_NOTIFICATIONS``."""
        values = getattr(settings, "LICENSE_NOTIFICATIONS", {})
        return cls(
            enabled=bool(values.get("ENABLED", True)),
            default_recipient=values.get("DEFAULT_RECIPIENT", "admin@example.com"),
            from_email=values.get(
                "FROM_EMAIL", getattr(settings, "DEFAULT_FROM_EMAIL", "noreply@example.com")
            ),
        )
