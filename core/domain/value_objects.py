"""
Value objects for the domain.

Value objects are immutable objects that are defined by their attributes
rather than their identity. They have no identity and are compared by value.
"""
from dataclasses import dataclass
from enum import Enum


class LicenseStatus(Enum):
    """Persisted license status."""

    ACTIVE = "active"
    CANCEL = "cancel"

    def __str__(self) -> str:
        """Return status as string."""
        return self.value


class LifecycleState(Enum):
    """
    Lifecycle state derived from the persisted status and dates.

    Only ``ACTIVE`` and ``CANCEL`` are stored; the others are computed.
    """

    ACTIVE = "active"
    EXPIRING_SOON = "expiring_soon"
    EXPIRED = "expired"
    SUSPENDED = "suspended"
    CANCEL = "cancel"

    def __str__(self) -> str:
        """Return state as string."""
        return self.value


class LicenseTerm(Enum):
    """Billing cadence of a license."""

    MONTHLY = "monthly"
    YEARLY = "yearly"

    def __str__(self) -> str:
        """Return term as string."""
        return self.value


class LicensePlan(Enum):
    """Commercial plan of a license."""

    BASIC = "Basic"
    PREMIUM = "Premium"
    ENTERPRISE = "Enterprise"

    def __str__(self) -> str:
        """Return plan as string."""
        return self.value


class NotificationPriority(Enum):
    """Delivery priority of a lifecycle notification."""

    URGENT = "urgent"
    HIGH = "high"
    NORMAL = "normal"

    def __str__(self) -> str:
        """Return priority as string."""
        return self.value


@dataclass(frozen=True)
class ReminderTier:
    """
    A renewal reminder tier.

    A license is inside the tier when its whole days until expiration
    ``d`` satisfy ``floor_days < d <= days``.
    """

    name: str
    days: int
    floor_days: int = 0

    def __post_init__(self):
        """Validate tier bounds."""
        if not self.name:
            raise ValueError("Reminder tier name cannot be empty")
        if self.days < 1:
            raise ValueError("Reminder tier days must be at least 1")
        if not 0 <= self.floor_days < self.days:
            raise ValueError(f"Invalid floor for reminder tier {self.name}")

    def contains(self, days_until_expiration: int) -> bool:
        """Return True if the given day count falls inside this tier."""
        return self.floor_days < days_until_expiration <= self.days

    def __str__(self) -> str:
        """Return tier name."""
        return self.name
