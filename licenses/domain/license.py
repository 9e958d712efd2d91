"""
License domain entity.

This is the core domain entity representing a dashboard license.
It contains business logic and is independent of infrastructure.

Transitions never mutate an instance: each one returns a new License,
together with the domain event it produced where there is one. The
caller persists the new state and then publishes the event.
"""
import calendar
import math
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from numbers import Number
from typing import Any, Optional, Tuple, Union

from core.domain.exceptions import (
    CapacityExceededError,
    InsufficientBalanceError,
    InvalidLicenseStateError,
    InvalidTransitionError,
)
from core.domain.value_objects import (
    LicensePlan,
    LicenseStatus,
    LicenseTerm,
    LifecycleState,
    ReminderTier,
)
from licenses.domain.events import (
    LicenseActivated,
    LicenseCancelled,
    LicenseCreated,
    LicenseExtended,
    LicenseReactivated,
    LicenseSuspended,
)
from licenses.domain.renewal_history import RenewalHistoryEntry

SECONDS_PER_DAY = 86400
RENEWAL_DUE_DAYS = 30


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def add_months(value: datetime, months: int) -> datetime:
    """
    Add calendar months, clamping the day to the target month's length.

    2025-01-31 + 1 month is 2025-02-28.
    """
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def _is_number(value: Any) -> bool:
    return isinstance(value, Number) and not isinstance(value, bool)


@dataclass(frozen=True)
class License:
    """
    License aggregate root.

    Persisted status is only ``active`` or ``cancel``. Expiring, expired
    and suspended are derived from dates and the suspension fields.
    """

    id: str
    dba: str
    starts_at: datetime
    zip: str = ""
    plan: LicensePlan = LicensePlan.BASIC
    term: LicenseTerm = LicenseTerm.MONTHLY
    status: LicenseStatus = LicenseStatus.ACTIVE
    cancel_date: Optional[datetime] = None
    seats_total: int = 1
    seats_used: int = 0
    last_payment: Decimal = Decimal("0")
    sms_purchased: int = 0
    sms_sent: int = 0
    sms_balance_override: Optional[Any] = None
    agents: int = 0
    agents_cost: Decimal = Decimal("0")
    notes: str = ""
    expires_at: Optional[datetime] = None
    renewal_reminders_sent: Tuple[str, ...] = ()
    last_renewal_reminder: Optional[datetime] = None
    grace_period_days: int = 30
    grace_period_end: Optional[datetime] = None
    auto_suspend_enabled: bool = True
    suspended_at: Optional[datetime] = None
    suspension_reason: Optional[str] = None
    reactivated_at: Optional[datetime] = None
    # External sync identity and attributes
    appid: Optional[str] = None
    countid: Optional[str] = None
    mid: Optional[str] = None
    license_type: Optional[str] = None
    package: Any = None
    contact_email: Optional[str] = None
    external_sync_status: Optional[str] = None
    last_external_sync: Optional[datetime] = None
    renewal_history: Tuple[RenewalHistoryEntry, ...] = field(default=(), compare=False)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        """Validate license invariants."""
        if not self.id or not str(self.id).strip():
            raise InvalidLicenseStateError("id_required", "License id is required")
        if not self.dba or not self.dba.strip():
            raise InvalidLicenseStateError("dba_required", "DBA is required")
        if not isinstance(self.starts_at, datetime):
            raise InvalidLicenseStateError("starts_at_required", "Start date is required")
        if not isinstance(self.plan, LicensePlan):
            raise InvalidLicenseStateError("invalid_plan", f"Invalid plan: {self.plan}")
        if not isinstance(self.term, LicenseTerm):
            raise InvalidLicenseStateError("invalid_term", f"Invalid term: {self.term}")
        if not isinstance(self.status, LicenseStatus):
            raise InvalidLicenseStateError("invalid_status", f"Invalid status: {self.status}")
        if self.status == LicenseStatus.CANCEL and self.cancel_date is None:
            raise InvalidLicenseStateError(
                "cancel_requires_cancel_date", "Cancelled license requires a cancel date"
            )
        if self.seats_total < 0:
            raise InvalidLicenseStateError(
                "seats_total_non_negative", "Total seats cannot be negative"
            )
        if not 0 <= self.seats_used <= self.seats_total:
            raise InvalidLicenseStateError(
                "seats_used_within_total",
                f"Seats used ({self.seats_used}) must be between 0 and {self.seats_total}",
            )
        for name in ("last_payment", "agents_cost"):
            amount = getattr(self, name)
            if not _is_number(amount) or amount < 0:
                raise InvalidLicenseStateError(
                    "money_non_negative", f"{name} must be a non-negative amount"
                )
        if self.sms_sent < 0 or self.sms_purchased < 0:
            raise InvalidLicenseStateError(
                "sms_counts_non_negative", "SMS counters cannot be negative"
            )
        if self.sms_sent > self.sms_purchased:
            raise InvalidLicenseStateError(
                "sms_sent_within_purchased",
                f"SMS sent ({self.sms_sent}) exceeds purchased ({self.sms_purchased})",
            )
        if self.agents < 0:
            raise InvalidLicenseStateError("agents_non_negative", "Agents cannot be negative")
        if self.grace_period_days < 0:
            raise InvalidLicenseStateError(
                "grace_period_non_negative", "Grace period days cannot be negative"
            )

    @classmethod
    def create(
        cls,
        dba: str,
        starts_at: datetime,
        license_id: Optional[str] = None,
        source: str = "manual",
        now: Optional[datetime] = None,
        **attributes: Any,
    ) -> Tuple["License", LicenseCreated]:
        """
        Create a new License entity.

        Args:
            dba: Business name
            starts_at: Start of the first term
            license_id: Optional identifier (generated if not provided)
            source: Origin recorded on the creation event
            now: Creation time
            **attributes: Any other License field

        Returns:
            The new License and its LicenseCreated event
        """
        now = now or _utcnow()
        license = cls(
            id=license_id or str(uuid.uuid4()),
            dba=dba,
            starts_at=starts_at,
            created_at=now,
            updated_at=now,
            **attributes,
        )
        event = LicenseCreated(
            license_id=license.id,
            dba=license.dba,
            source=source,
            appid=license.appid,
            occurred_at=now,
        )
        return license, event

    # Dates

    def calculate_expiration_date(self) -> datetime:
        """One term after ``starts_at``."""
        months = 12 if self.term == LicenseTerm.YEARLY else 1
        return add_months(self.starts_at, months)

    @property
    def expiration_date(self) -> datetime:
        """Explicit expiration if one was set, else the term-based one."""
        return self.expires_at or self.calculate_expiration_date()

    def days_until_expiration(self, now: Optional[datetime] = None) -> int:
        """Whole days until expiration, rounded up. Negative once expired."""
        now = now or _utcnow()
        seconds = (self.expiration_date - now).total_seconds()
        return math.ceil(seconds / SECONDS_PER_DAY)

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        now = now or _utcnow()
        return now > self.expiration_date

    def is_expiring_soon(self, threshold_days: int = 30, now: Optional[datetime] = None) -> bool:
        """True when ``0 < days_until_expiration <= threshold_days``."""
        days = self.days_until_expiration(now)
        return 0 < days <= threshold_days

    def calculate_grace_period_end(self) -> datetime:
        return self.expiration_date + timedelta(days=self.grace_period_days)

    @property
    def effective_grace_period_end(self) -> datetime:
        return self.grace_period_end or self.calculate_grace_period_end()

    def days_until_grace_period_end(self, now: Optional[datetime] = None) -> int:
        now = now or _utcnow()
        seconds = (self.effective_grace_period_end - now).total_seconds()
        return math.ceil(seconds / SECONDS_PER_DAY)

    def is_in_grace_period(self, now: Optional[datetime] = None) -> bool:
        now = now or _utcnow()
        return self.is_expired(now) and now <= self.effective_grace_period_end

    def calculate_renewal_due_date(self) -> datetime:
        return self.expiration_date - timedelta(days=RENEWAL_DUE_DAYS)

    # Derived state

    @property
    def is_cancelled(self) -> bool:
        return self.status == LicenseStatus.CANCEL

    @property
    def is_suspended(self) -> bool:
        return self.suspended_at is not None and not self.is_cancelled

    def lifecycle_state(
        self, now: Optional[datetime] = None, expiring_threshold_days: int = 30
    ) -> LifecycleState:
        """
        Derive the lifecycle state.

        Precedence: cancel, suspended, expired, expiring soon, active.
        """
        now = now or _utcnow()
        if self.is_cancelled:
            return LifecycleState.CANCEL
        if self.is_suspended:
            return LifecycleState.SUSPENDED
        if self.is_expired(now):
            return LifecycleState.EXPIRED
        if self.is_expiring_soon(expiring_threshold_days, now):
            return LifecycleState.EXPIRING_SOON
        return LifecycleState.ACTIVE

    def should_be_suspended(self, now: Optional[datetime] = None) -> bool:
        """Active, not yet suspended, auto-suspend on and past the grace period."""
        now = now or _utcnow()
        return (
            self.status == LicenseStatus.ACTIVE
            and not self.is_suspended
            and self.auto_suspend_enabled
            and now > self.effective_grace_period_end
        )

    def should_send_renewal_reminder(
        self, tier: ReminderTier, now: Optional[datetime] = None
    ) -> bool:
        """True if the license sits inside the tier and has not had that reminder."""
        if self.status != LicenseStatus.ACTIVE or self.is_suspended:
            return False
        if tier.name in self.renewal_reminders_sent:
            return False
        return tier.contains(self.days_until_expiration(now))

    # Seats

    @property
    def available_seats(self) -> int:
        return self.seats_total - self.seats_used

    def has_available_seats(self) -> bool:
        return self.available_seats > 0

    @property
    def utilization_percent(self) -> float:
        if self.seats_total == 0:
            return 0.0
        return round(self.seats_used * 100 / self.seats_total, 2)

    def use_seat(self, now: Optional[datetime] = None) -> "License":
        """
        Return a copy with one more seat in use.

        Raises:
            CapacityExceededError: If every seat is taken
        """
        if not self.has_available_seats():
            raise CapacityExceededError(
                f"License {self.id} has no available seats ({self.seats_used}/{self.seats_total})"
            )
        return replace(self, seats_used=self.seats_used + 1, updated_at=now or _utcnow())

    def release_seat(self, now: Optional[datetime] = None) -> "License":
        """
        Return a copy with one seat released.

        Raises:
            InvalidLicenseStateError: If no seat is in use
        """
        if self.seats_used == 0:
            raise InvalidLicenseStateError(
                "seats_used_within_total", f"License {self.id} has no seats in use"
            )
        return replace(self, seats_used=self.seats_used - 1, updated_at=now or _utcnow())

    # SMS

    @property
    def has_sms_balance_override(self) -> bool:
        return _is_number(self.sms_balance_override)

    @property
    def sms_balance(self) -> int:
        """
        Remaining SMS balance.

        A stored balance (written by external sync) wins when it is present
        and numeric. Otherwise the balance is purchased minus sent.
        """
        if self.has_sms_balance_override:
            return int(self.sms_balance_override)
        return max(0, self.sms_purchased - self.sms_sent)

    def send_sms(self, count: int, now: Optional[datetime] = None) -> "License":
        """
        Return a copy with ``count`` SMS debited.

        A stored balance is debited directly; otherwise ``sms_sent`` grows.

        Raises:
            InvalidLicenseStateError: If count is not positive
            InsufficientBalanceError: If the balance cannot cover count
        """
        self._require_positive(count, "sms_count_positive")
        if count > self.sms_balance:
            raise InsufficientBalanceError(
                f"License {self.id} has {self.sms_balance} SMS left, {count} requested"
            )
        now = now or _utcnow()
        if self.has_sms_balance_override:
            return replace(
                self, sms_balance_override=self.sms_balance - count, updated_at=now
            )
        return replace(self, sms_sent=self.sms_sent + count, updated_at=now)

    def purchase_sms(self, count: int, now: Optional[datetime] = None) -> "License":
        """
        Return a copy with ``count`` SMS purchased.

        Raises:
            InvalidLicenseStateError: If count is not positive
        """
        self._require_positive(count, "sms_count_positive")
        changes = {"sms_purchased": self.sms_purchased + count, "updated_at": now or _utcnow()}
        if self.has_sms_balance_override:
            changes["sms_balance_override"] = self.sms_balance + count
        return replace(self, **changes)

    @staticmethod
    def _require_positive(count: int, rule: str) -> None:
        if not isinstance(count, int) or isinstance(count, bool) or count <= 0:
            raise InvalidLicenseStateError(rule, f"Count must be a positive integer, got {count!r}")

    # Status transitions

    def cancel(
        self, reason: Optional[str] = None, now: Optional[datetime] = None
    ) -> Tuple["License", LicenseCancelled]:
        """
        Cancel the license.

        Raises:
            InvalidTransitionError: If the license is already cancelled
        """
        if self.is_cancelled:
            raise InvalidTransitionError(f"License {self.id} is already cancelled")
        now = now or _utcnow()
        cancelled = replace(self, status=LicenseStatus.CANCEL, cancel_date=now, updated_at=now)
        return cancelled, LicenseCancelled(license_id=self.id, reason=reason, occurred_at=now)

    def suspend(
        self, reason: str, now: Optional[datetime] = None
    ) -> Tuple["License", LicenseSuspended]:
        """
        Suspend an active license.

        Raises:
            InvalidTransitionError: If the license is cancelled or already suspended
        """
        if self.is_cancelled:
            raise InvalidTransitionError("Cannot suspend a cancelled license")
        if self.is_suspended:
            raise InvalidTransitionError(f"License {self.id} is already suspended")
        now = now or _utcnow()
        suspended = replace(self, suspended_at=now, suspension_reason=reason, updated_at=now)
        return suspended, LicenseSuspended(license_id=self.id, reason=reason, occurred_at=now)

    def activate(self, now: Optional[datetime] = None) -> Tuple["License", LicenseActivated]:
        """
        Activate a cancelled or suspended license.

        Raises:
            InvalidTransitionError: From any other state
        """
        now = now or _utcnow()
        previous = self.lifecycle_state(now)
        if previous not in (LifecycleState.CANCEL, LifecycleState.SUSPENDED):
            raise InvalidTransitionError(
                f"Cannot activate license {self.id} from state {previous}"
            )
        activated = self._restored(now)
        return activated, LicenseActivated(
            license_id=self.id, previous_state=str(previous), occurred_at=now
        )

    def reactivate(
        self, now: Optional[datetime] = None
    ) -> Tuple["License", Union[LicenseReactivated, LicenseActivated]]:
        """
        Reactivate a suspended, expired or cancelled license.

        A cancelled license goes through ``activate`` and yields
        LicenseActivated; the other states yield LicenseReactivated.
        Reactivation does not move the expiration date, but a grace period
        that has already run out restarts from ``now``.

        Raises:
            InvalidTransitionError: If the license is active or only expiring soon
        """
        now = now or _utcnow()
        previous = self.lifecycle_state(now)
        if previous == LifecycleState.CANCEL:
            return self.activate(now)
        if previous not in (LifecycleState.SUSPENDED, LifecycleState.EXPIRED):
            raise InvalidTransitionError(
                f"Cannot reactivate license {self.id} from state {previous}"
            )
        return self._restored(now), LicenseReactivated(
            license_id=self.id, previous_state=str(previous), occurred_at=now
        )

    def _restored(self, now: datetime) -> "License":
        grace_period_end = self.grace_period_end
        if now >= self.effective_grace_period_end:
            grace_period_end = now + timedelta(days=self.grace_period_days)
        return replace(
            self,
            status=LicenseStatus.ACTIVE,
            cancel_date=None,
            suspended_at=None,
            suspension_reason=None,
            grace_period_end=grace_period_end,
            reactivated_at=now,
            updated_at=now,
        )

    def extend(
        self, new_expiration: datetime, now: Optional[datetime] = None
    ) -> Tuple["License", LicenseExtended]:
        """
        Move the expiration date and recompute the grace period end.

        Raises:
            InvalidLicenseStateError: If the new expiration is not after the start
        """
        if new_expiration <= self.starts_at:
            raise InvalidLicenseStateError(
                "expiration_after_start", "Expiration must be after the start date"
            )
        now = now or _utcnow()
        extended = replace(
            self,
            expires_at=new_expiration,
            grace_period_end=new_expiration + timedelta(days=self.grace_period_days),
            updated_at=now,
        )
        return extended, LicenseExtended(
            license_id=self.id,
            previous_expiration=self.expiration_date,
            new_expiration=new_expiration,
            occurred_at=now,
        )

    # Reminders

    def mark_renewal_reminder_sent(
        self, reminder_type: str, now: Optional[datetime] = None
    ) -> "License":
        """
        Record a reminder tier for the current cycle.

        Idempotent: returns the same instance if the tier is already recorded.
        """
        if reminder_type in self.renewal_reminders_sent:
            return self
        now = now or _utcnow()
        return replace(
            self,
            renewal_reminders_sent=self.renewal_reminders_sent + (reminder_type,),
            last_renewal_reminder=now,
            updated_at=now,
        )

    def reset_renewal_reminders(self) -> "License":
        """Start a fresh reminder cycle."""
        return replace(self, renewal_reminders_sent=(), last_renewal_reminder=None)
