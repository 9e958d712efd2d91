"""
License repository port (interface).

This defines the contract for license persistence operations.
Implementations are in the infrastructure layer.
"""
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from core.domain.value_objects import ReminderTier
from licenses.domain.license import License
from licenses.domain.renewal_history import RenewalHistoryEntry
from licenses.domain.sync import LifecycleContext, SyncedLicense, UpsertResult


class LicenseRepository(ABC):
    """
    Abstract repository for License entities.

    This is a port in hexagonal architecture - it defines
    what operations are available, not how they're implemented.
    Implementations raise PersistenceError when the store fails.
    """

    @abstractmethod
    async def find_by_id(self, license_id: str) -> Optional[License]:
        """
        Find a license by ID.

        Args:
            license_id: License identifier

        Returns:
            License entity or None if not found
        """
        pass

    @abstractmethod
    async def save(self, license: License) -> License:
        """
        Save a license entity (insert or full overwrite).

        Args:
            license: License entity to save

        Returns:
            Saved license entity
        """
        pass

    @abstractmethod
    async def update(self, license_id: str, patch: Dict[str, Any]) -> License:
        """
        Apply a partial update.

        Args:
            license_id: License identifier
            patch: License attribute names mapped to new values

        Returns:
            Updated license entity

        Raises:
            LicenseNotFoundError: If the license does not exist
        """
        pass

    @abstractmethod
    async def find_expiring_licenses(self, days_threshold: int, now: datetime) -> List[License]:
        """
        Find active licenses expiring within the threshold.

        Args:
            days_threshold: Window in whole days
            now: Reference time

        Returns:
            Licenses with 0 < days until expiration <= days_threshold
        """
        pass

    @abstractmethod
    async def find_expired_licenses_for_suspension(self, now: datetime) -> List[License]:
        """
        Find active, unsuspended licenses with auto-suspend on and past their grace period.

        Args:
            now: Reference time

        Returns:
            Licenses to suspend
        """
        pass

    @abstractmethod
    async def find_licenses_needing_reminders(
        self, tier: ReminderTier, now: datetime
    ) -> List[License]:
        """
        Find licenses inside a reminder tier that have not had that reminder.

        Args:
            tier: Reminder tier
            now: Reference time

        Returns:
            Licenses to remind
        """
        pass

    @abstractmethod
    async def find_suspended_licenses(self) -> List[License]:
        """Find suspended, not cancelled licenses."""
        pass

    @abstractmethod
    async def find_licenses_missing_grace_period(self) -> List[License]:
        """Find active licenses with auto-suspend on and no grace period end."""
        pass

    @abstractmethod
    async def suspend_expired_licenses(
        self, license_ids: Sequence[str], reason: str, now: datetime
    ) -> int:
        """
        Suspend licenses in one atomic operation.

        Args:
            license_ids: Licenses to suspend
            reason: Suspension reason
            now: Suspension time

        Returns:
            Number of licenses suspended
        """
        pass

    @abstractmethod
    async def extend_license_expiration(
        self, license_id: str, new_expiration: datetime, context: LifecycleContext
    ) -> License:
        """
        Set an explicit expiration and recompute the grace period end.

        Raises:
            LicenseNotFoundError: If the license does not exist
        """
        pass

    @abstractmethod
    async def reactivate_license(self, license_id: str, context: LifecycleContext) -> License:
        """
        Clear suspension and cancellation, setting status active.

        A grace period that has already ended restarts from the context time.

        Raises:
            LicenseNotFoundError: If the license does not exist
            InvalidTransitionError: If the license is active or only expiring soon
        """
        pass

    @abstractmethod
    async def add_renewal_history(
        self,
        license_id: str,
        action: str,
        metadata: Dict[str, Any],
        actor: Optional[str] = None,
        timestamp: Optional[datetime] = None,
    ) -> RenewalHistoryEntry:
        """
        Append an entry to the renewal history.

        Args:
            license_id: License identifier
            action: History action
            metadata: Action details
            actor: Who triggered the action
            timestamp: When it happened

        Returns:
            The stored entry
        """
        pass

    @abstractmethod
    async def update_renewal_reminders(
        self,
        license_id: str,
        reminders_sent: Sequence[str],
        last_reminder: Optional[datetime],
    ) -> None:
        """
        Overwrite the reminder tracking state.

        Args:
            license_id: License identifier
            reminders_sent: Reminder tags for the current cycle
            last_reminder: Time of the last reminder, or None to clear it
        """
        pass

    @abstractmethod
    async def upsert(self, records: Sequence[SyncedLicense], now: datetime) -> UpsertResult:
        """
        Insert or update licenses keyed on appid (countid as fallback).

        The whole batch runs in one transaction. Only synced fields are
        written on existing licenses, and unchanged records are not touched.

        Args:
            records: Records from the external license API
            now: Sync time

        Returns:
            UpsertResult with created licenses and updated/unchanged identities
        """
        pass
