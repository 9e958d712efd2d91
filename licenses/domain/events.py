"""
License domain events.

Domain events represent something that happened in the license domain.
"""

import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from core.domain.events import DomainEvent


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


class LicenseCreated(DomainEvent):
    """Event raised when a license is created manually or imported by sync."""

    def __init__(
        self,
        license_id: str,
        dba: str,
        source: str = "manual",
        appid: Optional[str] = None,
        occurred_at: Optional[datetime] = None,
    ):
        """
        Initialize LicenseCreated event.

        Args:
            license_id: License identifier
            dba: Business name
            source: "manual" or "external_sync"
            appid: External identity, when imported
            occurred_at: When the event occurred
        """
        super().__init__(
            event_id=uuid.uuid4(),
            occurred_at=occurred_at or _now(),
            aggregate_id=str(license_id),
            event_type="LicenseCreated",
        )
        self.license_id = license_id
        self.dba = dba
        self.source = source
        self.appid = appid

    def payload(self) -> Dict[str, Any]:
        return {"dba": self.dba, "source": self.source, "appid": self.appid}


class LicenseActivated(DomainEvent):
    """Event raised when a cancelled or suspended license is activated again."""

    def __init__(
        self,
        license_id: str,
        previous_state: str,
        occurred_at: Optional[datetime] = None,
    ):
        super().__init__(
            event_id=uuid.uuid4(),
            occurred_at=occurred_at or _now(),
            aggregate_id=str(license_id),
            event_type="LicenseActivated",
        )
        self.license_id = license_id
        self.previous_state = previous_state

    def payload(self) -> Dict[str, Any]:
        return {"previous_state": self.previous_state}


class LicenseCancelled(DomainEvent):
    """Event raised when a license is cancelled."""

    def __init__(
        self,
        license_id: str,
        reason: Optional[str] = None,
        occurred_at: Optional[datetime] = None,
    ):
        """
        Initialize LicenseCancelled event.

        Args:
            license_id: License identifier
            reason: Optional cancellation reason
            occurred_at: When the event occurred
        """
        super().__init__(
            event_id=uuid.uuid4(),
            occurred_at=occurred_at or _now(),
            aggregate_id=str(license_id),
            event_type="LicenseCancelled",
        )
        self.license_id = license_id
        self.reason = reason

    def payload(self) -> Dict[str, Any]:
        return {"reason": self.reason}


class LicenseSuspended(DomainEvent):
    """Event raised when a license is suspended."""

    def __init__(
        self,
        license_id: str,
        reason: str,
        occurred_at: Optional[datetime] = None,
    ):
        super().__init__(
            event_id=uuid.uuid4(),
            occurred_at=occurred_at or _now(),
            aggregate_id=str(license_id),
            event_type="LicenseSuspended",
        )
        self.license_id = license_id
        self.reason = reason

    def payload(self) -> Dict[str, Any]:
        return {"reason": self.reason}


class LicenseReactivated(DomainEvent):
    """Event raised when a suspended, expired or cancelled license is reactivated."""

    def __init__(
        self,
        license_id: str,
        previous_state: str,
        occurred_at: Optional[datetime] = None,
    ):
        super().__init__(
            event_id=uuid.uuid4(),
            occurred_at=occurred_at or _now(),
            aggregate_id=str(license_id),
            event_type="LicenseReactivated",
        )
        self.license_id = license_id
        self.previous_state = previous_state

    def payload(self) -> Dict[str, Any]:
        return {"previous_state": self.previous_state}


class LicenseExtended(DomainEvent):
    """Event raised when a license expiration is moved."""

    def __init__(
        self,
        license_id: str,
        previous_expiration: Optional[datetime],
        new_expiration: datetime,
        occurred_at: Optional[datetime] = None,
    ):
        super().__init__(
            event_id=uuid.uuid4(),
            occurred_at=occurred_at or _now(),
            aggregate_id=str(license_id),
            event_type="LicenseExtended",
        )
        self.license_id = license_id
        self.previous_expiration = previous_expiration
        self.new_expiration = new_expiration

    def payload(self) -> Dict[str, Any]:
        return {
            "previous_expiration": _iso(self.previous_expiration),
            "new_expiration": _iso(self.new_expiration),
        }


class LicenseRenewed(DomainEvent):
    """Event raised when a license is renewed."""

    def __init__(
        self,
        license_id: str,
        previous_expiration: Optional[datetime],
        new_expiration: datetime,
        was_expired: bool,
        occurred_at: Optional[datetime] = None,
    ):
        """
        Initialize LicenseRenewed event.

        Args:
            license_id: License identifier
            previous_expiration: Expiration before the renewal
            new_expiration: Expiration after the renewal
            was_expired: Whether the license was expired when renewed
            occurred_at: When the event occurred
        """
        super().__init__(
            event_id=uuid.uuid4(),
            occurred_at=occurred_at or _now(),
            aggregate_id=str(license_id),
            event_type="LicenseRenewed",
        )
        self.license_id = license_id
        self.previous_expiration = previous_expiration
        self.new_expiration = new_expiration
        self.was_expired = was_expired

    def payload(self) -> Dict[str, Any]:
        return {
            "previous_expiration": _iso(self.previous_expiration),
            "new_expiration": _iso(self.new_expiration),
            "was_expired": self.was_expired,
        }


LICENSE_EVENT_TYPES = (
    LicenseCreated,
    LicenseActivated,
    LicenseCancelled,
    LicenseSuspended,
    LicenseReactivated,
    LicenseExtended,
    LicenseRenewed,
)
