"""
Value types exchanged between the license store and its callers.
"""
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from core.domain.batch import BatchFailure
from core.domain.value_objects import LicenseStatus


@dataclass(frozen=True)
class LifecycleContext:
    """Who asked for a lifecycle mutation, and why."""

    actor: Optional[str] = None
    reason: Optional[str] = None
    now: Optional[datetime] = None


@dataclass(frozen=True)
class SyncedLicense:
    """
    A license as reported by the external license API.

    ``appid`` is the identity key, ``countid`` the fallback. Only the
    attributes carried here are overwritten on an existing license.
    """

    appid: Optional[str]
    countid: Optional[str]
    dba: str
    starts_at: datetime
    status: LicenseStatus = LicenseStatus.ACTIVE
    cancel_date: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    zip: str = ""
    mid: Optional[str] = None
    license_type: Optional[str] = None
    last_payment: Decimal = Decimal("0")
    sms_balance: Optional[int] = None
    contact_email: Optional[str] = None
    package: Any = None
    notes: str = ""
    grace_period_days: int = 30

    @property
    def identity(self) -> str:
        return self.appid or f"countid:{self.countid}"

    def creation_fields(self) -> Dict[str, Any]:
        """
        Attributes for a license that does not exist locally yet.

        ``notes`` is only seeded here; afterwards it belongs to operators.
        """
        fields = self.synced_fields()
        fields.pop("dba")
        fields.pop("starts_at")
        fields["grace_period_days"] = self.grace_period_days
        fields["notes"] = self.notes
        return fields

    def synced_fields(self) -> Dict[str, Any]:
        """
        Fields the sync owns, keyed by License attribute name.

        ``expires_at`` is only owned when the source reports one.
        """
        fields = {
            "appid": self.appid,
            "countid": self.countid,
            "dba": self.dba,
            "zip": self.zip,
            "mid": self.mid,
            "license_type": self.license_type,
            "status": self.status,
            "cancel_date": self.cancel_date,
            "starts_at": self.starts_at,
            "expires_at": self.expires_at,
            "last_payment": self.last_payment,
            "sms_balance_override": self.sms_balance,
            "contact_email": self.contact_email,
            "package": self.package,
        }
        if self.expires_at is None:
            del fields["expires_at"]
        return fields


@dataclass
class UpsertResult:
    """Outcome of one upsert batch."""

    created: List[Any] = field(default_factory=list)
    updated: List[str] = field(default_factory=list)
    unchanged: List[str] = field(default_factory=list)
    failures: List[BatchFailure] = field(default_factory=list)

    @property
    def succeeded(self) -> int:
        return len(self.created) + len(self.updated) + len(self.unchanged)

    @property
    def failed(self) -> int:
        return len(self.failures)
