"""
Lifecycle DTOs.

Inputs and run summaries of the lifecycle service.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from core.domain.batch import BatchFailure
from licenses.domain.license import License


@dataclass(frozen=True)
class RenewalOptions:
    """Options for a renewal; without a date the license gains one term."""

    new_expiration_date: Optional[datetime] = None


def _failures(failures: List[BatchFailure]) -> List[Dict[str, Any]]:
    return [
        {"item": str(f.item), "error": f.error, "code": f.error_code} for f in failures
    ]


@dataclass
class ReminderRunResult:
    """Summary of a reminder run."""

    success: bool = True
    processed: int = 0
    per_tier: Dict[str, int] = field(default_factory=dict)
    failures: List[BatchFailure] = field(default_factory=list)
    aborted: bool = False
    remaining: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "processed": self.processed,
            "per_tier": self.per_tier,
            "failed": len(self.failures),
            "failures": _failures(self.failures),
            "aborted": self.aborted,
            "remaining": self.remaining,
        }


@dataclass
class SuspensionRunResult:
    """Summary of an auto-suspension run."""

    success: bool = True
    suspended: int = 0
    notified: int = 0
    notification_failures: int = 0
    failures: List[BatchFailure] = field(default_factory=list)
    aborted: bool = False
    remaining: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "suspended": self.suspended,
            "notified": self.notified,
            "notification_failures": self.notification_failures,
            "failures": _failures(self.failures),
            "aborted": self.aborted,
            "remaining": self.remaining,
        }


@dataclass
class GracePeriodRunResult:
    """Summary of a grace period backfill."""

    success: bool = True
    updated: int = 0
    skipped: int = 0
    failures: List[BatchFailure] = field(default_factory=list)
    aborted: bool = False
    remaining: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "updated": self.updated,
            "skipped": self.skipped,
            "failures": _failures(self.failures),
            "aborted": self.aborted,
            "remaining": self.remaining,
        }


@dataclass
class AttentionReport:
    """Licenses needing an operator's attention."""

    expiring_soon: List[License] = field(default_factory=list)
    expired: List[License] = field(default_factory=list)
    suspended: List[License] = field(default_factory=list)
    errors: Dict[str, str] = field(default_factory=dict)

    @property
    def total(self) -> int:
        return len(self.expiring_soon) + len(self.expired) + len(self.suspended)
