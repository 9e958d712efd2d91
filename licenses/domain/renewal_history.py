"""
Renewal history entries.

The renewal history is the append-only audit trail of lifecycle
mutations on a license.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional

REMINDER_SENT_PREFIX = "reminder_sent_"
AUTO_SUSPENDED = "auto_suspended"
EXPIRATION_EXTENDED = "expiration_extended"
LICENSE_RENEWED = "license_renewed"
LICENSE_REACTIVATED = "license_reactivated"
LICENSE_CANCELLED = "license_cancelled"


def reminder_action(reminder_type: str) -> str:
    """History action recorded when a reminder tier is dispatched."""
    return f"{REMINDER_SENT_PREFIX}{reminder_type}"


@dataclass(frozen=True)
class RenewalHistoryEntry:
    """One immutable audit record."""

    license_id: str
    action: str
    timestamp: datetime
    metadata: Dict[str, Any] = field(default_factory=dict)
    actor: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "license_id": self.license_id,
            "action": self.action,
            "timestamp": self.timestamp.isoformat(),
            "metadata": self.metadata,
            "actor": self.actor,
        }
